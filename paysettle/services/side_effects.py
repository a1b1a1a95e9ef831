"""
Post-commit side effects.

Once an order's status transition is durable, the work that depends on it
runs as a list of independent effects. Each effect is marked fatal or
best-effort explicitly:

- best-effort: a failure rolls back that effect's unit of work, is logged
  and reported to Sentry, and the next effect still runs
- fatal: a failure rolls back and propagates, failing the request
"""
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from paysettle.logging_config import get_logger
from paysettle.routes.metrics import track_side_effect_failed
from paysettle.sentry_config import capture_exception

log = get_logger(component="side_effects")


@dataclass(frozen=True)
class SideEffect:
    name: str
    run: Callable[[], Awaitable[Any]]
    fatal: bool = False


@dataclass
class SideEffectReport:
    completed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


async def run_side_effects(db: AsyncSession, effects: list[SideEffect], **context) -> SideEffectReport:
    """
    Run effects in order, each inside its own error boundary.

    Args:
        db: Session shared by the effects; rolled back after a failure
        effects: Effects to run
        **context: Fields added to log lines and Sentry tags (order_id, ...)

    Returns:
        SideEffectReport naming completed and failed best-effort effects

    Raises:
        Whatever a fatal effect raised
    """
    report = SideEffectReport()

    for effect in effects:
        try:
            await effect.run()
        except Exception as e:
            await db.rollback()
            if effect.fatal:
                log.error("side_effect_failed", effect=effect.name, fatal=True, error=str(e), exc_info=True, **context)
                raise
            log.error("side_effect_failed", effect=effect.name, fatal=False, error=str(e), exc_info=True, **context)
            track_side_effect_failed(effect.name)
            capture_exception(e, side_effect=effect.name, **context)
            report.failed.append(effect.name)
        else:
            report.completed.append(effect.name)

    return report
