"""
PaySettle - payment settlement and webhook delivery engine

FastAPI application entry point.
"""
import redis.asyncio as redis
from fastapi import FastAPI
from sqlalchemy import text

# Import observability modules
from paysettle.config import settings
from paysettle.database import AsyncSessionLocal
from paysettle.logging_config import configure_logging, get_logger
from paysettle.sentry_config import configure_sentry
from paysettle.middleware.logging import LoggingMiddleware
from paysettle.routes.metrics import router as metrics_router

# Import route modules
from paysettle.routes.payments import router as payments_router
from paysettle.routes.webhooks import router as webhooks_router

# Initialize logging first
configure_logging()

# Initialize Sentry (if SENTRY_DSN is set)
configure_sentry()

log = get_logger(component="main")

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Gateway callback settlement and outbound webhook delivery for producers",
)

app.add_middleware(LoggingMiddleware)

# Include metrics endpoint FIRST (so it's always available)
app.include_router(metrics_router)

# Gateway callbacks
app.include_router(payments_router)

# Producer webhook delivery management
app.include_router(webhooks_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health():
    """Detailed health check: database and the dispatcher's Redis."""
    checks = {"database": "connected", "redis": "connected"}

    try:
        async with AsyncSessionLocal() as db:
            await db.execute(text("SELECT 1"))
    except Exception as e:
        log.error("health_check_failed", dependency="database", error=str(e))
        checks["database"] = "unavailable"

    client = redis.from_url(settings.REDIS_URL)
    try:
        await client.ping()
    except (redis.RedisError, OSError) as e:
        log.error("health_check_failed", dependency="redis", error=str(e))
        checks["redis"] = "unavailable"
    finally:
        await client.aclose()

    healthy = all(value == "connected" for value in checks.values())
    return {"status": "healthy" if healthy else "degraded", **checks}
