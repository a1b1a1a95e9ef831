"""
Webhook API routes.

Producer-facing delivery log, replay and manual dispatch.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paysettle.database import get_db
from paysettle.dependencies.auth import TokenPayload, require_producer
from paysettle.models.webhook import WebhookEndpoint, WebhookEventLog
from paysettle.services import webhook_service


router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])

LOG_PAGE_SIZE = 100


class ReplayRequest(BaseModel):
    """Request model for replaying a delivery. No log id sends a test event."""
    log_id: str | None = None


async def get_owned_endpoint(db: AsyncSession, endpoint_id: str, producer_id: str) -> WebhookEndpoint:
    stmt = select(WebhookEndpoint).where(
        WebhookEndpoint.id == endpoint_id,
        WebhookEndpoint.producer_id == producer_id,
    )
    endpoint = (await db.execute(stmt)).scalar_one_or_none()
    if not endpoint:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Webhook endpoint not found"
        )
    return endpoint


def serialize_log(entry: WebhookEventLog) -> dict:
    return {
        "id": entry.id,
        "job_id": entry.job_id,
        "event_type": entry.event_type,
        "status": entry.status.value,
        "attempt": entry.attempt,
        "response_code": entry.response_code,
        "response_body": entry.response_body,
        "payload": entry.payload,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }


@router.post("/deliveries/process", response_model=dict)
async def process_deliveries(
    token: TokenPayload = Depends(require_producer),
    db: AsyncSession = Depends(get_db)
):
    """Run one claim-and-deliver cycle now."""
    return await webhook_service.dispatch_pending_deliveries(db)


@router.get("/{endpoint_id}/logs", response_model=dict)
async def get_delivery_logs(
    endpoint_id: str,
    token: TokenPayload = Depends(require_producer),
    db: AsyncSession = Depends(get_db)
):
    """Most recent delivery attempts for one of the producer's endpoints."""
    endpoint = await get_owned_endpoint(db, endpoint_id, token.sub)

    stmt = (
        select(WebhookEventLog)
        .where(WebhookEventLog.endpoint_id == endpoint.id)
        .order_by(WebhookEventLog.created_at.desc())
        .limit(LOG_PAGE_SIZE)
    )
    logs = (await db.execute(stmt)).scalars().all()

    return {
        "endpoint_id": endpoint.id,
        "logs": [serialize_log(entry) for entry in logs]
    }


@router.post("/{endpoint_id}/replay", response_model=dict)
async def replay_delivery(
    endpoint_id: str,
    request: ReplayRequest,
    token: TokenPayload = Depends(require_producer),
    db: AsyncSession = Depends(get_db)
):
    """
    Re-send a logged delivery, or a webhook.test event when no log id is given.

    The replay is a single-attempt job delivered immediately.
    """
    endpoint = await get_owned_endpoint(db, endpoint_id, token.sub)

    log_entry = None
    if request.log_id:
        stmt = select(WebhookEventLog).where(
            WebhookEventLog.id == request.log_id,
            WebhookEventLog.endpoint_id == endpoint.id,
        )
        log_entry = (await db.execute(stmt)).scalar_one_or_none()
        if not log_entry:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Delivery log not found"
            )

    job = await webhook_service.replay_delivery(db, endpoint, log_entry)

    return {
        "job_id": job.id,
        "event_type": job.event_type,
        "status": job.status.value,
        "attempts": job.attempts,
        "last_error": job.last_error,
    }
