"""
Webhook Service

Outbound delivery queue: durable jobs claimed atomically by dispatcher runs,
POSTed to producer endpoints with an HMAC signature, and retried with capped
exponential backoff.
"""
import json
import hmac
import hashlib
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import httpx
from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from paysettle.config import settings
from paysettle.logging_config import get_logger
from paysettle.models.base import new_id
from paysettle.models.webhook import (
    DeliveryLogStatus,
    DeliveryStatus,
    WebhookDeliveryJob,
    WebhookEndpoint,
    WebhookEventLog,
)
from paysettle.routes.metrics import track_delivery_attempt
from paysettle.sentry_config import capture_exception

log = get_logger(component="webhook_service")

RESPONSE_BODY_LIMIT = 1000
LAST_ERROR_LIMIT = 500
TEST_EVENT_TYPE = "webhook.test"
ENDPOINT_NOT_FOUND = "Endpoint not found"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_signature(body: str | bytes, secret: str) -> str:
    """Signature header value: "sha256=" + hex HMAC-SHA256 of the raw body."""
    if isinstance(body, str):
        body = body.encode()
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def backoff_seconds(attempts: int) -> int:
    """
    Delay before the next attempt: min(base * 2 ** attempts, max).

    backoff_seconds(0) == 60, (1) == 120, (2) == 240, capped at 3600 from 6 on.
    """
    base = settings.WEBHOOK_BACKOFF_BASE_SECONDS
    cap = settings.WEBHOOK_BACKOFF_MAX_SECONDS
    # 2 ** 32 already exceeds any sane cap
    return min(base * 2 ** min(max(attempts, 0), 32), cap)


def serialize_payload(payload: dict) -> str:
    return json.dumps(payload, default=str, separators=(",", ":"))


@dataclass(frozen=True)
class DeliveryResult:
    job_id: str
    status: DeliveryStatus
    attempt: int
    response_code: int | None = None
    error: str | None = None


# ============================================
# Enqueue
# ============================================

def build_delivery_job(
    endpoint_id: str,
    event_type: str,
    payload: dict,
    *,
    transaction_event_id: str | None = None,
    max_attempts: int | None = None,
) -> WebhookDeliveryJob:
    """A new pending job, due immediately. The caller adds and commits it."""
    return WebhookDeliveryJob(
        id=new_id(),
        webhook_endpoint_id=endpoint_id,
        transaction_event_id=transaction_event_id,
        event_type=event_type,
        payload=payload,
        status=DeliveryStatus.PENDING,
        attempts=0,
        max_attempts=settings.WEBHOOK_MAX_ATTEMPTS if max_attempts is None else max_attempts,
        next_attempt_at=utcnow(),
    )


async def enqueue(
    db: AsyncSession,
    endpoint_id: str,
    event_type: str,
    payload: dict,
    *,
    transaction_event_id: str | None = None,
    max_attempts: int | None = None,
) -> WebhookDeliveryJob:
    """
    Create a pending delivery job with attempts=0.

    Args:
        db: Database session
        endpoint_id: Target webhook endpoint
        event_type: Internal event type, sent in X-Webhook-Event-Type
        payload: JSON payload snapshot
        transaction_event_id: Source transaction event, if any
        max_attempts: Attempt bound (default WEBHOOK_MAX_ATTEMPTS)

    Returns:
        The persisted job
    """
    job = build_delivery_job(
        endpoint_id,
        event_type,
        payload,
        transaction_event_id=transaction_event_id,
        max_attempts=max_attempts,
    )
    db.add(job)
    await db.commit()
    await db.refresh(job)
    return job


# ============================================
# Claim
# ============================================

def _claimable(now: datetime):
    stale_before = now - timedelta(seconds=settings.WEBHOOK_STALE_CLAIM_SECONDS)
    return and_(
        or_(
            and_(
                WebhookDeliveryJob.status == DeliveryStatus.PENDING,
                WebhookDeliveryJob.next_attempt_at <= now,
            ),
            # claim held by a worker that died mid-delivery
            and_(
                WebhookDeliveryJob.status == DeliveryStatus.PROCESSING,
                WebhookDeliveryJob.processing_started_at < stale_before,
            ),
        ),
        WebhookDeliveryJob.attempts < WebhookDeliveryJob.max_attempts,
    )


async def claim_batch(
    db: AsyncSession,
    limit: int | None = None,
    *,
    now: datetime | None = None,
) -> list[WebhookDeliveryJob]:
    """
    Atomically claim up to `limit` due jobs for this invocation.

    The claim is a single UPDATE that re-checks the claimable predicate and
    stamps a fresh claim token, so two concurrent dispatcher runs can never
    both own the same job. The claimed rows are then read back by token.

    Returns:
        Jobs now in `processing` owned by this call
    """
    now = now or utcnow()
    if limit is None:
        limit = settings.WEBHOOK_CLAIM_BATCH_SIZE
    if limit <= 0:
        return []
    token = str(uuid.uuid4())

    candidates = (
        select(WebhookDeliveryJob.id)
        .where(_claimable(now))
        .order_by(WebhookDeliveryJob.next_attempt_at.asc())
        .limit(limit)
        .with_for_update(skip_locked=True)
    )
    stmt = (
        update(WebhookDeliveryJob)
        .where(WebhookDeliveryJob.id.in_(candidates), _claimable(now))
        .values(
            status=DeliveryStatus.PROCESSING,
            processing_started_at=now,
            claim_token=token,
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.commit()

    if not result.rowcount:
        return []

    claimed = await db.execute(
        select(WebhookDeliveryJob)
        .where(WebhookDeliveryJob.claim_token == token)
        .execution_options(populate_existing=True)
    )
    jobs = list(claimed.scalars().all())
    log.info("webhook_jobs_claimed", count=len(jobs), claim_token=token)
    return jobs


# ============================================
# Deliver
# ============================================

async def _release(db: AsyncSession, job: WebhookDeliveryJob, **values) -> bool:
    """Write the attempt outcome and drop the claim, if this worker still holds it."""
    stmt = (
        update(WebhookDeliveryJob)
        .where(
            WebhookDeliveryJob.id == job.id,
            WebhookDeliveryJob.claim_token == job.claim_token,
        )
        .values(claim_token=None, processing_started_at=None, **values)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount != 1:
        log.warning("webhook_claim_lost", job_id=job.id)
        return False
    return True


def build_headers(job: WebhookDeliveryJob, body: str, secret: str, attempt: int) -> dict:
    return {
        "Content-Type": "application/json",
        "User-Agent": settings.WEBHOOK_USER_AGENT,
        "X-Webhook-Signature": compute_signature(body, secret),
        "X-Webhook-Event-Type": job.event_type,
        "X-Webhook-Delivery-Id": job.id,
        "X-Webhook-Attempt": str(attempt),
    }


async def deliver(
    db: AsyncSession,
    job: WebhookDeliveryJob,
    client: httpx.AsyncClient,
    *,
    now: datetime | None = None,
) -> DeliveryResult:
    """
    POST one claimed job to its endpoint and record the outcome.

    2xx marks the job delivered. Anything else increments attempts and either
    reschedules the job with backoff or, once max_attempts is reached, marks
    it failed. Every attempt writes a delivery log row, including requests
    that never left because the endpoint URL is invalid.
    """
    now = now or utcnow()
    endpoint = await db.get(WebhookEndpoint, job.webhook_endpoint_id)
    attempt = job.attempts + 1

    if endpoint is None or not endpoint.is_active:
        await _release(
            db,
            job,
            status=DeliveryStatus.FAILED,
            attempts=attempt,
            last_error=ENDPOINT_NOT_FOUND,
            last_attempt_at=now,
        )
        # a deleted endpoint takes its log rows with it; only inactive ones get one
        if endpoint is not None:
            db.add(WebhookEventLog(
                endpoint_id=endpoint.id,
                job_id=job.id,
                event_type=job.event_type,
                status=DeliveryLogStatus.ERROR,
                attempt=attempt,
                payload=job.payload,
                response_body=ENDPOINT_NOT_FOUND,
            ))
        await db.commit()
        log.warning("webhook_endpoint_missing", job_id=job.id, endpoint_id=job.webhook_endpoint_id)
        track_delivery_attempt("failed")
        return DeliveryResult(job.id, DeliveryStatus.FAILED, attempt, error=ENDPOINT_NOT_FOUND)

    body = serialize_payload(job.payload)
    headers = build_headers(job, body, endpoint.secret, attempt)

    response_code = None
    response_body = None
    error = None
    try:
        response = await client.post(endpoint.url, content=body, headers=headers)
        response_code = response.status_code
        response_body = response.text[:RESPONSE_BODY_LIMIT]
        if not response.is_success:
            error = f"HTTP {response_code}: {response_body}"[:LAST_ERROR_LIMIT]
        log_status = DeliveryLogStatus.SUCCESS if response.is_success else DeliveryLogStatus.FAILED
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        error = (str(e) or type(e).__name__)[:LAST_ERROR_LIMIT]
        log_status = DeliveryLogStatus.ERROR

    if error is None:
        status = DeliveryStatus.DELIVERED
        values = dict(status=status, attempts=attempt, last_error=None, last_attempt_at=now)
    elif attempt < job.max_attempts:
        status = DeliveryStatus.PENDING
        values = dict(
            status=status,
            attempts=attempt,
            last_error=error,
            last_attempt_at=now,
            next_attempt_at=now + timedelta(seconds=backoff_seconds(attempt)),
        )
    else:
        status = DeliveryStatus.FAILED
        values = dict(status=status, attempts=attempt, last_error=error, last_attempt_at=now)

    await _release(db, job, **values)
    db.add(WebhookEventLog(
        endpoint_id=endpoint.id,
        job_id=job.id,
        event_type=job.event_type,
        status=log_status,
        attempt=attempt,
        payload=job.payload,
        response_code=response_code,
        response_body=response_body if response_body is not None else error,
    ))
    await db.commit()

    if status == DeliveryStatus.DELIVERED:
        log.info("webhook_delivered", job_id=job.id, endpoint_id=endpoint.id, status_code=response_code, attempt=attempt)
        track_delivery_attempt("delivered")
    elif status == DeliveryStatus.PENDING:
        log.warning("webhook_delivery_retry_scheduled", job_id=job.id, attempt=attempt, error=error)
        track_delivery_attempt("retry")
    else:
        log.error("webhook_delivery_failed", job_id=job.id, attempt=attempt, max_attempts=job.max_attempts, error=error)
        track_delivery_attempt("failed")

    return DeliveryResult(job.id, status, attempt, response_code=response_code, error=error)


# ============================================
# Dispatch
# ============================================

async def dispatch_pending_deliveries(
    db: AsyncSession,
    *,
    client: httpx.AsyncClient | None = None,
    limit: int | None = None,
) -> dict:
    """
    One claim-and-deliver cycle.

    Delivery errors stay inside this function: a job that raises is logged,
    reported to Sentry and counted as failed; its claim expires and it is
    picked up again after WEBHOOK_STALE_CLAIM_SECONDS.

    Returns:
        {"processed": n, "successful": n, "failed": n}
    """
    jobs = await claim_batch(db, limit)
    summary = {"processed": len(jobs), "successful": 0, "failed": 0}
    if not jobs:
        return summary

    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=settings.WEBHOOK_TIMEOUT_SECONDS)

    try:
        job_ids = [job.id for job in jobs]
        rolled_back = False
        for job, job_id in zip(jobs, job_ids):
            try:
                if rolled_back:
                    # rollback expired the remaining claimed jobs
                    await db.refresh(job)
                result = await deliver(db, job, client)
            except Exception as e:
                await db.rollback()
                rolled_back = True
                log.error("webhook_delivery_crashed", job_id=job_id, error=str(e), exc_info=True)
                capture_exception(e, job_id=job_id)
                summary["failed"] += 1
                continue
            if result.status == DeliveryStatus.DELIVERED:
                summary["successful"] += 1
            else:
                summary["failed"] += 1
    finally:
        if owns_client:
            await client.aclose()

    log.info("webhook_dispatch_completed", **summary)
    return summary


# ============================================
# Replay
# ============================================

def build_test_payload(endpoint: WebhookEndpoint) -> dict:
    return {
        "id": new_id(),
        "type": TEST_EVENT_TYPE,
        "created_at": utcnow().isoformat(),
        "data": {
            "message": "Test webhook delivery",
            "endpoint_id": endpoint.id,
        },
    }


async def replay_delivery(
    db: AsyncSession,
    endpoint: WebhookEndpoint,
    log_entry: WebhookEventLog | None = None,
    *,
    client: httpx.AsyncClient | None = None,
) -> WebhookDeliveryJob:
    """
    Re-send a logged payload, or a webhook.test payload, as a single-attempt job.

    The job is enqueued and a dispatch cycle runs immediately.

    Returns:
        The replay job as it stands after the dispatch cycle
    """
    if log_entry is not None:
        event_type, payload = log_entry.event_type, log_entry.payload
    else:
        event_type, payload = TEST_EVENT_TYPE, build_test_payload(endpoint)

    job = await enqueue(db, endpoint.id, event_type, payload, max_attempts=1)
    log.info("webhook_replay_enqueued", job_id=job.id, endpoint_id=endpoint.id, event_type=event_type)

    await dispatch_pending_deliveries(db, client=client)
    await db.refresh(job)
    return job
