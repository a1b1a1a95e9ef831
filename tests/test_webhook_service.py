"""
Tests for the outbound webhook delivery queue.
"""
import asyncio
import hashlib
import hmac
import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from paysettle.models.base import Base
from paysettle.models.webhook import (
    DeliveryLogStatus,
    DeliveryStatus,
    WebhookDeliveryJob,
    WebhookEndpoint,
    WebhookEventLog,
)
from paysettle.services import webhook_service
from paysettle.services.webhook_service import (
    backoff_seconds,
    claim_batch,
    compute_signature,
    deliver,
    dispatch_pending_deliveries,
    enqueue,
    replay_delivery,
)

PAYLOAD = {"id": "evt_1", "type": "purchase_approved", "data": {"order": {"id": "ord_1"}}}


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def naive(value: datetime) -> datetime:
    """SQLite hands datetimes back without tzinfo."""
    return value.replace(tzinfo=None)


async def logs_for(db, job_id) -> list[WebhookEventLog]:
    result = await db.execute(select(WebhookEventLog).where(WebhookEventLog.job_id == job_id))
    return list(result.scalars().all())


@pytest.mark.parametrize("attempts,expected", [
    (0, 60),
    (1, 120),
    (2, 240),
    (3, 480),
    (5, 1920),
    (6, 3600),
    (7, 3600),
    (50, 3600),
])
def test_backoff_is_capped_exponential(attempts, expected):
    assert backoff_seconds(attempts) == expected


def test_backoff_is_monotonic():
    delays = [backoff_seconds(n) for n in range(12)]

    assert delays == sorted(delays)


def test_signature_is_prefixed_hmac_sha256():
    body = json.dumps(PAYLOAD)
    expected = hmac.new(b"whsec_test", body.encode(), hashlib.sha256).hexdigest()

    assert compute_signature(body, "whsec_test") == f"sha256={expected}"
    assert compute_signature(body.encode(), "whsec_test") == f"sha256={expected}"


async def test_enqueue_creates_pending_job(db, make_endpoint):
    endpoint = await make_endpoint()

    job = await enqueue(db, endpoint.id, "purchase_approved", PAYLOAD)

    assert job.status == DeliveryStatus.PENDING
    assert job.attempts == 0
    assert job.max_attempts == 3


async def test_successful_delivery_is_signed_and_logged(db, make_endpoint):
    endpoint = await make_endpoint()
    job = await enqueue(db, endpoint.id, "purchase_approved", PAYLOAD)
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="ok")

    async with mock_client(handler) as client:
        summary = await dispatch_pending_deliveries(db, client=client)

    assert summary == {"processed": 1, "successful": 1, "failed": 0}
    request = seen[0]
    assert str(request.url) == endpoint.url
    assert request.headers["X-Webhook-Signature"] == compute_signature(request.content, endpoint.secret)
    assert request.headers["X-Webhook-Event-Type"] == "purchase_approved"
    assert request.headers["X-Webhook-Delivery-Id"] == job.id
    assert request.headers["X-Webhook-Attempt"] == "1"
    assert json.loads(request.content) == PAYLOAD

    await db.refresh(job)
    assert job.status == DeliveryStatus.DELIVERED
    assert job.attempts == 1
    assert job.claim_token is None
    logs = await logs_for(db, job.id)
    assert [(entry.status, entry.response_code, entry.response_body) for entry in logs] == [
        (DeliveryLogStatus.SUCCESS, 200, "ok"),
    ]


async def test_failed_delivery_is_rescheduled_with_backoff(db, make_endpoint):
    endpoint = await make_endpoint()
    await enqueue(db, endpoint.id, "purchase_approved", PAYLOAD)
    now = datetime.now(timezone.utc)

    async with mock_client(lambda request: httpx.Response(503, text="unavailable")) as client:
        [job] = await claim_batch(db, now=now)
        result = await deliver(db, job, client, now=now)

    await db.refresh(job)
    assert result.status == DeliveryStatus.PENDING
    assert job.status == DeliveryStatus.PENDING
    assert job.attempts == 1
    assert job.last_error == "HTTP 503: unavailable"
    assert naive(job.next_attempt_at) == naive(now + timedelta(seconds=120))
    assert job.processing_started_at is None
    [entry] = await logs_for(db, job.id)
    assert entry.status == DeliveryLogStatus.FAILED
    assert entry.response_code == 503


async def test_network_error_is_logged_as_error(db, make_endpoint):
    endpoint = await make_endpoint()
    job = await enqueue(db, endpoint.id, "purchase_approved", PAYLOAD)

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with mock_client(handler) as client:
        summary = await dispatch_pending_deliveries(db, client=client)

    await db.refresh(job)
    assert summary["failed"] == 1
    assert job.status == DeliveryStatus.PENDING
    assert "connection refused" in job.last_error
    [entry] = await logs_for(db, job.id)
    assert entry.status == DeliveryLogStatus.ERROR
    assert entry.response_code is None


async def test_last_attempt_failure_is_terminal(db, make_endpoint):
    endpoint = await make_endpoint()
    job = await enqueue(db, endpoint.id, "purchase_approved", PAYLOAD, max_attempts=2)
    job.attempts = 1
    await db.commit()

    async with mock_client(lambda request: httpx.Response(500)) as client:
        await dispatch_pending_deliveries(db, client=client)
        # terminal jobs are never claimed again
        assert await claim_batch(db, now=datetime.now(timezone.utc) + timedelta(days=1)) == []

    await db.refresh(job)
    assert job.status == DeliveryStatus.FAILED
    assert job.attempts == 2


async def test_inactive_endpoint_fails_job(db, make_endpoint):
    endpoint = await make_endpoint(is_active=False)
    job = await enqueue(db, endpoint.id, "purchase_approved", PAYLOAD)

    def handler(request):
        raise AssertionError("no request expected")

    async with mock_client(handler) as client:
        summary = await dispatch_pending_deliveries(db, client=client)

    await db.refresh(job)
    assert summary == {"processed": 1, "successful": 0, "failed": 1}
    assert job.status == DeliveryStatus.FAILED
    assert job.attempts == 1
    assert job.last_error == "Endpoint not found"
    [entry] = await logs_for(db, job.id)
    assert entry.status == DeliveryLogStatus.ERROR
    assert entry.endpoint_id == endpoint.id
    assert entry.response_body == "Endpoint not found"


async def test_invalid_endpoint_url_goes_through_retry_path(db, make_endpoint):
    endpoint = await make_endpoint(url="http://hooks.example.com:notaport/x")
    job = await enqueue(db, endpoint.id, "purchase_approved", PAYLOAD, max_attempts=2)

    def handler(request):
        raise AssertionError("no request expected")

    async with mock_client(handler) as client:
        first = await dispatch_pending_deliveries(db, client=client)
        await db.refresh(job)
        assert job.status == DeliveryStatus.PENDING
        assert job.attempts == 1
        assert job.last_error

        job.next_attempt_at = datetime.now(timezone.utc) - timedelta(seconds=1)
        await db.commit()
        second = await dispatch_pending_deliveries(db, client=client)

    await db.refresh(job)
    assert first == {"processed": 1, "successful": 0, "failed": 1}
    assert second == {"processed": 1, "successful": 0, "failed": 1}
    assert job.status == DeliveryStatus.FAILED
    assert job.attempts == 2
    assert job.claim_token is None
    logs = await logs_for(db, job.id)
    assert sorted(entry.attempt for entry in logs) == [1, 2]
    assert {entry.status for entry in logs} == {DeliveryLogStatus.ERROR}


async def test_claim_skips_future_and_fresh_processing_jobs(db, make_endpoint):
    endpoint = await make_endpoint()
    due = await enqueue(db, endpoint.id, "purchase_approved", PAYLOAD)
    future = await enqueue(db, endpoint.id, "purchase_approved", PAYLOAD)
    fresh = await enqueue(db, endpoint.id, "purchase_approved", PAYLOAD)
    now = datetime.now(timezone.utc)
    future.next_attempt_at = now + timedelta(minutes=5)
    fresh.status = DeliveryStatus.PROCESSING
    fresh.processing_started_at = now - timedelta(seconds=30)
    await db.commit()

    claimed = await claim_batch(db, now=now)

    assert [job.id for job in claimed] == [due.id]
    assert claimed[0].status == DeliveryStatus.PROCESSING
    assert claimed[0].claim_token is not None


async def test_stale_processing_claim_is_recovered(db, make_endpoint):
    endpoint = await make_endpoint()
    now = datetime.now(timezone.utc)
    job = await enqueue(db, endpoint.id, "purchase_approved", PAYLOAD)
    job.status = DeliveryStatus.PROCESSING
    job.processing_started_at = now - timedelta(minutes=10)
    job.claim_token = "dead-worker"
    await db.commit()

    claimed = await claim_batch(db, now=now)

    assert [c.id for c in claimed] == [job.id]
    assert claimed[0].claim_token != "dead-worker"


async def test_claim_respects_limit(db, make_endpoint):
    endpoint = await make_endpoint()
    for _ in range(4):
        await enqueue(db, endpoint.id, "purchase_approved", PAYLOAD)

    first = await claim_batch(db, limit=3)
    second = await claim_batch(db, limit=3)

    assert len(first) == 3
    assert len(second) == 1
    assert not {j.id for j in first} & {j.id for j in second}


async def test_zero_limit_claims_nothing(db, make_endpoint):
    endpoint = await make_endpoint()
    jobs = [await enqueue(db, endpoint.id, "purchase_approved", PAYLOAD) for _ in range(3)]

    assert await claim_batch(db, 0) == []
    assert await dispatch_pending_deliveries(db, limit=0) == {"processed": 0, "successful": 0, "failed": 0}

    for job in jobs:
        await db.refresh(job)
        assert job.status == DeliveryStatus.PENDING
        assert job.claim_token is None


async def test_zero_max_attempts_is_kept(db, make_endpoint):
    endpoint = await make_endpoint()

    job = await enqueue(db, endpoint.id, "purchase_approved", PAYLOAD, max_attempts=0)

    assert job.max_attempts == 0
    assert await claim_batch(db) == []


async def test_concurrent_claims_never_share_a_job(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'claims.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with sessions() as setup:
        endpoint = WebhookEndpoint(
            producer_id="producer-1",
            name="Integration",
            url="https://hooks.example.com",
            secret="s",
            events=["purchase_approved"],
        )
        setup.add(endpoint)
        await setup.commit()
        for _ in range(10):
            await enqueue(setup, endpoint.id, "purchase_approved", PAYLOAD)

    async with sessions() as first, sessions() as second:
        a, b = await asyncio.gather(claim_batch(first), claim_batch(second))

    ids_a = {job.id for job in a}
    ids_b = {job.id for job in b}
    await engine.dispose()

    assert not ids_a & ids_b
    assert len(ids_a | ids_b) == 10


async def test_replay_sends_test_event_once(db, make_endpoint):
    endpoint = await make_endpoint()
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(500)

    async with mock_client(handler) as client:
        job = await replay_delivery(db, endpoint, client=client)

    assert job.max_attempts == 1
    assert job.event_type == webhook_service.TEST_EVENT_TYPE
    assert job.status == DeliveryStatus.FAILED
    assert seen[0]["type"] == "webhook.test"


async def test_replay_resends_logged_payload(db, make_endpoint):
    endpoint = await make_endpoint()
    logged = WebhookEventLog(
        endpoint_id=endpoint.id,
        event_type="refund",
        status=DeliveryLogStatus.FAILED,
        attempt=3,
        payload={"id": "evt_9", "type": "refund"},
    )
    db.add(logged)
    await db.commit()
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    async with mock_client(handler) as client:
        job = await replay_delivery(db, endpoint, logged, client=client)

    assert job.status == DeliveryStatus.DELIVERED
    assert seen[0].headers["X-Webhook-Event-Type"] == "refund"
    assert json.loads(seen[0].content) == {"id": "evt_9", "type": "refund"}
