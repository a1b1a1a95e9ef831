"""
Tests for the HTTP surface: the gateway callback contract and the
producer-facing webhook routes.
"""
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from jose import jwt

from paysettle.config import settings
from paysettle.database import get_db
from paysettle.main import app
from paysettle.models.order import OrderStatus
from paysettle.models.webhook import DeliveryLogStatus, WebhookEventLog
from paysettle.services.event_log import EventLogError, EventLogService


@pytest.fixture
async def client(db):
    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


def issue_token(**claims) -> str:
    """Sign a token the way the identity service does."""
    claims.setdefault("exp", datetime.now(timezone.utc) + timedelta(minutes=5))
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def auth_headers(user_id: str, role: str = "producer") -> dict:
    token = issue_token(sub=user_id, role=role, email="producer@example.com")
    return {"Authorization": f"Bearer {token}"}


async def test_gateway_approval_returns_success(client, db, make_order):
    order = await make_order()

    response = await client.post(
        "/api/payments/webhook",
        json={"event": "PAYMENT_RECEIVED", "payment": {"id": order.gateway_transaction_id, "status": "RECEIVED"}},
    )

    await db.refresh(order)
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Webhook processed", "order_id": order.id}
    assert order.status == OrderStatus.PAID


async def test_unmatched_and_unmapped_callbacks_are_acknowledged(client):
    unmatched = await client.post(
        "/api/payments/webhook",
        json={"event": "PAYMENT_RECEIVED", "payment": {"id": "pay_unknown"}},
    )
    unmapped = await client.post(
        "/api/payments/webhook",
        json={"event": "PAYMENT_ANTICIPATED", "payment": {"id": "pay_unknown"}},
    )

    assert unmatched.status_code == 200
    assert unmatched.json()["success"] is True
    assert unmapped.status_code == 200
    assert unmapped.json() == {"success": True, "message": "Event ignored"}


@pytest.mark.parametrize("body", [
    b"not json",
    b'{"hello": "world"}',
    b'{"event": "PAYMENT_RECEIVED", "payment": {}}',
])
async def test_malformed_callbacks_are_rejected(client, body):
    response = await client.post(
        "/api/payments/webhook",
        content=body,
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["success"] is False


async def test_processing_failure_returns_500(client, make_order, monkeypatch):
    order = await make_order()

    async def broken_append(self, **kwargs):
        raise EventLogError("event store unavailable")

    monkeypatch.setattr(EventLogService, "append", broken_append)

    response = await client.post(
        "/api/payments/webhook",
        json={"event": "PAYMENT_RECEIVED", "payment": {"id": order.gateway_transaction_id}},
    )

    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "event store unavailable"}


async def test_delivery_logs_are_scoped_to_owner(client, db, producer, make_endpoint):
    endpoint = await make_endpoint()
    db.add(WebhookEventLog(
        endpoint_id=endpoint.id,
        job_id="job-1",
        event_type="purchase_approved",
        status=DeliveryLogStatus.SUCCESS,
        attempt=1,
        payload={"id": "evt_1"},
        response_code=200,
        response_body="ok",
    ))
    await db.commit()

    own = await client.get(f"/api/webhooks/{endpoint.id}/logs", headers=auth_headers(producer.id))
    other = await client.get(f"/api/webhooks/{endpoint.id}/logs", headers=auth_headers("someone-else"))

    assert own.status_code == 200
    [entry] = own.json()["logs"]
    assert entry["status"] == "success"
    assert entry["response_code"] == 200
    assert other.status_code == 404


async def test_webhook_routes_require_producer_token(client, make_endpoint, producer):
    endpoint = await make_endpoint()

    anonymous = await client.get(f"/api/webhooks/{endpoint.id}/logs")
    buyer = await client.get(f"/api/webhooks/{endpoint.id}/logs", headers=auth_headers(producer.id, role="buyer"))
    forged = await client.get(f"/api/webhooks/{endpoint.id}/logs", headers={"Authorization": "Bearer nope"})

    assert anonymous.status_code in (401, 403)
    assert buyer.status_code == 403
    assert forged.status_code == 401


@pytest.mark.parametrize("token", [
    issue_token(sub="producer-1", email="producer@example.com"),
    issue_token(sub="producer-1", role="producer", email="producer@example.com",
                exp=datetime.now(timezone.utc) - timedelta(minutes=1)),
    jwt.encode({"sub": "producer-1", "role": "producer", "email": "producer@example.com"}, "wrong-secret", algorithm="HS256"),
])
async def test_incomplete_expired_or_foreign_tokens_are_401(client, token):
    response = await client.post("/api/webhooks/deliveries/process", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


async def test_replay_unknown_log_is_404(client, producer, make_endpoint):
    endpoint = await make_endpoint()

    response = await client.post(
        f"/api/webhooks/{endpoint.id}/replay",
        json={"log_id": "missing"},
        headers=auth_headers(producer.id),
    )

    assert response.status_code == 404


async def test_manual_dispatch_with_empty_queue(client, producer):
    response = await client.post("/api/webhooks/deliveries/process", headers=auth_headers(producer.id))

    assert response.status_code == 200
    assert response.json() == {"processed": 0, "successful": 0, "failed": 0}


async def test_metrics_endpoint_exposes_gateway_counters(client):
    await client.post("/api/payments/webhook", json={"event": "PAYMENT_RECEIVED", "payment": {"id": "pay_x"}})

    response = await client.get("/metrics")

    assert response.status_code == 200
    assert "gateway_webhooks_received_total" in response.text
