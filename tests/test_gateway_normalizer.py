"""
Tests for the gateway webhook normalizer.
"""
import pytest

from paysettle.config import GatewaySettings
from paysettle.models.transaction_event import EventType
from paysettle.services.gateway_normalizer import (
    ASAAS_EVENT_MAP,
    GatewaySnapshot,
    MalformedWebhookError,
    detect_gateway,
    normalize_payload,
)


@pytest.mark.parametrize("gateway_event,expected", [
    ("PAYMENT_RECEIVED", EventType.PURCHASE_APPROVED),
    ("PAYMENT_CONFIRMED", EventType.PURCHASE_APPROVED),
    ("PAYMENT_REFUSED", EventType.PURCHASE_DECLINED),
    ("PAYMENT_REFUNDED", EventType.REFUND),
    ("PAYMENT_CHARGEBACK_REQUESTED", EventType.CHARGEBACK),
    ("PAYMENT_OVERDUE", EventType.PAYMENT_OVERDUE),
])
def test_asaas_events_map_to_internal_vocabulary(snapshot, gateway_event, expected):
    event = normalize_payload({"event": gateway_event, "payment": {"id": "pay_1", "status": "X"}}, snapshot)

    assert event.event_type == expected
    assert event.external_transaction_id == "pay_1"
    assert event.gateway == "asaas"
    assert event.gateway_event == gateway_event
    assert event.raw_status == "X"


def test_every_asaas_mapping_targets_a_known_event_type():
    assert all(isinstance(value, EventType) for value in ASAAS_EVENT_MAP.values())


def test_iugu_status_changed_paid_is_purchase_approved(snapshot):
    payload = {"event": "invoice.status_changed", "data": {"id": "INV_9", "status": "paid"}}

    event = normalize_payload(payload, snapshot)

    assert event.event_type == EventType.PURCHASE_APPROVED
    assert event.external_transaction_id == "INV_9"
    assert event.gateway == "iugu"


def test_iugu_payment_failed_is_purchase_declined(snapshot):
    payload = {"event": "invoice.payment_failed", "data": {"id": "INV_9", "status": "pending"}}

    assert normalize_payload(payload, snapshot).event_type == EventType.PURCHASE_DECLINED


def test_unmapped_event_code_is_ignored(snapshot):
    assert normalize_payload({"event": "PAYMENT_UPDATED", "payment": {"id": "pay_1"}}, snapshot) is None
    assert normalize_payload({"event": "invoice.created", "data": {"id": "INV_1"}}, snapshot) is None
    assert normalize_payload(
        {"event": "invoice.status_changed", "data": {"id": "INV_1", "status": "pending"}},
        snapshot,
    ) is None


def test_missing_transaction_id_is_malformed(snapshot):
    with pytest.raises(MalformedWebhookError):
        normalize_payload({"event": "PAYMENT_RECEIVED", "payment": {"status": "RECEIVED"}}, snapshot)

    with pytest.raises(MalformedWebhookError):
        normalize_payload({"event": "invoice.status_changed", "data": {"status": "paid"}}, snapshot)


@pytest.mark.parametrize("payload", [
    ["not", "an", "object"],
    {"foo": "bar"},
    {"event": 42},
])
def test_unrecognized_shapes_are_malformed(snapshot, payload):
    with pytest.raises(MalformedWebhookError):
        normalize_payload(payload, snapshot)


def test_disabled_gateway_payload_is_acknowledged_not_rejected():
    snapshot = GatewaySnapshot.from_settings([
        GatewaySettings(identifier="asaas", priority=2, enabled=False),
        GatewaySettings(identifier="iugu", priority=1),
    ])

    assert normalize_payload({"event": "PAYMENT_RECEIVED", "payment": {"id": "pay_1"}}, snapshot) is None


def test_snapshot_orders_gateways_by_priority():
    snapshot = GatewaySnapshot.from_settings([
        GatewaySettings(identifier="asaas", priority=1),
        GatewaySettings(identifier="iugu", priority=5),
    ])

    assert snapshot.enabled_identifiers() == ["iugu", "asaas"]
    assert detect_gateway({"event": "PAYMENT_RECEIVED", "payment": {"id": "x"}}, snapshot) == "asaas"
