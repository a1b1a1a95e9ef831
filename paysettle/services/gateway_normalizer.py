"""
Gateway Webhook Normalizer

Maps each payment gateway's callback payload onto one internal event
vocabulary. All gateways post to the same endpoint, so the producing gateway
is detected from the payload shape. Every gateway has one normalizer with the
same signature; the first enabled gateway (by priority) whose shape matches
handles the payload.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from paysettle.config import GatewaySettings, settings
from paysettle.logging_config import get_logger
from paysettle.models.transaction_event import EventType

log = get_logger(component="gateway_normalizer")


class MalformedWebhookError(ValueError):
    """Payload is not a recognizable gateway callback or lacks required fields."""
    pass


@dataclass(frozen=True)
class NormalizedEvent:
    """A gateway callback expressed in the internal vocabulary."""
    event_type: EventType
    external_transaction_id: str
    gateway: str
    gateway_event: str
    raw_status: Optional[str] = None
    details: Optional[str] = None
    raw: dict = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class GatewayConfig:
    identifier: str
    priority: int
    enabled: bool


@dataclass(frozen=True)
class GatewaySnapshot:
    """
    Immutable, prioritized view of the configured gateways.

    Built once per request and passed down explicitly.
    """
    gateways: tuple[GatewayConfig, ...]

    @classmethod
    def from_settings(cls, entries: list[GatewaySettings]) -> "GatewaySnapshot":
        ordered = sorted(entries, key=lambda g: g.priority, reverse=True)
        return cls(tuple(GatewayConfig(g.identifier, g.priority, g.enabled) for g in ordered))

    def enabled_identifiers(self) -> list[str]:
        return [g.identifier for g in self.gateways if g.enabled]

    def is_enabled(self, identifier: str) -> bool:
        return identifier in self.enabled_identifiers()


def get_gateway_snapshot() -> GatewaySnapshot:
    """FastAPI dependency: snapshot of the configured gateways."""
    return GatewaySnapshot.from_settings(settings.PAYMENT_GATEWAYS)


# ============================================
# Asaas
# ============================================

ASAAS_EVENT_MAP: dict[str, EventType] = {
    "PAYMENT_CREATED": EventType.PAYMENT_CREATED,
    "PAYMENT_RECEIVED": EventType.PURCHASE_APPROVED,
    "PAYMENT_CONFIRMED": EventType.PURCHASE_APPROVED,
    "PAYMENT_RECEIVED_IN_CASH": EventType.PURCHASE_APPROVED,
    "PAYMENT_OVERDUE": EventType.PAYMENT_OVERDUE,
    "PAYMENT_DELETED": EventType.PAYMENT_DELETED,
    "PAYMENT_REFUNDED": EventType.REFUND,
    "PAYMENT_REFUSED": EventType.PURCHASE_DECLINED,
    "PAYMENT_CHARGEBACK_REQUESTED": EventType.CHARGEBACK,
    "PAYMENT_CHARGEBACK_DISPUTE": EventType.CHARGEBACK_DISPUTE,
    "PAYMENT_AWAITING_CHARGEBACK_REVERSAL": EventType.CHARGEBACK_REVERSAL,
    "PAYMENT_DUNNING_RECEIVED": EventType.DUNNING_RECEIVED,
    "PAYMENT_DUNNING_REQUESTED": EventType.DUNNING_REQUESTED,
    "SUBSCRIPTION_DELETED": EventType.SUBSCRIPTION_CANCELLED,
    "SUBSCRIPTION_INACTIVATED": EventType.SUBSCRIPTION_CANCELLED,
}


def _looks_like_asaas(payload: dict) -> bool:
    event = payload.get("event")
    return isinstance(event, str) and event.startswith(("PAYMENT_", "SUBSCRIPTION_"))


def _normalize_asaas(payload: dict) -> Optional[NormalizedEvent]:
    gateway_event = payload["event"]
    event_type = ASAAS_EVENT_MAP.get(gateway_event)
    if event_type is None:
        return None

    payment = payload.get("payment") or payload.get("subscription") or payload
    transaction_id = payment.get("id") if isinstance(payment, dict) else None
    if not transaction_id:
        raise MalformedWebhookError("Transaction id not found in Asaas payload")

    return NormalizedEvent(
        event_type=event_type,
        external_transaction_id=str(transaction_id),
        gateway="asaas",
        gateway_event=gateway_event,
        raw_status=payment.get("status"),
        details=payment.get("rejectionReason") or payment.get("description"),
        raw=payload,
    )


# ============================================
# Iugu
# ============================================

# invoice.status_changed carries the new invoice status in data.status
IUGU_INVOICE_STATUS_MAP: dict[str, EventType] = {
    "paid": EventType.PURCHASE_APPROVED,
    "refunded": EventType.REFUND,
    "chargeback": EventType.CHARGEBACK,
    "canceled": EventType.PURCHASE_DECLINED,
    "expired": EventType.PURCHASE_DECLINED,
}

IUGU_EVENT_MAP: dict[str, EventType] = {
    "invoice.payment_failed": EventType.PURCHASE_DECLINED,
    "invoice.refund": EventType.REFUND,
    "invoice.dunning_action": EventType.SUBSCRIPTION_OVERDUE,
    "subscription.suspended": EventType.SUBSCRIPTION_CANCELLED,
    "subscription.expired": EventType.SUBSCRIPTION_CANCELLED,
    "subscription.renewed": EventType.SUBSCRIPTION_RENEWED,
}


def _looks_like_iugu(payload: dict) -> bool:
    return isinstance(payload.get("event"), str) and isinstance(payload.get("data"), dict)


def _normalize_iugu(payload: dict) -> Optional[NormalizedEvent]:
    gateway_event = payload["event"]
    data = payload["data"]
    raw_status = data.get("status")

    if gateway_event == "invoice.status_changed":
        event_type = IUGU_INVOICE_STATUS_MAP.get(raw_status or "")
    else:
        event_type = IUGU_EVENT_MAP.get(gateway_event)
    if event_type is None:
        return None

    # subscription events identify the subscription; invoice events the invoice
    transaction_id = data.get("id") or data.get("subscription_id")
    if not transaction_id:
        raise MalformedWebhookError("Transaction id not found in Iugu payload")

    return NormalizedEvent(
        event_type=event_type,
        external_transaction_id=str(transaction_id),
        gateway="iugu",
        gateway_event=gateway_event,
        raw_status=raw_status,
        details=data.get("lr") or data.get("message"),
        raw=payload,
    )


Detector = Callable[[dict], bool]
Normalizer = Callable[[dict], Optional[NormalizedEvent]]

GATEWAY_NORMALIZERS: dict[str, tuple[Detector, Normalizer]] = {
    "asaas": (_looks_like_asaas, _normalize_asaas),
    "iugu": (_looks_like_iugu, _normalize_iugu),
}


def detect_gateway(payload: dict, snapshot: GatewaySnapshot) -> Optional[str]:
    """
    Identify the gateway that produced a payload.

    Enabled gateways are tried in priority order; disabled gateways are
    checked last so their payloads can be acknowledged rather than rejected.
    """
    enabled = snapshot.enabled_identifiers()
    disabled = [g.identifier for g in snapshot.gateways if not g.enabled]
    for identifier in enabled + disabled:
        entry = GATEWAY_NORMALIZERS.get(identifier)
        if entry and entry[0](payload):
            return identifier
    return None


def normalize_payload(payload: Any, snapshot: GatewaySnapshot) -> Optional[NormalizedEvent]:
    """
    Normalize a gateway callback.

    Returns:
        NormalizedEvent, or None when the event code is unmapped or the
        gateway is disabled (both acknowledged as no-ops)

    Raises:
        MalformedWebhookError: payload shape unknown or transaction id missing
    """
    if not isinstance(payload, dict):
        raise MalformedWebhookError("Payload must be a JSON object")

    gateway = detect_gateway(payload, snapshot)
    if gateway is None:
        raise MalformedWebhookError("Unrecognized webhook format")

    if not snapshot.is_enabled(gateway):
        log.warning("gateway_disabled_payload_ignored", gateway=gateway, gateway_event=payload.get("event"))
        return None

    normalized = GATEWAY_NORMALIZERS[gateway][1](payload)
    if normalized is None:
        log.info("gateway_event_unmapped", gateway=gateway, gateway_event=payload.get("event"))
    return normalized
