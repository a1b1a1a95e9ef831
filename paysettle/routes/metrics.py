"""
Prometheus metrics endpoint.

Exposes request, settlement and webhook delivery metrics for monitoring.
"""
from fastapi import APIRouter, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

router = APIRouter()

# ============================================
# HTTP Request Metrics
# ============================================

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# ============================================
# Business Metrics - Inbound gateway webhooks
# ============================================

gateway_webhooks_received = Counter(
    'gateway_webhooks_received_total',
    'Gateway callbacks received, by outcome',
    ['gateway', 'event_type', 'outcome']
)

orders_settled = Counter(
    'orders_settled_total',
    'Orders transitioned to paid with a computed settlement',
    ['gateway', 'payment_method']
)

side_effects_failed = Counter(
    'side_effects_failed_total',
    'Best-effort post-commit side effects that raised',
    ['effect']
)

# ============================================
# Webhook Delivery Metrics
# ============================================

webhooks_enqueued = Counter(
    'webhook_deliveries_enqueued_total',
    'Delivery jobs created by event fan-out',
    ['event_type']
)

webhook_delivery_attempts = Counter(
    'webhook_delivery_attempts_total',
    'Outbound delivery attempts, by result',
    ['result']
)


# ============================================
# Metrics Helper Functions
# ============================================

def track_request(method: str, endpoint: str, status: int, duration_seconds: float):
    """
    Record HTTP request metrics.

    Call this after each request.
    """
    http_requests_total.labels(
        method=method,
        endpoint=endpoint,
        status=status
    ).inc()

    http_request_duration.labels(
        method=method,
        endpoint=endpoint
    ).observe(duration_seconds)


def track_gateway_webhook(gateway: str, event_type: str, outcome: str):
    """Record one inbound gateway callback."""
    gateway_webhooks_received.labels(
        gateway=gateway,
        event_type=event_type,
        outcome=outcome
    ).inc()


def track_order_settled(gateway: str, payment_method: str):
    """Record an order settled as paid."""
    orders_settled.labels(gateway=gateway, payment_method=payment_method).inc()


def track_side_effect_failed(effect: str):
    """Record a best-effort side effect failure."""
    side_effects_failed.labels(effect=effect).inc()


def track_webhook_enqueued(event_type: str, count: int = 1):
    """Record delivery jobs created for an event."""
    if count:
        webhooks_enqueued.labels(event_type=event_type).inc(count)


def track_delivery_attempt(result: str):
    """Record an outbound delivery attempt (delivered, retry, failed)."""
    webhook_delivery_attempts.labels(result=result).inc()


# ============================================
# Prometheus Endpoint
# ============================================

@router.get("/metrics")
async def metrics():
    """
    Prometheus metrics endpoint.

    Returns all registered metrics in Prometheus format.
    """
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
