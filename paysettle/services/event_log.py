"""
Event Log

Append-only transaction events. Appending an event also enqueues one
delivery job per subscribed webhook endpoint, in the same commit, so an
event that exists always has its fan-out recorded.
"""
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from paysettle.logging_config import get_logger
from paysettle.models.base import new_id
from paysettle.models.order import Order, PaymentMethod
from paysettle.models.producer import Product
from paysettle.models.transaction_event import EventType, TransactionEvent
from paysettle.models.webhook import WebhookEndpoint
from paysettle.routes.metrics import track_webhook_enqueued
from paysettle.services.webhook_service import build_delivery_job

log = get_logger(component="event_log")


class EventLogError(RuntimeError):
    """A transaction event (or its fan-out) could not be persisted."""
    pass


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def order_summary(order: Order) -> dict:
    """Plain-data snapshot of an order for event payloads."""
    return {
        "id": order.id,
        "product_id": order.product_id,
        "status": order.status.value if order.status else None,
        "payment_method": order.payment_method.value if order.payment_method else None,
        "amount_total_cents": order.amount_total_cents,
        "original_product_price_cents": order.original_product_price_cents,
        "installments": order.installments_chosen,
        "buyer_email": order.buyer_email,
        "gateway": order.gateway_identifier,
        "gateway_transaction_id": order.gateway_transaction_id,
        "paid_at": _iso(order.paid_at),
        "ticket_batch_id": order.ticket_batch_id,
        "ticket_quantity": order.ticket_quantity if order.ticket_batch_id else None,
    }


def build_event_payload(event_id: str, event_type: str, created_at: datetime, summary: dict) -> dict:
    """Body delivered to producer endpoints."""
    return {
        "id": event_id,
        "type": event_type,
        "created_at": created_at.isoformat(),
        "data": {"order": summary},
    }


class EventLogService:
    """Service for appending transaction events and fanning them out."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def subscribed_endpoints(self, producer_id: str, event_type: str, product_id: str | None) -> list[WebhookEndpoint]:
        stmt = select(WebhookEndpoint).where(
            WebhookEndpoint.producer_id == producer_id,
            WebhookEndpoint.is_active.is_(True),
        )
        result = await self.db.execute(stmt)
        return [e for e in result.scalars().all() if e.subscribes_to(event_type, product_id)]

    async def append(
        self,
        *,
        order_id: str,
        event_type: str,
        metadata: dict,
        summary: dict,
        producer_id: str | None,
    ) -> TransactionEvent:
        """
        Append an event and enqueue its webhook deliveries.

        Args:
            order_id: Order the event belongs to
            event_type: Internal event type
            metadata: Gateway context stored with the event
            summary: Order snapshot sent to endpoints (see order_summary)
            producer_id: Owner of the endpoints to fan out to

        Returns:
            The persisted TransactionEvent

        Raises:
            EventLogError: the event or its jobs could not be written
        """
        created_at = datetime.now(timezone.utc)
        event = TransactionEvent(
            id=new_id(),
            order_id=order_id,
            event_type=event_type,
            event_metadata=metadata,
        )

        try:
            self.db.add(event)
            jobs = []
            if producer_id:
                payload = build_event_payload(event.id, event_type, created_at, summary)
                for endpoint in await self.subscribed_endpoints(producer_id, event_type, summary.get("product_id")):
                    jobs.append(build_delivery_job(
                        endpoint.id,
                        event_type,
                        payload,
                        transaction_event_id=event.id,
                    ))
                self.db.add_all(jobs)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.error("transaction_event_append_failed", order_id=order_id, event_type=event_type, error=str(e))
            raise EventLogError(f"Failed to append {event_type} for order {order_id}") from e

        track_webhook_enqueued(event_type, len(jobs))
        log.info(
            "transaction_event_appended",
            order_id=order_id,
            event_id=event.id,
            event_type=event_type,
            deliveries_enqueued=len(jobs),
        )
        return event

    async def record_payment_generated(self, order: Order) -> TransactionEvent | None:
        """
        Log pix_generated / boleto_generated for a newly created order.

        Called by checkout initiation once the gateway returned the pix code
        or bank slip. Card orders produce no event.
        """
        if order.payment_method == PaymentMethod.PIX:
            event_type = EventType.PIX_GENERATED.value
        elif order.payment_method == PaymentMethod.BOLETO:
            event_type = EventType.BOLETO_GENERATED.value
        else:
            return None

        producer_id = (
            await self.db.execute(select(Product.producer_id).where(Product.id == order.product_id))
        ).scalar_one_or_none()

        return await self.append(
            order_id=order.id,
            event_type=event_type,
            metadata={"gateway": order.gateway_identifier, "source": "checkout"},
            summary=order_summary(order),
            producer_id=producer_id,
        )
