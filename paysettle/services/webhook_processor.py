"""
Inbound Webhook Processor

Handles one gateway callback end to end:

1. normalize the payload (unmapped events and unknown orders are no-ops)
2. apply the order state machine with a conditional UPDATE; only the call
   that wins the transition runs settlement side effects
3. append the transaction event (fatal) and notify the producer (best-effort)

Redelivered callbacks for an order already in the target status are still
logged as transaction events but change nothing else.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial

from sqlalchemy.ext.asyncio import AsyncSession

from paysettle.logging_config import get_logger
from paysettle.models.order import Order, OrderStatus
from paysettle.models.producer import Product
from paysettle.models.transaction_event import EventType
from paysettle.routes.metrics import track_gateway_webhook, track_order_settled
from paysettle.services.balance_service import BalanceService
from paysettle.services.buyer_service import BuyerService
from paysettle.services.event_log import EventLogService, order_summary
from paysettle.services.fee_config_service import FeeConfigService
from paysettle.services.gateway_normalizer import GatewaySnapshot, NormalizedEvent, normalize_payload
from paysettle.services.notification_service import NotificationService
from paysettle.services.order_service import OrderService
from paysettle.services.settlement import SettlementError, compute_settlement
from paysettle.services.side_effects import SideEffect, run_side_effects
from paysettle.services.ticket_service import TicketService

log = get_logger(component="webhook_processor")


# Events that move an order out of pending_payment (or out of paid)
STATUS_EVENTS: dict[EventType, OrderStatus] = {
    EventType.PURCHASE_APPROVED: OrderStatus.PAID,
    EventType.PURCHASE_DECLINED: OrderStatus.REFUSED,
    EventType.REFUND: OrderStatus.REFUNDED,
    EventType.CHARGEBACK: OrderStatus.CHARGEBACK,
}


@dataclass(frozen=True)
class ProcessingResult:
    """Outcome reported back to the gateway."""
    message: str
    order_id: str | None = None
    event_type: str | None = None
    transitioned: bool = False
    failed_effects: tuple[str, ...] = field(default_factory=tuple)


class InboundWebhookProcessor:
    """Processes gateway callbacks against orders."""

    def __init__(self, db: AsyncSession, snapshot: GatewaySnapshot):
        self.db = db
        self.snapshot = snapshot
        self.orders = OrderService(db)
        self.fees = FeeConfigService(db)
        self.balances = BalanceService(db)
        self.buyers = BuyerService(db)
        self.tickets = TicketService(db)
        self.events = EventLogService(db)
        self.notifications = NotificationService(db)

    async def process(self, payload) -> ProcessingResult:
        """
        Process a raw gateway payload.

        Returns:
            ProcessingResult; unmapped events and unknown orders are
            successful no-ops

        Raises:
            MalformedWebhookError: payload is not a usable gateway callback
            SettlementError: the paid settlement could not be computed
            EventLogError: the transaction event could not be appended
        """
        normalized = normalize_payload(payload, self.snapshot)
        if normalized is None:
            return ProcessingResult(message="Event ignored")

        return await self.process_event(normalized)

    async def process_event(self, event: NormalizedEvent) -> ProcessingResult:
        event_type = event.event_type
        order = await self.orders.get_by_transaction(event.gateway, event.external_transaction_id)
        if order is None:
            log.info(
                "webhook_order_not_found",
                gateway=event.gateway,
                transaction_id=event.external_transaction_id,
                event_type=event_type.value,
            )
            track_gateway_webhook(event.gateway, event_type.value, "unmatched")
            return ProcessingResult(message="Sale not found, ignored", event_type=event_type.value)

        product = await self.orders.get_product(order.product_id)
        producer_id = product.producer_id if product else None
        previous_status = order.status

        transitioned = False
        effects: list[SideEffect] = []
        target = STATUS_EVENTS.get(event_type)

        if target == OrderStatus.PAID:
            if order.status != OrderStatus.PAID:
                transitioned = await self._approve(order, product, event)
        elif target is not None and order.status != target:
            transitioned = await self.orders.transition_status(order.id, target)

        if target is not None and not transitioned:
            log.info(
                "order_transition_skipped",
                order_id=order.id,
                status=previous_status.value,
                event_type=event_type.value,
            )

        await self.db.refresh(order)
        # snapshot plain values; a failed effect rolls back and expires ORM state
        summary = order_summary(order)
        order_id = order.id

        if transitioned and target == OrderStatus.PAID:
            effects.extend(self._paid_effects(order, producer_id))

        metadata = {
            "gateway": event.gateway,
            "gateway_event": event.gateway_event,
            "raw_status": event.raw_status,
            "details": event.details,
            "previous_status": previous_status.value,
            "transitioned": transitioned,
        }
        effects.append(SideEffect(
            "transaction_event",
            partial(
                self.events.append,
                order_id=order_id,
                event_type=event_type.value,
                metadata=metadata,
                summary=summary,
                producer_id=producer_id,
            ),
            fatal=True,
        ))

        # status events notify only when they changed the order
        if producer_id and (target is None or transitioned):
            effects.append(SideEffect(
                "notification",
                partial(
                    self.notifications.notify,
                    producer_id,
                    event_type.value,
                    order_id=order_id,
                    amount_cents=summary["amount_total_cents"],
                ),
            ))

        report = await run_side_effects(
            self.db,
            effects,
            order_id=order_id,
            gateway=event.gateway,
            event_type=event_type.value,
        )

        track_gateway_webhook(event.gateway, event_type.value, "transitioned" if transitioned else "logged")
        log.info(
            "gateway_webhook_processed",
            order_id=order_id,
            gateway=event.gateway,
            event_type=event_type.value,
            transitioned=transitioned,
            failed_effects=report.failed,
        )
        return ProcessingResult(
            message="Webhook processed",
            order_id=order_id,
            event_type=event_type.value,
            transitioned=transitioned,
            failed_effects=tuple(report.failed),
        )

    async def _approve(self, order: Order, product: Product | None, event: NormalizedEvent) -> bool:
        """Compute the settlement and persist the paid transition. Returns True if this call won it."""
        if product is None:
            raise SettlementError(f"Product {order.product_id} not found for order {order.id}")

        config = await self.fees.get_effective_config(product.producer_id)
        settlement = compute_settlement(
            amount_total_cents=order.amount_total_cents,
            original_price_cents=order.original_product_price_cents,
            payment_method=order.payment_method,
            installments=order.installments_chosen,
            producer_assumes_installments=product.producer_assumes_installments,
            config=config,
            paid_at=datetime.now(timezone.utc),
        )

        won = await self.orders.mark_paid(order.id, settlement, event.raw_status)
        if won:
            track_order_settled(event.gateway, order.payment_method.value)
            log.info(
                "order_marked_paid",
                order_id=order.id,
                platform_fee_cents=settlement.platform_fee_cents,
                producer_share_cents=settlement.producer_share_cents,
                security_reserve_cents=settlement.security_reserve_cents,
                release_date=settlement.release_date.isoformat(),
            )
        return won

    def _paid_effects(self, order: Order, producer_id: str | None) -> list[SideEffect]:
        effects = []
        if producer_id:
            effects.append(SideEffect(
                "balance_credit",
                partial(self.balances.credit, producer_id, order.producer_share_cents),
            ))
        if order.buyer_email:
            effects.append(SideEffect(
                "buyer_enrollment",
                partial(self._enroll_buyer, order.id, order.buyer_email, order.product_id),
            ))
        if order.ticket_batch_id:
            effects.append(SideEffect(
                "ticket_inventory",
                partial(self.tickets.record_sale, order.ticket_batch_id, order.ticket_quantity),
            ))
        return effects

    async def _enroll_buyer(self, order_id: str, email: str, product_id: str) -> None:
        buyer = await self.buyers.resolve_or_create(email)
        buyer_id = buyer.id
        await self.orders.attach_buyer(order_id, buyer_id)
        await self.buyers.enroll(buyer_id, product_id)
