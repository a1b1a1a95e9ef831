"""
Order ("sale") model.

One row per checkout attempt. Created by checkout initiation and mutated
afterwards only by the inbound webhook processor. Orders are never deleted;
refused and refunded orders are kept for audit.
"""
import enum
from datetime import date, datetime
from sqlalchemy import (
    JSON, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column
from paysettle.models.base import Base, IdMixin, TimestampMixin, enum_type


class OrderStatus(str, enum.Enum):
    """Order status enum."""
    PENDING_PAYMENT = "pending_payment"
    PAID = "paid"
    REFUSED = "refused"
    REFUNDED = "refunded"
    CHARGEBACK = "chargeback"


# Statuses an order may move into from each current status.
# pending_payment is the only open state; paid may still be refunded or charged back.
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING_PAYMENT: frozenset({
        OrderStatus.PAID,
        OrderStatus.REFUSED,
        OrderStatus.REFUNDED,
        OrderStatus.CHARGEBACK,
    }),
    OrderStatus.PAID: frozenset({OrderStatus.REFUNDED, OrderStatus.CHARGEBACK}),
    OrderStatus.REFUSED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
    OrderStatus.CHARGEBACK: frozenset(),
}


def source_statuses_for(target: OrderStatus) -> list[OrderStatus]:
    """Statuses from which an order may transition into ``target``."""
    return [
        source for source, targets in ALLOWED_TRANSITIONS.items()
        if target in targets
    ]


class PaymentMethod(str, enum.Enum):
    """Payment method enum."""
    PIX = "pix"
    BOLETO = "bank_slip"
    CREDIT_CARD = "credit_card"


class PayoutStatus(str, enum.Enum):
    """Payout status of a paid order."""
    PENDING = "pending"
    RELEASED = "released"
    WITHDRAWN = "withdrawn"


class Order(Base, IdMixin, TimestampMixin):
    """
    Order model.

    Money is stored as integer minor-currency units (cents).
    """
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint(
            "gateway_identifier",
            "gateway_transaction_id",
            name="uq_orders_gateway_transaction",
        ),
    )

    product_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("products.id"),
        nullable=False,
        index=True
    )
    buyer_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    buyer_email: Mapped[str] = mapped_column(String(255), nullable=False)

    gateway_identifier: Mapped[str] = mapped_column(String(50), nullable=False)
    gateway_transaction_id: Mapped[str] = mapped_column(String(255), nullable=False)
    gateway_status: Mapped[str | None] = mapped_column(String(100), nullable=True)

    status: Mapped[OrderStatus] = mapped_column(
        enum_type(OrderStatus),
        nullable=False,
        default=OrderStatus.PENDING_PAYMENT
    )
    payment_method: Mapped[PaymentMethod] = mapped_column(
        enum_type(PaymentMethod),
        nullable=False
    )
    amount_total_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    original_product_price_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    installments_chosen: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    ticket_batch_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("ticket_batches.id"),
        nullable=True
    )
    event_attendees: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # Settlement, filled in when the order is paid
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    release_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    platform_fee_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    producer_share_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    security_reserve_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payout_status: Mapped[PayoutStatus | None] = mapped_column(
        enum_type(PayoutStatus),
        nullable=True
    )

    @property
    def ticket_quantity(self) -> int:
        """Number of tickets this order consumes from its batch."""
        return max(1, len(self.event_attendees or []))

    def __repr__(self):
        return f"<Order(id={self.id}, gateway={self.gateway_identifier}, status={self.status})>"
