"""
Transaction event model.

Append-only log of normalized business events per order. Every row is the
trigger for producer notifications and outbound webhook fan-out.
"""
import enum
from sqlalchemy import JSON, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column
from paysettle.models.base import Base, IdMixin, TimestampMixin


class EventType(str, enum.Enum):
    """Internal normalized event vocabulary."""
    PURCHASE_APPROVED = "purchase_approved"
    PIX_GENERATED = "pix_generated"
    BOLETO_GENERATED = "boleto_generated"
    PURCHASE_DECLINED = "purchase_declined"
    REFUND = "refund"
    CHARGEBACK = "chargeback"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"
    SUBSCRIPTION_OVERDUE = "subscription_overdue"
    SUBSCRIPTION_RENEWED = "subscription_renewed"

    # Secondary gateway events, logged and fanned out without status changes
    PAYMENT_CREATED = "payment_created"
    PAYMENT_OVERDUE = "payment_overdue"
    PAYMENT_DELETED = "payment_deleted"
    CHARGEBACK_DISPUTE = "chargeback_dispute"
    CHARGEBACK_REVERSAL = "chargeback_reversal"
    DUNNING_RECEIVED = "dunning_received"
    DUNNING_REQUESTED = "dunning_requested"


class TransactionEvent(Base, IdMixin, TimestampMixin):
    """
    One immutable fact about an order.

    event_type is stored as plain text so replayed and test payloads
    (e.g. "webhook.test") never need a schema change.
    """
    __tablename__ = "transaction_events"

    order_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("orders.id"),
        nullable=False,
        index=True
    )
    event_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    event_metadata: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)

    def __repr__(self):
        return f"<TransactionEvent(id={self.id}, order_id={self.order_id}, type={self.event_type})>"
