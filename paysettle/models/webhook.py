"""
Webhook models.

Producer-registered endpoints, the durable delivery job queue and the
per-attempt delivery log.
"""
import enum
from datetime import datetime
from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from paysettle.models.base import Base, IdMixin, TimestampMixin, enum_type


class DeliveryStatus(str, enum.Enum):
    """Delivery job status enum."""
    PENDING = "pending"
    PROCESSING = "processing"
    DELIVERED = "delivered"
    FAILED = "failed"


class DeliveryLogStatus(str, enum.Enum):
    """Outcome of a single delivery attempt."""
    SUCCESS = "success"
    FAILED = "failed"
    ERROR = "error"


class WebhookEndpoint(Base, IdMixin, TimestampMixin):
    """
    Producer webhook endpoint.

    events holds the subscribed internal event types. When product_id is set
    the endpoint only receives events for that product.
    """
    __tablename__ = "webhook_endpoints"

    producer_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    secret: Mapped[str] = mapped_column(String(255), nullable=False)
    events: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    product_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("products.id"),
        nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def subscribes_to(self, event_type: str, product_id: str | None) -> bool:
        """Whether an event of this type for this product should reach the endpoint."""
        if not self.is_active or event_type not in (self.events or []):
            return False
        return self.product_id is None or self.product_id == product_id

    def __repr__(self):
        return f"<WebhookEndpoint(id={self.id}, producer_id={self.producer_id}, url={self.url})>"


class WebhookDeliveryJob(Base, IdMixin, TimestampMixin):
    """
    One pending delivery of one event to one endpoint.

    A job is held by at most one worker at a time: claim_token and
    processing_started_at are set by the atomic claim and cleared on release.
    """
    __tablename__ = "webhook_delivery_jobs"
    __table_args__ = (
        Index("ix_webhook_delivery_jobs_due", "status", "next_attempt_at"),
    )

    webhook_endpoint_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("webhook_endpoints.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    transaction_event_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("transaction_events.id"),
        nullable=True
    )
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    status: Mapped[DeliveryStatus] = mapped_column(
        enum_type(DeliveryStatus),
        nullable=False,
        default=DeliveryStatus.PENDING
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    next_attempt_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_attempt_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processing_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    claim_token: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)

    def __repr__(self):
        return f"<WebhookDeliveryJob(id={self.id}, status={self.status}, attempts={self.attempts}/{self.max_attempts})>"


class WebhookEventLog(Base, IdMixin, TimestampMixin):
    """Delivery log row, one per attempt, shown to producers."""
    __tablename__ = "webhook_event_logs"

    endpoint_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("webhook_endpoints.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    job_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[DeliveryLogStatus] = mapped_column(
        enum_type(DeliveryLogStatus),
        nullable=False
    )
    attempt: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    response_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_body: Mapped[str | None] = mapped_column(Text, nullable=True)
