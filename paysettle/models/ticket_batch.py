"""
Ticket batch model.

A tier of event tickets. sold_quantity never exceeds total_quantity and is
only incremented through atomic conditional updates.
"""
from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from paysettle.models.base import Base, IdMixin, TimestampMixin


class TicketBatch(Base, IdMixin, TimestampMixin):
    """Ticket batch (lote) for an event product."""
    __tablename__ = "ticket_batches"
    __table_args__ = (
        CheckConstraint("sold_quantity <= total_quantity", name="ck_ticket_batches_not_oversold"),
    )

    product_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("products.id"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    sold_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_advance_to_next: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self):
        return (
            f"<TicketBatch(id={self.id}, order={self.display_order}, "
            f"sold={self.sold_quantity}/{self.total_quantity}, active={self.is_active})>"
        )
