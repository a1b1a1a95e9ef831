"""
Ticket batch service.

Sold quantities move with one conditional increment per approved order;
the guard `sold_quantity + n <= total_quantity` keeps batches from overselling
even under concurrent approvals.
"""
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from paysettle.logging_config import get_logger
from paysettle.models.ticket_batch import TicketBatch

log = get_logger(component="ticket_service")


class TicketInventoryError(RuntimeError):
    """A sale could not be recorded against its ticket batch."""

    def __init__(self, batch_id: str, quantity: int):
        super().__init__(f"Ticket batch {batch_id} cannot take {quantity} more ticket(s)")
        self.batch_id = batch_id
        self.quantity = quantity


@dataclass(frozen=True)
class TicketSaleResult:
    batch_id: str
    sold_quantity: int
    total_quantity: int
    exhausted: bool
    advanced_to: str | None = None


class TicketService:
    """Service for ticket batch inventory."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record_sale(self, batch_id: str, quantity: int = 1) -> TicketSaleResult:
        """
        Increment a batch's sold quantity and advance tiers when it sells out.

        Args:
            batch_id: Ticket batch UUID
            quantity: Tickets sold by the order

        Returns:
            TicketSaleResult

        Raises:
            TicketInventoryError: batch missing or without enough remaining tickets
        """
        stmt = (
            update(TicketBatch)
            .where(
                TicketBatch.id == batch_id,
                TicketBatch.sold_quantity + quantity <= TicketBatch.total_quantity,
            )
            .values(sold_quantity=TicketBatch.sold_quantity + quantity)
            .returning(
                TicketBatch.sold_quantity,
                TicketBatch.total_quantity,
                TicketBatch.auto_advance_to_next,
                TicketBatch.product_id,
                TicketBatch.display_order,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        row = result.one_or_none()
        await self.db.commit()

        if row is None:
            log.warning("ticket_batch_increment_rejected", batch_id=batch_id, quantity=quantity)
            raise TicketInventoryError(batch_id, quantity)

        sold, total, auto_advance, product_id, display_order = row
        exhausted = sold >= total
        advanced_to = None
        if exhausted and auto_advance:
            advanced_to = await self.advance_to_next(batch_id, product_id, display_order)

        log.info(
            "ticket_batch_sale_recorded",
            batch_id=batch_id,
            sold_quantity=sold,
            total_quantity=total,
            advanced_to=advanced_to,
        )
        return TicketSaleResult(
            batch_id=batch_id,
            sold_quantity=sold,
            total_quantity=total,
            exhausted=exhausted,
            advanced_to=advanced_to,
        )

    async def advance_to_next(self, batch_id: str, product_id: str, display_order: int) -> str | None:
        """
        Deactivate a sold-out batch and activate the next one.

        The next batch is the first inactive batch of the same product with a
        strictly greater display order. Without one, sales for the product stop.

        Returns:
            Id of the batch activated, or None
        """
        await self.db.execute(
            update(TicketBatch)
            .where(TicketBatch.id == batch_id)
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )

        next_stmt = (
            select(TicketBatch.id)
            .where(
                TicketBatch.product_id == product_id,
                TicketBatch.display_order > display_order,
                TicketBatch.is_active.is_(False),
            )
            .order_by(TicketBatch.display_order.asc())
            .limit(1)
        )
        next_id = (await self.db.execute(next_stmt)).scalar_one_or_none()

        if next_id is not None:
            await self.db.execute(
                update(TicketBatch)
                .where(TicketBatch.id == next_id, TicketBatch.is_active.is_(False))
                .values(is_active=True)
                .execution_options(synchronize_session=False)
            )
        await self.db.commit()

        if next_id is None:
            log.info("ticket_batches_exhausted", product_id=product_id, last_batch_id=batch_id)
        return next_id
