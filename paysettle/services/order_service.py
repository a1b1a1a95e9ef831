"""
Order service.

Every status change is a single conditional UPDATE so that concurrent or
redelivered gateway callbacks can never apply the same transition twice.
"""
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from paysettle.models.order import Order, OrderStatus, PayoutStatus, source_statuses_for
from paysettle.models.producer import Product
from paysettle.services.settlement import SettlementResult


class OrderService:
    """Service for reading and transitioning orders."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_transaction(self, gateway: str, transaction_id: str) -> Order | None:
        """
        Get an order by its gateway transaction id.

        Args:
            gateway: Gateway identifier (asaas, iugu)
            transaction_id: Gateway-side transaction/invoice id

        Returns:
            Order or None if no order matches
        """
        stmt = select(Order).where(
            Order.gateway_identifier == gateway,
            Order.gateway_transaction_id == transaction_id,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_product(self, product_id: str) -> Product | None:
        """Get the product an order was placed for."""
        stmt = select(Product).where(Product.id == product_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def mark_paid(
        self,
        order_id: str,
        settlement: SettlementResult,
        gateway_status: str | None,
    ) -> bool:
        """
        Persist the paid transition together with its settlement.

        Returns:
            True if this call performed the transition, False if the order
            was already paid (or otherwise not in a payable state)
        """
        stmt = (
            update(Order)
            .where(
                Order.id == order_id,
                Order.status.in_(source_statuses_for(OrderStatus.PAID)),
            )
            .values(
                status=OrderStatus.PAID,
                paid_at=settlement.paid_at,
                release_date=settlement.release_date,
                platform_fee_cents=settlement.platform_fee_cents,
                producer_share_cents=settlement.producer_share_cents,
                security_reserve_cents=settlement.security_reserve_cents,
                payout_status=PayoutStatus.PENDING,
                gateway_status=gateway_status,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount == 1

    async def transition_status(self, order_id: str, target: OrderStatus) -> bool:
        """
        Move an order into a refused/refunded/chargeback status.

        Returns:
            True if the status changed, False if the order already had the
            target status or sits in a terminal status
        """
        sources = source_statuses_for(target)
        if not sources:
            return False

        stmt = (
            update(Order)
            .where(Order.id == order_id, Order.status.in_(sources))
            .values(status=target)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount == 1

    async def attach_buyer(self, order_id: str, buyer_id: str) -> None:
        """Link the resolved buyer identity to the order if not linked yet."""
        stmt = (
            update(Order)
            .where(Order.id == order_id, Order.buyer_id.is_(None))
            .values(buyer_id=buyer_id)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)
        await self.db.commit()
