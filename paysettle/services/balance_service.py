"""
Producer balance service.

Balances are only changed with `balance_cents = balance_cents + :amount`
statements; no read-modify-write happens in Python.
"""
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from paysettle.models.producer import ProducerBalance


class BalanceService:
    """Service for producer running balances."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_balance(self, producer_id: str) -> int:
        """
        Get balance for a producer.

        Args:
            producer_id: Producer UUID

        Returns:
            Balance in cents (0 if no balance row exists)
        """
        stmt = select(ProducerBalance.balance_cents).where(ProducerBalance.producer_id == producer_id)
        result = await self.db.execute(stmt)
        balance = result.scalar_one_or_none()
        return balance or 0

    async def _increment(self, producer_id: str, amount_cents: int) -> bool:
        stmt = (
            update(ProducerBalance)
            .where(ProducerBalance.producer_id == producer_id)
            .values(balance_cents=ProducerBalance.balance_cents + amount_cents)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def credit(self, producer_id: str, amount_cents: int) -> None:
        """
        Atomically add amount_cents to a producer's balance.

        Creates the balance row on first credit. If a concurrent first credit
        wins the insert, the unique constraint fails and the increment is
        applied to the row it created.
        """
        if amount_cents <= 0:
            return

        if await self._increment(producer_id, amount_cents):
            await self.db.commit()
            return

        try:
            self.db.add(ProducerBalance(producer_id=producer_id, balance_cents=amount_cents))
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            await self._increment(producer_id, amount_cents)
            await self.db.commit()
