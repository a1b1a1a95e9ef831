"""
Buyer identity service.

Resolves buyers by email (creating them on first purchase) and enrolls them
in the members-area content a product maps to.
"""
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from paysettle.models.user import Cohort, Enrollment, SpaceProduct, User, UserRole


class BuyerService:
    """Service for buyer identities and enrollments."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_email(self, email: str) -> User | None:
        """
        Get user by email.

        Args:
            email: User email address (case-insensitive)

        Returns:
            User or None if not found
        """
        stmt = select(User).where(User.email == email.strip().lower())
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def resolve_or_create(self, email: str) -> User:
        """
        Look up a user by email, creating a buyer account when none exists.

        A concurrent creation for the same email loses on the unique
        constraint and falls back to the existing row.
        """
        user = await self.get_by_email(email)
        if user:
            return user

        user = User(email=email.strip().lower(), role=UserRole.BUYER)
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            existing = await self.get_by_email(email)
            if existing is None:
                raise
            return existing
        await self.db.refresh(user)
        return user

    async def find_active_cohort(self, product_id: str) -> tuple[str | None, str | None]:
        """
        Find the members-area space a product grants and its active cohort.

        Returns:
            (space_id, cohort_id); space_id is None when the product maps to no space
        """
        stmt = select(SpaceProduct.space_id).where(
            SpaceProduct.product_id == product_id,
            SpaceProduct.product_type == "principal",
        ).limit(1)
        space_id = (await self.db.execute(stmt)).scalar_one_or_none()
        if space_id is None:
            return None, None

        cohort_stmt = select(Cohort.id).where(
            Cohort.space_id == space_id,
            Cohort.is_active.is_(True),
        ).limit(1)
        cohort_id = (await self.db.execute(cohort_stmt)).scalar_one_or_none()
        return space_id, cohort_id

    async def enroll(self, user_id: str, product_id: str) -> Enrollment | None:
        """
        Enroll a user in a product's members area.

        Returns:
            The enrollment (existing or new), or None if the product maps to no space
        """
        space_id, cohort_id = await self.find_active_cohort(product_id)
        if space_id is None:
            return None

        stmt = select(Enrollment).where(
            Enrollment.user_id == user_id,
            Enrollment.product_id == product_id,
        )
        existing = (await self.db.execute(stmt)).scalar_one_or_none()
        if existing:
            return existing

        enrollment = Enrollment(user_id=user_id, product_id=product_id, cohort_id=cohort_id)
        self.db.add(enrollment)
        await self.db.commit()
        await self.db.refresh(enrollment)
        return enrollment
