"""
Fee configuration service.

Resolves the effective fee configuration for a producer: producer overrides
first, then the platform_settings row, then the configured defaults.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paysettle.config import settings
from paysettle.models.producer import PlatformSettings, ProducerSettings
from paysettle.services.settlement import FeeConfig


def _first(*values):
    for value in values:
        if value is not None:
            return value
    return None


class FeeConfigService:
    """Service for reading fee configuration."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_platform_settings(self) -> PlatformSettings | None:
        stmt = select(PlatformSettings).where(PlatformSettings.id == 1)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_producer_settings(self, producer_id: str) -> ProducerSettings | None:
        stmt = select(ProducerSettings).where(ProducerSettings.producer_id == producer_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_effective_config(self, producer_id: str) -> FeeConfig:
        """
        Build the FeeConfig that applies to a producer's sales.

        Args:
            producer_id: Producer (user) UUID

        Returns:
            FeeConfig with every field resolved
        """
        platform = await self.get_platform_settings()
        producer = await self.get_producer_settings(producer_id)

        def platform_value(name: str):
            return getattr(platform, name) if platform else None

        def producer_value(name: str):
            return getattr(producer, name) if producer else None

        return FeeConfig(
            pix_fee_percent=_first(
                platform_value("default_pix_fee_percent"), settings.DEFAULT_PIX_FEE_PERCENT
            ),
            boleto_fee_percent=_first(
                platform_value("default_boleto_fee_percent"), settings.DEFAULT_BOLETO_FEE_PERCENT
            ),
            card_fee_percent=_first(
                platform_value("default_card_fee_percent"), settings.DEFAULT_CARD_FEE_PERCENT
            ),
            fixed_fee_cents=_first(
                producer_value("custom_fixed_fee_cents"),
                platform_value("default_fixed_fee_cents"),
                settings.DEFAULT_FIXED_FEE_CENTS,
            ),
            security_reserve_percent=_first(
                producer_value("custom_security_reserve_percent"),
                platform_value("default_security_reserve_percent"),
                settings.DEFAULT_SECURITY_RESERVE_PERCENT,
            ),
            security_reserve_days=_first(
                producer_value("custom_security_reserve_days"),
                platform_value("default_security_reserve_days"),
                settings.DEFAULT_SECURITY_RESERVE_DAYS,
            ),
            withdrawal_fee_cents=_first(
                producer_value("custom_withdrawal_fee_cents"),
                platform_value("default_withdrawal_fee_cents"),
                settings.DEFAULT_WITHDRAWAL_FEE_CENTS,
            ),
            pix_release_days=_first(
                platform_value("default_pix_release_days"), settings.DEFAULT_PIX_RELEASE_DAYS
            ),
            boleto_release_days=_first(
                platform_value("default_boleto_release_days"), settings.DEFAULT_BOLETO_RELEASE_DAYS
            ),
            card_release_days=_first(
                platform_value("default_card_release_days"), settings.DEFAULT_CARD_RELEASE_DAYS
            ),
            card_installment_interest_rate=_first(
                platform_value("card_installment_interest_rate"),
                settings.DEFAULT_CARD_INSTALLMENT_INTEREST_RATE,
            ),
        )
