"""
Producer-side models.

Products, fee configuration (platform defaults and per-producer overrides)
and the producer's running balance.
"""
from sqlalchemy import Boolean, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from paysettle.models.base import Base, IdMixin, TimestampMixin


class Product(Base, IdMixin, TimestampMixin):
    """
    Product sold by a producer.

    Catalog management lives outside this service; only the fields the
    settlement path reads are mapped here.
    """
    __tablename__ = "products"

    producer_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    producer_assumes_installments: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False
    )

    def __repr__(self):
        return f"<Product(id={self.id}, producer_id={self.producer_id})>"


class PlatformSettings(Base, TimestampMixin):
    """
    Platform-wide fee defaults.

    Single row (id=1). Percentages are stored as percent values, e.g. 3.5 for 3.5%.
    """
    __tablename__ = "platform_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    default_security_reserve_percent: Mapped[float | None] = mapped_column(Float, nullable=True)
    default_security_reserve_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    default_fixed_fee_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    default_withdrawal_fee_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    default_pix_fee_percent: Mapped[float | None] = mapped_column(Float, nullable=True)
    default_boleto_fee_percent: Mapped[float | None] = mapped_column(Float, nullable=True)
    default_card_fee_percent: Mapped[float | None] = mapped_column(Float, nullable=True)
    default_pix_release_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    default_boleto_release_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    default_card_release_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    card_installment_interest_rate: Mapped[float | None] = mapped_column(Float, nullable=True)


class ProducerSettings(Base, IdMixin, TimestampMixin):
    """Per-producer overrides. NULL means "use the platform default"."""
    __tablename__ = "producer_settings"

    producer_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id"),
        unique=True,
        nullable=False,
        index=True
    )
    custom_security_reserve_percent: Mapped[float | None] = mapped_column(Float, nullable=True)
    custom_security_reserve_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    custom_fixed_fee_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    custom_withdrawal_fee_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)


class ProducerBalance(Base, IdMixin, TimestampMixin):
    """
    Producer running balance.

    Each producer has at most one balance row. Only ever changed through
    atomic SQL increments.
    """
    __tablename__ = "producer_balances"

    producer_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id"),
        unique=True,
        nullable=False,
        index=True
    )
    balance_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<ProducerBalance(producer_id={self.producer_id}, balance_cents={self.balance_cents})>"
