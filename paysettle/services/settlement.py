"""
Settlement Calculator

Pure functions: given the effective fee configuration and an order, compute
the platform fee, producer share, security reserve and funds-release date.
All amounts are integer cents; fractional cents round half up.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from paysettle.models.order import PaymentMethod


class SettlementError(ValueError):
    """Fee configuration or order amounts cannot produce a settlement."""
    pass


@dataclass(frozen=True)
class FeeConfig:
    """
    Effective fee configuration for one producer.

    Percent fields hold percent values (3.0 means 3%).
    """
    pix_fee_percent: float
    boleto_fee_percent: float
    card_fee_percent: float
    fixed_fee_cents: int
    security_reserve_percent: float
    security_reserve_days: int
    pix_release_days: int
    boleto_release_days: int
    card_release_days: int
    withdrawal_fee_cents: int
    card_installment_interest_rate: float

    def fee_percent_for(self, method: PaymentMethod) -> float:
        if method == PaymentMethod.PIX:
            return self.pix_fee_percent
        if method == PaymentMethod.BOLETO:
            return self.boleto_fee_percent
        return self.card_fee_percent

    def release_days_for(self, method: PaymentMethod) -> int:
        if method == PaymentMethod.PIX:
            return self.pix_release_days
        if method == PaymentMethod.BOLETO:
            return self.boleto_release_days
        return self.card_release_days


@dataclass(frozen=True)
class SettlementResult:
    platform_fee_cents: int
    producer_share_cents: int
    security_reserve_cents: int
    release_date: date
    paid_at: datetime


def round_cents(value: Decimal) -> int:
    """Round to whole cents, half up."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _percent(value: float) -> Decimal:
    return Decimal(str(value)) / Decimal(100)


def platform_fee(base_cents: int, method: PaymentMethod, config: FeeConfig) -> int:
    """round(base * method fee percent) + fixed fee."""
    return round_cents(Decimal(base_cents) * _percent(config.fee_percent_for(method))) + config.fixed_fee_cents


def remove_installment_interest(total_cents: int, installments: int, monthly_rate_percent: float) -> int:
    """Back out compound installment interest: total / (1 + rate) ** installments."""
    divisor = (Decimal(1) + _percent(monthly_rate_percent)) ** installments
    return round_cents(Decimal(total_cents) / divisor)


def release_date_for(paid_at: datetime, method: PaymentMethod, config: FeeConfig) -> date:
    """Date funds become withdrawable; 0 release days means the paid date itself."""
    return (paid_at + timedelta(days=config.release_days_for(method))).date()


def compute_settlement(
    *,
    amount_total_cents: int,
    original_price_cents: int | None,
    payment_method: PaymentMethod,
    installments: int,
    producer_assumes_installments: bool,
    config: FeeConfig,
    paid_at: datetime,
) -> SettlementResult:
    """
    Compute the money split for an approved order.

    When the producer absorbs installment interest on a multi-installment
    card sale, the fee and share are computed on the pre-interest amount
    recovered from the charged total. Otherwise they are computed on the
    original (pre-discount) price, falling back to the charged total.

    Raises:
        SettlementError: negative amounts, bad installment count or invalid config
    """
    price = original_price_cents if original_price_cents else amount_total_cents
    if price is None or price < 0 or amount_total_cents < 0:
        raise SettlementError(f"Invalid order amounts: total={amount_total_cents}, original={original_price_cents}")
    installments = installments or 1
    if installments < 1:
        raise SettlementError(f"Invalid installment count: {installments}")

    try:
        if producer_assumes_installments and installments > 1:
            base = remove_installment_interest(
                amount_total_cents, installments, config.card_installment_interest_rate
            )
        else:
            base = price

        fee = platform_fee(base, payment_method, config)
        reserve = round_cents(Decimal(price) * _percent(config.security_reserve_percent))
        release = release_date_for(paid_at, payment_method, config)
    except (InvalidOperation, OverflowError, TypeError) as e:
        raise SettlementError(f"Settlement computation failed: {e}") from e

    return SettlementResult(
        platform_fee_cents=fee,
        producer_share_cents=base - fee,
        security_reserve_cents=reserve,
        release_date=release,
        paid_at=paid_at,
    )
