"""
Tests for ticket batch inventory, producer balances, buyers and notifications.
"""
import pytest

from paysettle.models.notification import NotificationPreference
from paysettle.models.ticket_batch import TicketBatch
from paysettle.models.user import Enrollment
from paysettle.services.balance_service import BalanceService
from paysettle.services.buyer_service import BuyerService
from paysettle.services.notification_service import NotificationService
from paysettle.services.ticket_service import TicketInventoryError, TicketService


async def add_batch(db, product, **values) -> TicketBatch:
    batch = TicketBatch(product_id=product.id, name=values.pop("name", "Lote"), **values)
    db.add(batch)
    await db.commit()
    return batch


async def test_exhausted_batch_advances_to_next(db, product):
    first = await add_batch(db, product, display_order=1, total_quantity=1, is_active=True, auto_advance_to_next=True)
    second = await add_batch(db, product, display_order=2, total_quantity=10, is_active=False)

    result = await TicketService(db).record_sale(first.id, 1)

    await db.refresh(first)
    await db.refresh(second)
    assert result.exhausted is True
    assert result.advanced_to == second.id
    assert first.sold_quantity == 1
    assert first.is_active is False
    assert second.is_active is True


async def test_exhausted_batch_without_next_stops_sales(db, product):
    only = await add_batch(db, product, display_order=1, total_quantity=1, is_active=True, auto_advance_to_next=True)

    result = await TicketService(db).record_sale(only.id, 1)

    await db.refresh(only)
    assert result.advanced_to is None
    assert only.is_active is False


async def test_next_batch_skips_lower_display_order(db, product):
    earlier = await add_batch(db, product, display_order=0, total_quantity=5, is_active=False)
    current = await add_batch(db, product, display_order=1, total_quantity=2, sold_quantity=1, is_active=True, auto_advance_to_next=True)
    later = await add_batch(db, product, display_order=3, total_quantity=5, is_active=False)

    result = await TicketService(db).record_sale(current.id, 1)

    await db.refresh(earlier)
    await db.refresh(later)
    assert result.advanced_to == later.id
    assert earlier.is_active is False
    assert later.is_active is True


async def test_batch_without_auto_advance_stays_active(db, product):
    batch = await add_batch(db, product, display_order=1, total_quantity=1, is_active=True, auto_advance_to_next=False)

    result = await TicketService(db).record_sale(batch.id, 1)

    await db.refresh(batch)
    assert result.exhausted is True
    assert result.advanced_to is None
    assert batch.is_active is True


async def test_oversell_is_rejected(db, product):
    batch = await add_batch(db, product, display_order=1, total_quantity=3, sold_quantity=2, is_active=True)

    with pytest.raises(TicketInventoryError):
        await TicketService(db).record_sale(batch.id, 2)

    await db.refresh(batch)
    assert batch.sold_quantity == 2


async def test_balance_credit_accumulates(db, producer):
    balances = BalanceService(db)

    await balances.credit(producer.id, 9600)
    await balances.credit(producer.id, 400)
    await balances.credit(producer.id, 0)

    assert await balances.get_balance(producer.id) == 10000


async def test_resolve_or_create_buyer_is_case_insensitive(db):
    buyers = BuyerService(db)

    created = await buyers.resolve_or_create("Someone@Example.com")
    found = await buyers.resolve_or_create("someone@example.com ")

    assert created.id == found.id
    assert created.email == "someone@example.com"


async def test_enroll_without_space_is_skipped(db, product):
    buyers = BuyerService(db)
    buyer = await buyers.resolve_or_create("buyer@example.com")

    assert await buyers.enroll(buyer.id, product.id) is None
    assert (await db.execute(Enrollment.__table__.select())).first() is None


async def test_notifications_default_on_only_for_approvals(db, producer):
    notifications = NotificationService(db)

    approved = await notifications.notify(producer.id, "purchase_approved", amount_cents=123456)
    refund = await notifications.notify(producer.id, "refund")

    assert approved.title == "New sale approved"
    assert approved.message == "New sale approved: R$ 1.234,56"
    assert refund is None


async def test_notification_preferences_override_defaults(db, producer):
    db.add_all([
        NotificationPreference(user_id=producer.id, event_type="purchase_approved", enabled=False),
        NotificationPreference(user_id=producer.id, event_type="refund", enabled=True),
    ])
    await db.commit()
    notifications = NotificationService(db)

    assert await notifications.notify(producer.id, "purchase_approved") is None
    assert (await notifications.notify(producer.id, "refund")).title == "Sale refunded"
