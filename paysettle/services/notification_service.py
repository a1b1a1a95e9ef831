"""
Producer notification service.

Notifications are opt-in per event type, except purchase_approved which is
on unless the producer switched it off.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paysettle.models.notification import Notification, NotificationPreference
from paysettle.models.transaction_event import EventType


DEFAULT_ENABLED_EVENTS = frozenset({EventType.PURCHASE_APPROVED.value})

NOTIFICATION_TITLES = {
    EventType.PURCHASE_APPROVED.value: "New sale approved",
    EventType.PIX_GENERATED.value: "Pix generated",
    EventType.BOLETO_GENERATED.value: "Boleto generated",
    EventType.PURCHASE_DECLINED.value: "Purchase declined",
    EventType.REFUND.value: "Sale refunded",
    EventType.CHARGEBACK.value: "Chargeback received",
    EventType.SUBSCRIPTION_CANCELLED.value: "Subscription cancelled",
    EventType.SUBSCRIPTION_OVERDUE.value: "Subscription overdue",
    EventType.SUBSCRIPTION_RENEWED.value: "Subscription renewed",
}


def format_amount(cents: int) -> str:
    return f"R$ {cents / 100:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")


class NotificationService:
    """Service for producer notifications."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def is_enabled(self, user_id: str, event_type: str) -> bool:
        """
        Whether a user wants notifications for an event type.

        Args:
            user_id: Producer UUID
            event_type: Internal event type

        Returns:
            The stored preference, or the default when none is stored
        """
        stmt = select(NotificationPreference.enabled).where(
            NotificationPreference.user_id == user_id,
            NotificationPreference.event_type == event_type,
        )
        result = await self.db.execute(stmt)
        enabled = result.scalar_one_or_none()
        if enabled is None:
            return event_type in DEFAULT_ENABLED_EVENTS
        return enabled

    async def notify(
        self,
        user_id: str,
        event_type: str,
        order_id: str | None = None,
        amount_cents: int | None = None,
    ) -> Notification | None:
        """Create a notification if the user's preferences allow it."""
        if not await self.is_enabled(user_id, event_type):
            return None

        title = NOTIFICATION_TITLES.get(event_type, event_type.replace("_", " ").capitalize())
        message = title
        if amount_cents is not None:
            message = f"{title}: {format_amount(amount_cents)}"

        notification = Notification(
            user_id=user_id,
            order_id=order_id,
            event_type=event_type,
            title=title,
            message=message,
        )
        self.db.add(notification)
        await self.db.commit()
        return notification
