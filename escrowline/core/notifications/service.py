"""Outbound notification channel.

``notify`` writes the notification row in its own session and queues
delivery on Celery. It is always called after the financial transition it
describes has committed, and it never raises: a lost notification is logged,
a lost release is not acceptable.
"""

from __future__ import annotations

import uuid

from sqlalchemy import select

from escrowline.common.clock import utcnow
from escrowline.common.enums import (
    DeliveryState,
    NotificationAudience,
    NotificationCategory,
    NotificationSeverity,
)
from escrowline.common.logging import get_logger
from escrowline.db.models.notification import Notification
from escrowline.db.session import DatabaseSessionManager
from escrowline.integrations.sendgrid import EmailClient

logger = get_logger("notifications.service")

_TITLES = {
    NotificationCategory.RELEASE.value: "Escrow funds released",
    NotificationCategory.REMINDER.value: "Escrow release coming up",
    NotificationCategory.ESCALATION.value: "Dispute escalated",
    NotificationCategory.DISPUTE.value: "Dispute update",
    NotificationCategory.REFUND.value: "Refund issued",
    NotificationCategory.DELIVERY.value: "Delivery confirmed",
}


class NotificationService:
    def __init__(self, db: DatabaseSessionManager, email_client: EmailClient | None = None) -> None:
        self.db = db
        self.email_client = email_client or EmailClient()

    async def notify(
        self,
        recipient_id: uuid.UUID | None,
        category: NotificationCategory,
        severity: NotificationSeverity,
        message: str,
        related_entity_id: uuid.UUID | None = None,
        audience: NotificationAudience = NotificationAudience.SELLER,
        email: str | None = None,
        title: str | None = None,
    ) -> uuid.UUID | None:
        try:
            async with self.db.session() as session:
                notification = Notification(
                    recipient_id=recipient_id,
                    audience=audience.value,
                    category=category.value,
                    severity=severity.value,
                    title=title or _TITLES.get(category.value, "Notification"),
                    message=message,
                    related_entity_id=related_entity_id,
                    email=email,
                    delivery_state=DeliveryState.QUEUED.value,
                )
                session.add(notification)
                await session.commit()
                notification_id = notification.id
        except Exception as e:
            logger.error(
                "Failed to enqueue %s notification for %s %s: %s",
                category.value,
                audience.value,
                recipient_id,
                e,
            )
            return None

        logger.info(
            "Queued notification %s: category=%s severity=%s audience=%s",
            notification_id,
            category.value,
            severity.value,
            audience.value,
        )

        try:
            from escrowline.tasks.notification_tasks import deliver_notification

            deliver_notification.delay(str(notification_id))
        except Exception as e:
            # Row stays queued; the sweep task picks it up later.
            logger.warning("Could not schedule delivery for notification %s: %s", notification_id, e)

        return notification_id

    async def deliver(self, notification_id: uuid.UUID) -> str:
        async with self.db.session() as session:
            result = await session.execute(
                select(Notification).where(Notification.id == notification_id)
            )
            notification = result.scalar_one_or_none()
            if not notification:
                logger.error("Notification %s not found", notification_id)
                return DeliveryState.FAILED.value
            if notification.delivery_state == DeliveryState.SENT.value:
                return notification.delivery_state

            if not notification.email:
                notification.delivery_state = DeliveryState.SKIPPED.value
            else:
                response = await self.email_client.send_email(
                    to=notification.email,
                    subject=f"Escrowline: {notification.title}",
                    html_body=_render_email(notification.title, notification.message),
                )
                if response.get("status") == "sent":
                    notification.delivery_state = DeliveryState.SENT.value
                    notification.delivered_at = utcnow()
                else:
                    notification.delivery_state = DeliveryState.FAILED.value

            await session.commit()
            logger.info("Notification %s delivery: %s", notification_id, notification.delivery_state)
            return notification.delivery_state

    async def pending_ids(self, limit: int = 200) -> list[uuid.UUID]:
        async with self.db.session() as session:
            result = await session.execute(
                select(Notification.id)
                .where(
                    Notification.delivery_state.in_(
                        [DeliveryState.QUEUED.value, DeliveryState.FAILED.value]
                    ),
                )
                .order_by(Notification.created_at)
                .limit(limit)
            )
            return list(result.scalars().all())


def _render_email(title: str, message: str) -> str:
    return f"""
    <div style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif; max-width: 600px; margin: 0 auto;">
        <div style="background: #1F7A5C; color: white; padding: 20px; border-radius: 12px 12px 0 0;">
            <h2 style="margin: 0;">Escrowline</h2>
        </div>
        <div style="padding: 24px; background: #fff; border: 1px solid #e5e5e5; border-top: none; border-radius: 0 0 12px 12px;">
            <h3 style="margin-top: 0;">{title}</h3>
            <p style="color: #666; line-height: 1.6;">{message}</p>
        </div>
    </div>
    """
