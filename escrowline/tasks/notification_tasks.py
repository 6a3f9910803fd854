import uuid

from escrowline.common.logging import get_logger
from escrowline.tasks.celery_app import app
from escrowline.tasks.runner import run_async

logger = get_logger("tasks.notification")


@app.task(
    name="escrowline.tasks.notification_tasks.deliver_notification",
    autoretry_for=(ConnectionError, TimeoutError),
    retry_backoff=True,
    max_retries=3,
)
def deliver_notification(notification_id: str):
    async def _deliver():
        from escrowline.core.notifications.service import NotificationService
        from escrowline.db.session import open_session_manager

        async with open_session_manager() as db:
            return await NotificationService(db).deliver(uuid.UUID(notification_id))

    state = run_async(_deliver())
    logger.info("Notification %s: %s", notification_id, state)
    return state


@app.task(name="escrowline.tasks.notification_tasks.sweep_undelivered")
def sweep_undelivered(limit: int = 200):
    """Re-queue notifications whose delivery never ran or failed."""

    async def _pending():
        from escrowline.core.notifications.service import NotificationService
        from escrowline.db.session import open_session_manager

        async with open_session_manager() as db:
            return await NotificationService(db).pending_ids(limit)

    pending = run_async(_pending())
    for notification_id in pending:
        deliver_notification.delay(str(notification_id))
    if pending:
        logger.info("Re-queued %d undelivered notifications", len(pending))
    return len(pending)
