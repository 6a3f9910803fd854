from escrowline.common.logging import get_logger
from escrowline.tasks.celery_app import app
from escrowline.tasks.runner import run_async

logger = get_logger("tasks.escrow")


@app.task(name="escrowline.tasks.escrow_tasks.release_expired_holds")
def release_expired_holds(threshold_days: int | None = None):
    """Celery Beat task: release escrow holds past their hold period."""
    logger.info("Starting scheduled task: release expired payment holds")

    async def _release():
        from escrowline.core.escrow.release import HoldReleaseEngine
        from escrowline.core.notifications.service import NotificationService
        from escrowline.db.session import open_session_manager

        async with open_session_manager() as db:
            engine = HoldReleaseEngine(db, NotificationService(db))
            result = await engine.run(threshold_days)
            logger.info("Completed: released %d holds, failed %d", result.succeeded, result.failed)
            return {"released": result.succeeded, "failed": result.failed, "skipped": result.skipped}

    return run_async(_release())


@app.task(name="escrowline.tasks.escrow_tasks.send_release_reminders")
def send_release_reminders(reminder_window_days: int | None = None):
    logger.info("Starting scheduled task: auto-release reminders")

    async def _remind():
        from escrowline.core.escrow.reminders import ReminderDispatcher
        from escrowline.core.notifications.service import NotificationService
        from escrowline.db.session import open_session_manager

        async with open_session_manager() as db:
            dispatcher = ReminderDispatcher(db, NotificationService(db))
            result = await dispatcher.run(reminder_window_days)
            logger.info("Completed: sent %d reminders, failed %d", result.succeeded, result.failed)
            return {"reminders_sent": result.succeeded, "failed": result.failed, "skipped": result.skipped}

    return run_async(_remind())
