from escrowline.common.logging import get_logger
from escrowline.tasks.celery_app import app
from escrowline.tasks.runner import run_async

logger = get_logger("tasks.dispute")


@app.task(name="escrowline.tasks.dispute_tasks.escalate_old_disputes")
def escalate_old_disputes(threshold_days: int | None = None):
    """Celery Beat task: escalate disputes left unresolved past their threshold."""
    logger.info("Starting scheduled task: escalate old disputes")

    async def _escalate():
        from escrowline.core.disputes.escalation import DisputeEscalationEngine
        from escrowline.core.notifications.service import NotificationService
        from escrowline.db.session import open_session_manager

        async with open_session_manager() as db:
            engine = DisputeEscalationEngine(db, NotificationService(db))
            result = await engine.run(threshold_days)
            logger.info("Completed: escalated %d disputes, failed %d", result.succeeded, result.failed)
            return {"escalated": result.succeeded, "failed": result.failed, "skipped": result.skipped}

    return run_async(_escalate())
