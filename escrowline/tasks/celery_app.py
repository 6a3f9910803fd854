from celery import Celery
from celery.schedules import crontab
from celery.signals import after_setup_logger

from escrowline.common.logging import setup_logging
from escrowline.config import settings

app = Celery(
    "escrowline",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "escrowline.tasks.escrow_tasks.*": {"queue": "escrow"},
        "escrowline.tasks.dispute_tasks.*": {"queue": "disputes"},
        "escrowline.tasks.notification_tasks.*": {"queue": "notifications"},
    },
    beat_schedule={
        "release-expired-holds": {
            "task": "escrowline.tasks.escrow_tasks.release_expired_holds",
            "schedule": crontab(minute=0, hour="*/6"),  # every 6 hours
        },
        "send-release-reminders": {
            "task": "escrowline.tasks.escrow_tasks.send_release_reminders",
            "schedule": crontab(hour=8, minute=0),
        },
        "escalate-old-disputes": {
            "task": "escrowline.tasks.dispute_tasks.escalate_old_disputes",
            "schedule": crontab(hour=0, minute=30),
        },
        "sweep-undelivered-notifications": {
            "task": "escrowline.tasks.notification_tasks.sweep_undelivered",
            "schedule": crontab(minute="*/15"),
        },
    },
)

app.autodiscover_tasks(
    [
        "escrowline.tasks.escrow_tasks",
        "escrowline.tasks.dispute_tasks",
        "escrowline.tasks.notification_tasks",
    ]
)


@after_setup_logger.connect
def _configure_logging(**kwargs):
    setup_logging()
