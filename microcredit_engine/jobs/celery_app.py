"""Celery application and beat schedule for the scheduled passes"""

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging as celery_setup_logging

from microcredit_engine.config import settings
from microcredit_engine.infrastructure.observability.logging import setup_logging

celery_app = Celery(
    "microcredit_engine",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["microcredit_engine.jobs.tasks"],
)

celery_app.conf.update(
    timezone=settings.scheduler_timezone,
    enable_utc=True,
    task_default_queue="microcredit",
    task_acks_late=True,
    task_time_limit=3600,
    broker_connection_retry_on_startup=True,
)

celery_app.conf.beat_schedule = {
    # Settlement then renewal, in one task so renewal always sees settled credits
    "daily-settlement-cycle": {
        "task": "microcredit_engine.jobs.tasks.daily_settlement_cycle",
        "schedule": crontab(hour=0, minute=30),
    },
    "due-reminders": {
        "task": "microcredit_engine.jobs.tasks.due_reminders",
        "schedule": crontab(hour=8, minute=0),
    },
    "weekly-reminders": {
        "task": "microcredit_engine.jobs.tasks.weekly_reminders",
        "schedule": crontab(hour=9, minute=0, day_of_week="wed,fri"),
    },
    "eligibility-refresh": {
        "task": "microcredit_engine.jobs.tasks.eligibility_refresh",
        "schedule": crontab(hour=6, minute=0),
    },
    "dispatch-notifications": {
        "task": "microcredit_engine.jobs.tasks.dispatch_notifications",
        "schedule": crontab(minute="*/5"),
    },
}


@celery_setup_logging.connect
def configure_worker_logging(**kwargs):
    """Replace Celery's own log setup with the JSON handler used by the API"""
    setup_logging(component="worker")
