from celery import Celery
from celery.schedules import crontab

from orca.core.config import settings

celery_app = Celery(
    "orca",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["orca.workers.billing_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Worker settings
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    task_routes={
        "orca.workers.billing_tasks.*": {"queue": "billing"},
    },

    beat_schedule={
        "hourly-process-due-payments": {
            "task": "orca.workers.billing_tasks.process_due_scheduled_payments",
            "schedule": crontab(minute=0),
        },
        "daily-expire-credits": {
            "task": "orca.workers.billing_tasks.expire_credits",
            "schedule": crontab(hour=1, minute=30),
        },
    },

    result_expires=3600,
    broker_connection_retry_on_startup=True,
)
