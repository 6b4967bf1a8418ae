"""
Celery application configuration for background job processing.
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.schedules import crontab
from celery.signals import task_failure, task_success

from core.config import settings

logger = logging.getLogger(__name__)

celery_app = Celery(
    "pwb_jobs",
    broker=settings.CELERY_BROKER_URL or settings.REDIS_URL,
    backend=settings.CELERY_RESULT_BACKEND or settings.REDIS_URL,
)

# Import tasks explicitly to ensure they're registered
celery_app.conf.update(
    imports=["jobs.tasks"],
)

celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,

    # Result backend
    result_expires=3600 * 24,  # 24 hours

    # Worker
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
    worker_disable_rate_limits=False,

    # Task routing
    task_default_queue="default",
    task_routes={
        "jobs.tasks.send_ntfy_notification": {"queue": "notifications"},
        "jobs.tasks.send_platform_notification": {"queue": "notifications"},
        "jobs.tasks.sync_lead_*": {"queue": "zoho_sync"},
        "jobs.tasks.convert_lead": {"queue": "zoho_sync"},
        "jobs.tasks.mark_lead_lost": {"queue": "zoho_sync"},
        "jobs.tasks.trial_reminders": {"queue": "zoho_sync"},
        "jobs.tasks.expire_ended_trials": {"queue": "maintenance"},
        "jobs.tasks.expire_ended_subscriptions": {"queue": "maintenance"},
        "jobs.tasks.release_expired_subdomains": {"queue": "maintenance"},
    },

    # Periodic jobs
    beat_schedule={
        "expire-ended-trials-daily": {
            "task": "jobs.tasks.expire_ended_trials",
            "schedule": crontab(hour=1, minute=0),
        },
        "expire-ended-subscriptions-daily": {
            "task": "jobs.tasks.expire_ended_subscriptions",
            "schedule": crontab(hour=1, minute=30),
        },
        "trial-reminders-daily": {
            "task": "jobs.tasks.trial_reminders",
            "schedule": crontab(hour=9, minute=0),
        },
        "release-expired-subdomains-hourly": {
            "task": "jobs.tasks.release_expired_subdomains",
            "schedule": crontab(minute=15),
        },
    },
)


@task_success.connect
def task_success_handler(sender=None, result=None, **kwargs):
    logger.info(f"Task {sender.name} succeeded: {result}")


@task_failure.connect
def task_failure_handler(sender=None, exception=None, **kwargs):
    logger.error(f"Task {sender.name} failed: {exception}")


import jobs.tasks  # noqa: E402,F401


if __name__ == "__main__":
    celery_app.start()
