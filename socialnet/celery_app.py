"""
Celery Application Configuration for the SocialNet backend.

Background jobs:
- Recomputing recommendation caches after likes/friendship changes
- Periodic re-seeding of default configuration

Usage:
    celery -A socialnet.celery_app worker --loglevel=info
    celery -A socialnet.celery_app beat --loglevel=info
"""

from celery import Celery
from celery.schedules import crontab
from socialnet.config import settings

celery_app = Celery(
    "socialnet",
    broker=settings.effective_celery_broker_url,
    backend=settings.effective_celery_result_backend,
    include=["socialnet.tasks"]
)

celery_app.conf.update(
    # JSON only (pickle is a code-execution risk)
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],

    result_expires=3600,

    task_track_started=True,
    task_time_limit=300,
    task_soft_time_limit=240,

    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    task_acks_late=True,
    task_reject_on_worker_lost=True,

    timezone="UTC",
    enable_utc=True,

    beat_schedule={
        "ensure-default-config": {
            "task": "socialnet.tasks.ensure_default_config",
            "schedule": crontab(minute=0, hour="*/6"),
        },
    },
)

celery_app.conf.task_routes = {
    "socialnet.tasks.refresh_user_recommendations": {"queue": "recommendations"},
}

celery_app.conf.task_annotations = {
    "socialnet.tasks.refresh_user_recommendations": {"rate_limit": "120/m"},
}

__all__ = ["celery_app"]
