"""Celery application instance and configuration."""
from __future__ import annotations

from celery import Celery
from celery.schedules import crontab

from app.config import settings


def _redis_or(override) -> str:
    """Broker and result backend fall back to the shared Redis URL."""
    return str(override if override is not None else settings.REDIS_URL)


celery_app = Celery(
    "deck_import_service",
    broker=_redis_or(settings.CELERY_BROKER_URL),
    backend=_redis_or(settings.CELERY_RESULT_BACKEND),
    include=["app.tasks.deck_imports"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=10 * 60,
    task_soft_time_limit=8 * 60,
    task_routes={"app.tasks.deck_imports.*": {"queue": "maintenance"}},
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
)

celery_app.conf.beat_schedule = {
    "cleanup-old-import-sessions": {
        "task": "app.tasks.deck_imports.cleanup_old_import_sessions",
        "schedule": crontab(hour=3, minute=30),
    },
}

__all__ = ["celery_app"]
