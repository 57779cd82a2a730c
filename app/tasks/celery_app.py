from datetime import timedelta
import os

from celery import Celery

from app.core.config import settings

broker_url = os.getenv("CELERY_BROKER_URL", "redis://redis:6379/0")
result_backend = os.getenv("CELERY_RESULT_BACKEND", "redis://redis:6379/1")

celery_app = Celery(
    "scheduler",
    broker=broker_url,
    backend=result_backend,
    include=["app.tasks.handwriting"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    broker_connection_retry_on_startup=True,
    beat_schedule={
        "purge-orphaned-handwriting": {
            "task": "handwriting.purge_orphans",
            "schedule": timedelta(minutes=settings.celery_purge_interval_minutes),
        },
    },
)
