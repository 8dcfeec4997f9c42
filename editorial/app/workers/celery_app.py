"""Celery application configuration."""
from __future__ import annotations

from celery import Celery

from ..core.config import settings

celery_app = Celery(
    "editorial",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["editorial.app.workers.tasks"],
)

celery_app.conf.update(
    task_default_queue="default",
    beat_schedule={
        "process-article-chunks": {
            "task": "workers.process_article_chunks",
            "schedule": settings.CHUNKING_SCHEDULE_SECONDS,
        },
    },
)
