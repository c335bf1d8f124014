"""Celery application configuration."""

from datetime import timedelta
from celery import Celery
from app.config import settings

# Create Celery app
celery_app = Celery(
    "chatmeter_zendesk_worker",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.job_timeout_seconds,
    task_soft_time_limit=max(settings.job_timeout_seconds - 60, 30),
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=100,
    beat_schedule={
        "poll-chatmeter-reviews": {
            "task": "poll_reviews",
            "schedule": timedelta(minutes=settings.poller_interval_minutes),
            # A batch that outlives the next tick is dropped, not queued behind it
            "options": {"expires": settings.poller_interval_minutes * 60},
        },
    },
)

# Auto-discover tasks
celery_app.autodiscover_tasks(["app.worker"])
