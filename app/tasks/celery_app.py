"""Celery application configuration."""

from celery import Celery

from app.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    "support_chat",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "app.tasks.backfill",
    ],
)

# Configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # Result settings
    result_expires=3600,  # 1 hour

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=1,

    # Beat schedule for periodic tasks
    beat_schedule={
        "backfill-primary-from-file-mirror": {
            "task": "app.tasks.backfill.backfill_primary",
            "schedule": 900.0,  # Every 15 minutes
        },
    },
)
