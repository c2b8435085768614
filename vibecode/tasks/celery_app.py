from celery import Celery
from celery.schedules import crontab

from vibecode.config import settings

app = Celery(
    "vibecode",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["vibecode.tasks.maintenance_tasks"],
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
        "vibecode.tasks.maintenance_tasks.*": {"queue": "maintenance"},
    },
    beat_schedule={
        "purge-stale-staging": {
            "task": "vibecode.tasks.maintenance_tasks.purge_stale_staging",
            "schedule": crontab(minute="*/30"),  # every 30 minutes
        },
    },
)
