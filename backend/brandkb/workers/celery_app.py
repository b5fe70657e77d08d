from celery import Celery
from celery.signals import setup_logging

from brandkb.config import get_settings
from brandkb.log import configure_logging

settings = get_settings()

celery_app = Celery(
    "brandkb",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["brandkb.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=1800,  # 30 minutes max per job
    task_soft_time_limit=1740,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "brandkb.workers.tasks.run_job": {"queue": "jobs"},
        "brandkb.workers.tasks.dispatch_pending_jobs": {"queue": "scheduler"},
    },
    beat_schedule={
        "dispatch-pending-jobs": {
            "task": "brandkb.workers.tasks.dispatch_pending_jobs",
            "schedule": settings.dispatch_interval_seconds,
        },
    },
)


@setup_logging.connect
def _configure_worker_logging(**kwargs):
    configure_logging(settings)
