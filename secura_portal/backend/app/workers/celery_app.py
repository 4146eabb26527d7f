# backend/app/workers/celery_app.py
from __future__ import annotations

from celery import Celery

from ..config import settings

celery_app = Celery(
    "secura",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["app.workers.storage_tasks"],
)

celery_app.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    timezone="UTC",
)

celery_app.conf.task_routes = {
    "app.workers.storage_tasks.*": {"queue": "maintenance"},
}

celery_app.conf.beat_schedule = {
    "reconcile-orphaned-blobs": {
        "task": "app.workers.storage_tasks.reconcile_orphaned_blobs",
        "schedule": float(settings.reconcile_interval_seconds),
    },
}
