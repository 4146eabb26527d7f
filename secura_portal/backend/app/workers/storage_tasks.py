# backend/app/workers/storage_tasks.py
from __future__ import annotations

import logging

from ..db import SessionLocal
from ..services.reconciliation import reconcile_orphans
from ..services.storage import get_blob_store
from .celery_app import celery_app

log = logging.getLogger(__name__)


@celery_app.task(name="app.workers.storage_tasks.reconcile_orphaned_blobs")
def reconcile_orphaned_blobs(limit: int = 500) -> dict:
    db = SessionLocal()
    try:
        return reconcile_orphans(db, get_blob_store(), limit=limit)
    except Exception:
        db.rollback()
        log.exception("reconcile_orphaned_blobs failed")
        raise
    finally:
        db.close()
