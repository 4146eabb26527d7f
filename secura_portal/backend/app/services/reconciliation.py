# backend/app/services/reconciliation.py
"""
Storage and the database are not updated atomically. When a blob outlives
the row that should reference it (or a row is deleted but its blob delete
fails) the path is written to `orphaned_blobs`; a periodic job removes it.
"""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..errors import PortalError
from ..models import OrphanedBlob, utcnow
from .storage import BlobStore

log = logging.getLogger(__name__)


def record_orphan(db: Session, *, bucket: str, path: str, reason: str) -> OrphanedBlob:
    row = OrphanedBlob(bucket=bucket, path=path, reason=reason[:200])
    db.add(row)
    db.flush()
    log.warning("orphaned_blob_recorded reason=%s", reason, extra={"bucket": bucket, "path": path})
    return row


def reconcile_orphans(db: Session, store: BlobStore, *, limit: int = 500) -> dict[str, Any]:
    rows = list(
        db.scalars(
            select(OrphanedBlob).where(OrphanedBlob.resolved_at.is_(None)).order_by(OrphanedBlob.id).limit(int(limit))
        ).all()
    )

    resolved = 0
    failed = 0
    for row in rows:
        try:
            store.delete(row.bucket, row.path)
        except PortalError as e:
            failed += 1
            log.warning("orphan_delete_failed %s", e.message, extra={"bucket": row.bucket, "path": row.path})
            continue
        row.resolved_at = utcnow()
        resolved += 1
    db.commit()

    if rows:
        log.info("orphan_reconcile resolved=%s failed=%s", resolved, failed)
    return {"scanned": len(rows), "resolved": resolved, "failed": failed}
