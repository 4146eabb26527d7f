# backend/app/services/messaging_service.py
from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..auth import ActorContext
from ..config import settings
from ..domain.audit import record_submission_action
from ..domain.files import IncomingFile, content_type_for, ensure_within_size, now_ms, update_attachment_path
from ..errors import PortalError, StorageError, ValidationFailed
from ..models import Submission, SubmissionUpdate, SubmissionUpdateAttachment
from .reconciliation import record_orphan
from .storage import BlobStore
from .submission_access import load_submission_for, visible_submissions

log = logging.getLogger(__name__)


def insert_attachment(db: Session, *, update_id: int, file: IncomingFile, path: str) -> SubmissionUpdateAttachment:
    row = SubmissionUpdateAttachment(
        update_id=int(update_id),
        file_name=file.file_name,
        file_path=path,
        file_size=file.size,
        mime_type=file.content_type or content_type_for(file.file_name),
    )
    db.add(row)
    db.flush()
    return row


def post_update(
    db: Session,
    store: BlobStore,
    actor: ActorContext,
    submission_id: int,
    *,
    message: Optional[str],
    files: Sequence[IncomingFile] = (),
) -> dict[str, Any]:
    """
    The update row is committed before any file moves. Each attachment is then
    upload-then-insert; the insert runs in a savepoint so one bad row does not
    take the update (or earlier attachments) with it. A stored blob whose row
    could not be written is recorded for reconciliation. A files-only update
    that ends up with no attachment is removed again and reported as a storage
    failure.
    """
    sub = load_submission_for(db, actor, submission_id)
    text = (message or "").strip() or None
    if text is None and not files:
        raise ValidationFailed("A message or at least one file is required")
    ensure_within_size(files)

    upd = SubmissionUpdate(
        submission_id=int(sub.id),
        sender_role=actor.sender_role,
        sender_id=None if actor.is_client else actor.id,
        client_id=actor.id if actor.is_client else None,
        message=text,
        is_read=False,
    )
    db.add(upd)
    db.flush()
    if text is not None:
        record_submission_action(db, submission_id=sub.id, actor=actor, action="message_sent")
    db.commit()

    bucket = settings.bucket_submission_updates
    base = now_ms()
    attachments: list[SubmissionUpdateAttachment] = []
    failed_uploads = 0
    orphaned = 0

    for i, f in enumerate(files):
        path = update_attachment_path(sub.id, f.file_name, base + i)
        try:
            store.upload(bucket, path, f.data, f.content_type or content_type_for(f.file_name))
        except PortalError as e:
            failed_uploads += 1
            log.warning("attachment_upload_failed %s", e.message, extra={"submission_id": sub.id, "bucket": bucket, "path": path})
            continue

        try:
            with db.begin_nested():
                row = insert_attachment(db, update_id=upd.id, file=f, path=path)
        except SQLAlchemyError as e:
            orphaned += 1
            log.error("attachment_row_failed err=%s", e, extra={"submission_id": sub.id, "bucket": bucket, "path": path})
            record_orphan(db, bucket=bucket, path=path, reason="attachment row insert failed")
            continue

        attachments.append(row)
        record_submission_action(db, submission_id=sub.id, actor=actor, action="file_uploaded", file_name=f.file_name)

    if text is None and not attachments:
        db.delete(upd)
        db.commit()
        raise StorageError(
            f"no attachment stored for update on submission {sub.id}",
            details={"failed_uploads": failed_uploads, "orphaned_uploads": orphaned},
        )

    db.commit()
    db.refresh(upd)
    return {"update": upd, "attachments": attachments, "failed_uploads": failed_uploads, "orphaned_uploads": orphaned}


def list_thread(db: Session, actor: ActorContext, submission_id: int) -> tuple[list[SubmissionUpdate], int]:
    sub = load_submission_for(db, actor, submission_id)
    rows = list(
        db.scalars(
            select(SubmissionUpdate)
            .options(
                selectinload(SubmissionUpdate.attachments),
                selectinload(SubmissionUpdate.sender),
                selectinload(SubmissionUpdate.client),
            )
            .where(SubmissionUpdate.submission_id == sub.id)
            .order_by(SubmissionUpdate.created_at.asc(), SubmissionUpdate.id.asc())
        ).all()
    )
    unread = sum(1 for u in rows if not u.is_read and u.sender_role != actor.sender_role)
    return rows, unread


def sender_name(upd: SubmissionUpdate) -> str:
    if upd.sender_role == "admin":
        return upd.sender.full_name if upd.sender else "Agency"
    if upd.client is not None:
        return upd.client.full_name or upd.client.phone
    return "Client"


def mark_thread_read(db: Session, actor: ActorContext, submission_id: int) -> int:
    """Only ever flips false -> true, and only on the other party's messages."""
    sub = load_submission_for(db, actor, submission_id)
    res = db.execute(
        update(SubmissionUpdate)
        .where(
            SubmissionUpdate.submission_id == sub.id,
            SubmissionUpdate.sender_role == actor.other_sender_role,
            SubmissionUpdate.is_read.is_(False),
        )
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return int(res.rowcount or 0)


def unread_count(db: Session, submission_id: int, viewer_role: str) -> int:
    return int(
        db.scalar(
            select(func.count(SubmissionUpdate.id)).where(
                SubmissionUpdate.submission_id == int(submission_id),
                SubmissionUpdate.is_read.is_(False),
                SubmissionUpdate.sender_role != viewer_role,
            )
        )
        or 0
    )


def unread_counts(db: Session, submission_ids: Iterable[int], viewer_role: str) -> dict[int, int]:
    ids = [int(x) for x in submission_ids]
    if not ids:
        return {}
    rows = db.execute(
        select(SubmissionUpdate.submission_id, func.count(SubmissionUpdate.id))
        .where(
            SubmissionUpdate.submission_id.in_(ids),
            SubmissionUpdate.is_read.is_(False),
            SubmissionUpdate.sender_role != viewer_role,
        )
        .group_by(SubmissionUpdate.submission_id)
    ).all()
    out = {i: 0 for i in ids}
    out.update({int(sid): int(n) for sid, n in rows})
    return out


def unread_counts_for_actor(db: Session, actor: ActorContext) -> dict[int, int]:
    ids = db.scalars(visible_submissions(actor).with_only_columns(Submission.id)).all()
    return unread_counts(db, ids, actor.sender_role)
