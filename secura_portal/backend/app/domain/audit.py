# backend/app/domain/audit.py
"""
Two separate ledgers:

- submission_audit_logs: per-submission trail shown next to a conversation
  (who viewed/downloaded/messaged/uploaded/approved what, and when).
- audit_logs: platform-wide events (logins, SMS sends, settings-level file
  access) read by superadmins and agency admins.

Both are append-only; writers add + flush and never commit unless asked.
"""
from __future__ import annotations

import json
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..auth import ActorContext
from ..errors import ValidationFailed
from ..models import AuditLog, SubmissionAuditLog

SUBMISSION_ACTIONS = frozenset(
    {
        "submitted",
        "viewed_file",
        "downloaded_file",
        "message_sent",
        "file_uploaded",
        "id_documents_submitted",
        # status changes
        "under_review",
        "approved",
        "rejected",
        "additional_info_required",
    }
)

GENERIC_ACTIONS = frozenset({"login", "logout", "view", "download", "upload", "create", "update", "delete", "sms_sent"})


def record_submission_action(
    db: Session,
    *,
    submission_id: int,
    actor: ActorContext,
    action: str,
    file_name: Optional[str] = None,
    commit: bool = False,
) -> SubmissionAuditLog:
    if action not in SUBMISSION_ACTIONS:
        raise ValueError(f"unknown submission audit action: {action}")

    row = SubmissionAuditLog(
        submission_id=int(submission_id),
        actor_type=actor.audit_actor_type,
        actor_id=int(actor.id),
        action=action,
        file_name=file_name,
    )
    db.add(row)
    db.flush()
    if commit:
        db.commit()
    return row


def list_submission_trail(
    db: Session,
    *,
    submission_id: int,
    newest_first: bool = True,
    limit: Optional[int] = None,
    offset: int = 0,
) -> tuple[list[SubmissionAuditLog], int]:
    if limit is not None and limit < 1:
        raise ValidationFailed("limit must be positive")

    total = int(
        db.scalar(
            select(func.count(SubmissionAuditLog.id)).where(SubmissionAuditLog.submission_id == int(submission_id))
        )
        or 0
    )

    # id breaks ties between rows written in the same instant
    if newest_first:
        order = (SubmissionAuditLog.created_at.desc(), SubmissionAuditLog.id.desc())
    else:
        order = (SubmissionAuditLog.created_at.asc(), SubmissionAuditLog.id.asc())

    q = select(SubmissionAuditLog).where(SubmissionAuditLog.submission_id == int(submission_id)).order_by(*order)
    if offset:
        q = q.offset(int(offset))
    if limit is not None:
        q = q.limit(int(limit))
    return list(db.scalars(q).all()), total


def log_event(
    db: Session,
    *,
    action: str,
    user_id: Optional[int] = None,
    client_id: Optional[int] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[Any] = None,
    details: Optional[dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    commit: bool = False,
) -> AuditLog:
    """
    Generic event writer.

    - Does NOT commit by default so callers can bundle it with their own writes.
    """
    if action not in GENERIC_ACTIONS:
        raise ValueError(f"unknown audit action: {action}")

    row = AuditLog(
        user_id=user_id,
        client_id=client_id,
        action=action,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        details_json=json.dumps(details, sort_keys=True, default=str) if details is not None else None,
        ip_address=ip_address,
        user_agent=(user_agent or None) and user_agent[:300],
    )
    db.add(row)
    db.flush()
    if commit:
        db.commit()
    return row
