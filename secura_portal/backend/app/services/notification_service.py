# backend/app/services/notification_service.py
from __future__ import annotations

import json
import logging
from typing import Any, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth import ActorContext
from ..errors import AccessDenied, NotFound
from ..models import AgencyNotification, utcnow

log = logging.getLogger(__name__)


def create_notification(
    db: Session,
    *,
    agency_id: int,
    type: str,
    title: str,
    message: str,
    agent_id: Optional[int] = None,
    client_id: Optional[int] = None,
    property_id: Optional[int] = None,
    submission_id: Optional[int] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> AgencyNotification:
    """Metadata is a snapshot taken now; later edits to the source rows do not change it."""
    row = AgencyNotification(
        agency_id=int(agency_id),
        agent_id=agent_id,
        client_id=client_id,
        property_id=property_id,
        submission_id=submission_id,
        type=type,
        title=title,
        message=message,
        metadata_json=json.dumps(metadata, sort_keys=True, default=str) if metadata else None,
    )
    db.add(row)
    db.flush()
    return row


def notify_best_effort(db: Session, **kw: Any) -> Optional[AgencyNotification]:
    """
    Write one notification inside its own savepoint. A failure is logged and
    swallowed; whatever the caller already wrote stays in place.
    """
    try:
        with db.begin_nested():
            return create_notification(db, **kw)
    except SQLAlchemyError as e:
        log.error(
            "notification_create_failed type=%s err=%s",
            kw.get("type"),
            e,
            extra={"agency_id": kw.get("agency_id"), "submission_id": kw.get("submission_id")},
        )
        return None


def _scope(q, actor: ActorContext):
    if actor.role == "superadmin":
        return q
    if actor.role == "agency_admin":
        return q.where(AgencyNotification.agency_id == actor.agency_id)
    if actor.role == "agent":
        return q.where(
            AgencyNotification.agency_id == actor.agency_id,
            or_(AgencyNotification.agent_id == actor.id, AgencyNotification.agent_id.is_(None)),
        )
    raise AccessDenied("Staff only")


def list_notifications(
    db: Session,
    actor: ActorContext,
    *,
    unread_only: bool = False,
    limit: int = 50,
) -> list[AgencyNotification]:
    q = _scope(select(AgencyNotification), actor)
    if unread_only:
        q = q.where(AgencyNotification.is_read.is_(False))
    q = q.order_by(AgencyNotification.created_at.desc(), AgencyNotification.id.desc()).limit(max(1, min(int(limit), 200)))
    return list(db.scalars(q).all())


def mark_read(db: Session, actor: ActorContext, notification_id: int) -> AgencyNotification:
    row = db.scalar(_scope(select(AgencyNotification), actor).where(AgencyNotification.id == int(notification_id)))
    if row is None:
        raise NotFound("Notification not found")
    if not row.is_read:
        row.is_read = True
        row.read_at = utcnow()
        db.commit()
    return row


def mark_all_read(db: Session, actor: ActorContext) -> int:
    if not actor.is_staff:
        raise AccessDenied("Staff only")
    stmt = update(AgencyNotification).where(AgencyNotification.is_read.is_(False))
    if actor.role != "superadmin":
        stmt = stmt.where(AgencyNotification.agency_id == actor.agency_id)
    if actor.role == "agent":
        stmt = stmt.where(or_(AgencyNotification.agent_id == actor.id, AgencyNotification.agent_id.is_(None)))
    res = db.execute(stmt.values(is_read=True, read_at=utcnow()).execution_options(synchronize_session=False))
    db.commit()
    return int(res.rowcount or 0)
