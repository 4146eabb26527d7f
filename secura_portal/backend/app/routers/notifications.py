# backend/app/routers/notifications.py
from __future__ import annotations

import json

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import ActorContext, require_staff
from ..db import get_db
from ..models import AgencyNotification
from ..schemas import NotificationOut
from ..services import notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _out(n: AgencyNotification) -> NotificationOut:
    return NotificationOut(
        id=n.id,
        agency_id=n.agency_id,
        agent_id=n.agent_id,
        client_id=n.client_id,
        property_id=n.property_id,
        submission_id=n.submission_id,
        type=n.type,
        title=n.title,
        message=n.message,
        metadata=json.loads(n.metadata_json) if n.metadata_json else None,
        is_read=n.is_read,
        read_at=n.read_at,
        created_at=n.created_at,
    )


@router.get("", response_model=list[NotificationOut])
def list_notifications(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_staff),
):
    return [_out(n) for n in notification_service.list_notifications(db, actor, unread_only=unread_only, limit=limit)]


@router.post("/read-all", response_model=dict)
def mark_all_read(db: Session = Depends(get_db), actor: ActorContext = Depends(require_staff)):
    return {"updated": notification_service.mark_all_read(db, actor)}


@router.post("/{notification_id}/read", response_model=NotificationOut)
def mark_read(notification_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(require_staff)):
    return _out(notification_service.mark_read(db, actor, notification_id))
