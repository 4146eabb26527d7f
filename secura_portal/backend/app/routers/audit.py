# backend/app/routers/audit.py
from __future__ import annotations

import json
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import desc, or_, select
from sqlalchemy.orm import Session

from ..auth import ActorContext, get_actor, require_agency_admin
from ..db import get_db
from ..domain.audit import list_submission_trail
from ..models import AuditLog, Client, StaffUser
from ..schemas import AuditLogOut, SubmissionAuditPage
from ..services.submission_access import load_submission_for

router = APIRouter(tags=["audit"])


@router.get("/submissions/{submission_id}/audit", response_model=SubmissionAuditPage)
def submission_trail(
    submission_id: int,
    order: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    sub = load_submission_for(db, actor, submission_id)
    items, total = list_submission_trail(db, submission_id=sub.id, newest_first=(order == "desc"), limit=limit, offset=offset)
    return {"items": items, "total": total}


@router.get("/audit-logs", response_model=list[AuditLogOut])
def list_audit_logs(
    action: Optional[str] = Query(default=None),
    resource_type: Optional[str] = Query(default=None),
    limit: int = Query(default=200, ge=1, le=500),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_agency_admin),
):
    q = select(AuditLog).order_by(desc(AuditLog.created_at), desc(AuditLog.id))
    if actor.role != "superadmin":
        # agency admins see events of their own staff and of clients referred to them
        staff_ids = select(StaffUser.id).where(StaffUser.agency_id == actor.agency_id)
        client_ids = select(Client.id).where(Client.agency_id == actor.agency_id)
        q = q.where(or_(AuditLog.user_id.in_(staff_ids), AuditLog.client_id.in_(client_ids)))
    if action:
        q = q.where(AuditLog.action == action)
    if resource_type:
        q = q.where(AuditLog.resource_type == resource_type)

    out = []
    for row in db.scalars(q.limit(limit)).all():
        out.append(
            AuditLogOut(
                id=row.id,
                user_id=row.user_id,
                client_id=row.client_id,
                action=row.action,
                resource_type=row.resource_type,
                resource_id=row.resource_id,
                details=json.loads(row.details_json) if row.details_json else None,
                ip_address=row.ip_address,
                created_at=row.created_at,
            )
        )
    return out
