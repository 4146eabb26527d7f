# backend/app/routers/users.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import ActorContext, require_staff
from ..db import get_db
from ..schemas import CreateUserIn, CreateUserOut, StaffOut
from ..services import user_service
from ..services.mailer import Mailer, get_mailer

router = APIRouter(tags=["users"])


@router.post("/create-user", response_model=CreateUserOut)
def create_user(
    payload: CreateUserIn,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    actor: ActorContext = Depends(require_staff),
):
    """
    payload: { email, password?, role, fullName, phone?, agencyId?, createdBy? }
          or { isPasswordReset: true, userId, password? }

    createdBy is accepted for compatibility; the caller's own id is recorded.
    """
    if payload.is_password_reset:
        return user_service.reset_password(db, mailer, actor, user_id=int(payload.user_id), password=payload.password)

    return user_service.create_user(
        db,
        mailer,
        actor,
        email=payload.email,
        password=payload.password,
        role=payload.role,
        full_name=payload.full_name,
        phone=payload.phone,
        agency_id=payload.agency_id,
    )


@router.get("/users", response_model=list[StaffOut])
def list_users(
    agency_id: Optional[int] = Query(default=None),
    role: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_staff),
):
    return [user_service.staff_profile(u) for u in user_service.list_staff(db, actor, agency_id=agency_id, role=role)]
