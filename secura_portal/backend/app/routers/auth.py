# backend/app/routers/auth.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ..auth import ActorContext, get_actor, request_meta, require_staff
from ..db import get_db
from ..domain.audit import log_event
from ..errors import NotFound
from ..models import StaffUser
from ..schemas import ActorOut, StaffLoginIn, StaffLoginOut, StaffOut
from ..services.user_service import staff_login, staff_profile

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=StaffLoginOut)
def login(payload: StaffLoginIn, request: Request, db: Session = Depends(get_db)):
    ip, ua = request_meta(request)
    return staff_login(db, email=payload.email, password=payload.password, ip_address=ip, user_agent=ua)


@router.post("/logout", response_model=dict)
def logout(request: Request, db: Session = Depends(get_db), actor: ActorContext = Depends(require_staff)):
    # bearer tokens are stateless; the client drops it, we keep the trail
    ip, ua = request_meta(request)
    log_event(db, action="logout", user_id=actor.id, resource_type="user", resource_id=actor.id, ip_address=ip, user_agent=ua)
    db.commit()
    return {"ok": True}


@router.get("/me", response_model=StaffOut)
def me(db: Session = Depends(get_db), actor: ActorContext = Depends(require_staff)):
    user = db.get(StaffUser, actor.id)
    if user is None:
        raise NotFound("User not found")
    return staff_profile(user)


@router.get("/whoami", response_model=ActorOut)
def whoami(actor: ActorContext = Depends(get_actor)):
    return actor
