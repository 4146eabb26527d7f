# backend/app/routers/agencies.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import ActorContext, require_staff, require_superadmin
from ..db import get_db
from ..schemas import AgencyCreate, AgencyCreateOut, AgencyOut, AgencyUpdate
from ..services import user_service
from ..services.mailer import Mailer, get_mailer

router = APIRouter(prefix="/agencies", tags=["agencies"])


@router.post("", response_model=AgencyCreateOut, status_code=201)
def create_agency(
    payload: AgencyCreate,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    actor: ActorContext = Depends(require_superadmin),
):
    return user_service.create_agency(db, mailer, actor, **payload.model_dump())


@router.get("", response_model=list[AgencyOut])
def list_agencies(db: Session = Depends(get_db), actor: ActorContext = Depends(require_staff)):
    return user_service.list_agencies(db, actor)


@router.patch("/{agency_id}", response_model=AgencyOut)
def update_agency(
    agency_id: int,
    payload: AgencyUpdate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_staff),
):
    return user_service.update_agency(db, actor, agency_id, payload.model_dump(exclude_unset=True))
