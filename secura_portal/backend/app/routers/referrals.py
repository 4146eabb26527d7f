# backend/app/routers/referrals.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import ActorContext, require_staff
from ..config import settings
from ..db import get_db
from ..schemas import ReferralInfoOut, ReferralLinkOut
from ..services.client_auth_service import describe_referral, get_or_create_referral_link

router = APIRouter(prefix="/referrals", tags=["referrals"])


@router.get("/me", response_model=ReferralLinkOut)
def my_link(db: Session = Depends(get_db), actor: ActorContext = Depends(require_staff)):
    link = get_or_create_referral_link(db, actor)
    out = ReferralLinkOut.model_validate(link)
    out.url = f"{settings.app_public_url.rstrip('/')}/client/login?ref={link.token}"
    return out


@router.get("/{token}", response_model=ReferralInfoOut)
def resolve(token: str, db: Session = Depends(get_db)):
    return describe_referral(db, token)
