# backend/app/routers/client_auth.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

from ..auth import ActorContext, request_meta, require_client
from ..db import get_db
from ..schemas import ClientOut, ClientProfileIn, OtpRequestIn, OtpRequestOut, OtpVerifyIn, OtpVerifyOut
from ..services import client_auth_service
from ..services.sms import SmsSender, get_sms_sender

router = APIRouter(tags=["client-auth"])


@router.post("/client-auth/otp", response_model=OtpRequestOut)
def request_otp(
    payload: OtpRequestIn,
    request: Request,
    db: Session = Depends(get_db),
    sender: SmsSender = Depends(get_sms_sender),
):
    ip, ua = request_meta(request)
    return client_auth_service.request_otp(db, sender, phone=payload.phone, ref=payload.ref, ip_address=ip, user_agent=ua)


@router.post("/client-auth/verify", response_model=OtpVerifyOut)
def verify_otp(payload: OtpVerifyIn, request: Request, db: Session = Depends(get_db)):
    ip, ua = request_meta(request)
    client, token = client_auth_service.verify_otp(db, phone=payload.phone, otp=payload.otp, ip_address=ip, user_agent=ua)
    return {"session_token": token, "client": client}


@router.post("/client-auth/logout", response_model=dict)
def logout(
    x_client_session: str = Header(alias="X-Client-Session"),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_client),
):
    client_auth_service.logout(db, raw_token=x_client_session, actor=actor)
    return {"ok": True}


@router.get("/client/me", response_model=ClientOut)
def get_me(db: Session = Depends(get_db), actor: ActorContext = Depends(require_client)):
    return client_auth_service.get_client(db, actor)


@router.patch("/client/me", response_model=ClientOut)
def update_me(payload: ClientProfileIn, db: Session = Depends(get_db), actor: ActorContext = Depends(require_client)):
    return client_auth_service.update_profile(db, actor, payload.model_dump(exclude_unset=True))
