# backend/app/routers/sms.py
from __future__ import annotations

import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

from ..auth import request_meta
from ..config import settings
from ..db import get_db
from ..domain.phone import normalize_phone
from ..errors import NotFound, Unauthenticated
from ..models import Client, utcnow
from ..schemas import SendSmsIn
from ..services.sms import SmsSender, ensure_sms_allowed, get_sms_sender, send_otp_sms

router = APIRouter(tags=["sms"])


def require_internal_key(x_internal_key: Optional[str] = Header(default=None, alias="X-Internal-Key")) -> None:
    if not x_internal_key or not hmac.compare_digest(x_internal_key, settings.internal_api_key):
        raise Unauthenticated("bad internal key")


@router.post("/send-sms", response_model=dict, dependencies=[Depends(require_internal_key)])
def send_sms(
    payload: SendSmsIn,
    request: Request,
    db: Session = Depends(get_db),
    sender: SmsSender = Depends(get_sms_sender),
):
    """Service-to-service OTP delivery for a code generated elsewhere."""
    phone = normalize_phone(payload.phone)

    client = None
    if payload.client_id is not None:
        client = db.get(Client, int(payload.client_id))
        if client is None:
            raise NotFound("Client not found")
        ensure_sms_allowed(client)

    ip, ua = request_meta(request)
    send_otp_sms(
        db,
        sender,
        phone=phone,
        code=payload.otp,
        client_id=int(client.id) if client else None,
        ip_address=ip,
        user_agent=ua,
    )
    if client is not None:
        client.updated_at = utcnow()
    db.commit()
    return {"success": True, "message": "SMS sent successfully"}
