# backend/app/services/client_auth_service.py
from __future__ import annotations

import hmac
import logging
import re
import secrets
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import ActorContext, hash_session_token, new_session_token
from ..config import settings
from ..domain.audit import log_event
from ..domain.phone import normalize_phone, redact_phone
from ..errors import AccessDenied, NotFound, Unauthenticated, ValidationFailed
from ..models import Agency, Client, ClientSession, ReferralLink, StaffUser, utcnow
from .sms import SmsSender, ensure_sms_allowed, send_otp_sms

log = logging.getLogger(__name__)


def generate_otp(length: Optional[int] = None) -> str:
    n = int(length or settings.otp_length)
    return str(secrets.randbelow(10**n)).zfill(n)


# -------------------------
# Referral links
# -------------------------
def _slugify(s: str) -> str:
    s = re.sub(r"[^a-z0-9]+", "-", (s or "").strip().lower()).strip("-")
    return s or "agent"


def get_or_create_referral_link(db: Session, actor: ActorContext) -> ReferralLink:
    if actor.role != "agent" or actor.agency_id is None:
        raise AccessDenied("Only agents have referral links")

    link = db.scalar(
        select(ReferralLink)
        .where(ReferralLink.agent_id == actor.id, ReferralLink.is_active.is_(True))
        .order_by(ReferralLink.id.desc())
    )
    if link:
        return link

    agent = db.get(StaffUser, actor.id)
    agency = db.get(Agency, actor.agency_id)
    slug = f"{_slugify(agency.name if agency else '')}/{_slugify(agent.full_name if agent else '')}"
    link = ReferralLink(agent_id=actor.id, agency_id=actor.agency_id, token=secrets.token_urlsafe(12), slug=slug)
    db.add(link)
    db.commit()
    db.refresh(link)
    return link


def resolve_referral(db: Session, token: str) -> Optional[ReferralLink]:
    """Active link whose agent and agency are both still active, else None."""
    token = (token or "").strip()
    if not token:
        return None
    link = db.scalar(select(ReferralLink).where(ReferralLink.token == token, ReferralLink.is_active.is_(True)))
    if link is None:
        return None
    agent = db.get(StaffUser, link.agent_id)
    agency = db.get(Agency, link.agency_id)
    if agent is None or not agent.is_active or agency is None or not agency.is_active:
        return None
    return link


def describe_referral(db: Session, token: str) -> dict[str, Any]:
    link = resolve_referral(db, token)
    if link is None:
        raise NotFound("Referral link not found")
    return {
        "token": link.token,
        "agency_id": int(link.agency_id),
        "agency_name": link.agency.name,
        "agent_id": int(link.agent_id),
        "agent_name": link.agent.full_name,
    }


# -------------------------
# OTP flow
# -------------------------
def request_otp(
    db: Session,
    sender: SmsSender,
    *,
    phone: str,
    ref: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> dict[str, Any]:
    """
    Order matters:
      1) validate phone + rate limit (no writes yet)
      2) send the code (failure blocks login and leaves no client changes)
      3) persist code/expiry, creating the client on first contact
    """
    phone = normalize_phone(phone)
    client = db.scalar(select(Client).where(Client.phone == phone))
    ensure_sms_allowed(client)

    code = generate_otp()
    send_otp_sms(
        db,
        sender,
        phone=phone,
        code=code,
        client_id=int(client.id) if client else None,
        ip_address=ip_address,
        user_agent=user_agent,
    )

    now = utcnow()
    if client is None:
        client = Client(phone=phone)
        db.add(client)

    if client.agency_id is None and ref:
        link = resolve_referral(db, ref)
        if link is not None:
            client.agency_id = link.agency_id
            client.agent_id = link.agent_id
            client.referral_token = link.token
            link.last_used_at = now
        else:
            log.info("referral_token_ignored", extra={"path": "client-auth/otp"})

    client.otp_code = code
    client.otp_expires_at = now + timedelta(minutes=int(settings.otp_ttl_minutes))
    client.updated_at = now
    db.commit()

    log.info("otp_issued phone=***%s", redact_phone(phone), extra={"client_id": int(client.id)})
    return {"sent": True, "expires_in_seconds": int(settings.otp_ttl_minutes) * 60}


def verify_otp(
    db: Session,
    *,
    phone: str,
    otp: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> tuple[Client, str]:
    phone = normalize_phone(phone)
    otp = (otp or "").strip()
    if not otp:
        raise ValidationFailed("Verification code is required")

    client = db.scalar(select(Client).where(Client.phone == phone))
    if client is None or not client.otp_code or client.otp_expires_at is None:
        raise Unauthenticated("no pending otp", public_message="Invalid or expired verification code.")
    if client.otp_expires_at <= utcnow():
        raise Unauthenticated("otp expired", public_message="Invalid or expired verification code.")
    if not hmac.compare_digest(client.otp_code, otp):
        raise Unauthenticated("otp mismatch", public_message="Invalid or expired verification code.")

    now = utcnow()
    client.otp_code = None
    client.otp_expires_at = None
    client.is_verified = True
    client.last_login = now

    raw = new_session_token()
    db.add(
        ClientSession(
            client_id=int(client.id),
            token_hash=hash_session_token(raw),
            expires_at=now + timedelta(days=int(settings.client_session_days)),
        )
    )
    log_event(
        db,
        action="login",
        client_id=int(client.id),
        resource_type="client",
        resource_id=client.id,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.commit()
    db.refresh(client)
    return client, raw


def logout(db: Session, *, raw_token: str, actor: ActorContext) -> None:
    sess = db.scalar(select(ClientSession).where(ClientSession.token_hash == hash_session_token(raw_token or "")))
    if sess is not None and sess.revoked_at is None:
        sess.revoked_at = utcnow()
    log_event(db, action="logout", client_id=actor.id, resource_type="client", resource_id=actor.id)
    db.commit()


# -------------------------
# Profile
# -------------------------
def get_client(db: Session, actor: ActorContext) -> Client:
    client = db.get(Client, actor.id)
    if client is None:
        raise NotFound("Client not found")
    return client


def update_profile(db: Session, actor: ActorContext, changes: dict[str, Any]) -> Client:
    client = get_client(db, actor)
    if "full_name" in changes and changes["full_name"] is not None:
        name = str(changes["full_name"]).strip()
        if not name:
            raise ValidationFailed("Full name cannot be empty")
        client.full_name = name
    if "email" in changes:
        email = (changes["email"] or "").strip().lower() or None
        if email and "@" not in email:
            raise ValidationFailed("Invalid email address")
        client.email = email
    if changes.get("onboarding_completed") is not None:
        client.onboarding_completed = bool(changes["onboarding_completed"])
    db.commit()
    db.refresh(client)
    return client
