# backend/app/auth.py
from __future__ import annotations

import base64
import hashlib
import hmac
import os
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt
from fastapi import Depends, Header, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import settings
from .db import get_db
from .errors import AccessDenied, Unauthenticated
from .models import Agency, Client, ClientSession, StaffUser, utcnow

STAFF_ROLES = ("superadmin", "agency_admin", "agent")


@dataclass(frozen=True)
class ActorContext:
    """
    Who is calling. Passed explicitly into every service call.

    role: superadmin | agency_admin | agent | client
    id: users.id for staff, clients.id for clients
    agency_id: tenant for staff (None for superadmin); referral agency for clients
    """

    role: str
    id: int
    agency_id: Optional[int] = None
    name: Optional[str] = None

    @property
    def is_client(self) -> bool:
        return self.role == "client"

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def sender_role(self) -> str:
        # thread-level role: every staff member speaks for the agency
        return "client" if self.is_client else "admin"

    @property
    def other_sender_role(self) -> str:
        return "admin" if self.is_client else "client"

    @property
    def audit_actor_type(self) -> str:
        if self.is_client:
            return "client"
        if self.role == "agent":
            return "agent"
        return "agency_admin"


# -------------------------
# Password hashing
# -------------------------
def hash_password(password: str) -> str:
    salt = secrets.token_bytes(16)
    iters = int(os.getenv("AUTH_PBKDF2_ITERS", "210000"))
    dk = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iters)
    return f"pbkdf2_sha256${iters}${base64.b64encode(salt).decode()}${base64.b64encode(dk).decode()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        algo, iters_s, salt_b64, dk_b64 = stored.split("$", 3)
    except ValueError:
        return False
    if algo != "pbkdf2_sha256":
        return False
    salt = base64.b64decode(salt_b64.encode())
    dk = base64.b64decode(dk_b64.encode())
    test = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, int(iters_s))
    return hmac.compare_digest(test, dk)


# -------------------------
# Staff JWT
# -------------------------
def create_access_token(*, user_id: int, role: str, agency_id: Optional[int]) -> str:
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "role": role,
        "agency_id": agency_id,
        "typ": "staff",
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=int(settings.jwt_exp_minutes))).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token expired", public_message="Session expired. Please sign in again.")
    except jwt.InvalidTokenError:
        raise Unauthenticated("Invalid token")
    if claims.get("typ") != "staff":
        raise Unauthenticated("Wrong token type")
    return claims


def staff_from_token(db: Session, token: str) -> StaffUser:
    claims = decode_access_token(token)
    user = db.get(StaffUser, int(claims.get("sub") or 0))
    if user is None or not user.is_active:
        raise Unauthenticated("Unknown or inactive user")
    if user.agency_id is not None:
        agency = db.get(Agency, user.agency_id)
        if agency is None or not agency.is_active:
            raise Unauthenticated("Agency disabled")
    return user


def actor_for_staff(user: StaffUser) -> ActorContext:
    return ActorContext(role=str(user.role), id=int(user.id), agency_id=user.agency_id, name=user.full_name)


# -------------------------
# Client sessions (opaque token, stored hashed)
# -------------------------
def hash_session_token(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def new_session_token() -> str:
    return secrets.token_urlsafe(32)


def client_from_session_token(db: Session, raw: str) -> Client:
    raw = (raw or "").strip()
    if not raw:
        raise Unauthenticated("Missing client session")

    sess = db.scalar(select(ClientSession).where(ClientSession.token_hash == hash_session_token(raw)))
    now = utcnow()
    if sess is None or sess.revoked_at is not None or sess.expires_at <= now:
        raise Unauthenticated("Invalid or expired session")

    client = db.get(Client, sess.client_id)
    if client is None:
        raise Unauthenticated("Invalid or expired session")

    sess.last_used_at = now
    db.commit()
    return client


def actor_for_client(client: Client) -> ActorContext:
    return ActorContext(role="client", id=int(client.id), agency_id=client.agency_id, name=client.full_name)


# -------------------------
# Dependencies
# -------------------------
def request_meta(request: Request) -> tuple[Optional[str], Optional[str]]:
    fwd = request.headers.get("x-forwarded-for")
    ip = fwd.split(",")[0].strip() if fwd else (request.client.host if request.client else None)
    return ip, request.headers.get("user-agent")


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1].strip() or None
    return None


def get_actor(
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
    x_client_session: Optional[str] = Header(default=None, alias="X-Client-Session"),
) -> ActorContext:
    """
    Resolution order:
      1) X-Client-Session (phone/OTP clients; not identity-provider principals)
      2) Authorization: Bearer <staff JWT>
    """
    if x_client_session:
        return actor_for_client(client_from_session_token(db, x_client_session))

    token = bearer_token(authorization)
    if token:
        return actor_for_staff(staff_from_token(db, token))

    raise Unauthenticated("Not authenticated")


def require_staff(actor: ActorContext = Depends(get_actor)) -> ActorContext:
    if not actor.is_staff:
        raise AccessDenied("Staff only")
    return actor


def require_client(actor: ActorContext = Depends(get_actor)) -> ActorContext:
    if not actor.is_client:
        raise AccessDenied("Clients only")
    return actor


def require_agency_admin(actor: ActorContext = Depends(get_actor)) -> ActorContext:
    if actor.role not in ("agency_admin", "superadmin"):
        raise AccessDenied("Requires agency_admin")
    return actor


def require_superadmin(actor: ActorContext = Depends(get_actor)) -> ActorContext:
    if actor.role != "superadmin":
        raise AccessDenied("Requires superadmin")
    return actor
