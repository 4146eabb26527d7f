# backend/app/services/user_service.py
from __future__ import annotations

import logging
import secrets
import string
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import STAFF_ROLES, ActorContext, create_access_token, hash_password, verify_password
from ..domain.audit import log_event
from ..errors import AccessDenied, Conflict, NotFound, Unauthenticated, ValidationFailed
from ..models import Agency, AuthIdentity, StaffUser, utcnow
from .mailer import Mailer, password_reset_email, send_best_effort, welcome_email

log = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def generate_temp_password(length: int = 12) -> str:
    """Random password with at least one upper, lower, digit and symbol."""
    if length < 8:
        length = 8

    uppercase = string.ascii_uppercase
    lowercase = string.ascii_lowercase
    digits = string.digits
    special = "!@#$%^&*"

    chars = [
        secrets.choice(uppercase),
        secrets.choice(lowercase),
        secrets.choice(digits),
        secrets.choice(special),
    ]
    pool = uppercase + lowercase + digits + special
    chars.extend(secrets.choice(pool) for _ in range(length - 4))
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


def staff_profile(user: StaffUser) -> dict[str, Any]:
    return {
        "id": int(user.id),
        "email": user.email,
        "full_name": user.full_name,
        "phone": user.phone,
        "role": user.role,
        "agency_id": user.agency_id,
        "agency_name": user.agency.name if user.agency else None,
        "is_active": bool(user.is_active),
        "last_login": user.last_login,
        "created_at": user.created_at,
    }


# -------------------------
# Login
# -------------------------
def staff_login(
    db: Session,
    *,
    email: str,
    password: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> dict[str, Any]:
    email = (email or "").strip().lower()
    ident = db.scalar(select(AuthIdentity).where(AuthIdentity.email == email))
    if ident is None or not verify_password(password or "", ident.password_hash):
        raise Unauthenticated("invalid_credentials", public_message="Invalid email or password.")

    user = db.scalar(select(StaffUser).where(StaffUser.auth_user_id == ident.id))
    if user is None:
        user = db.scalar(select(StaffUser).where(StaffUser.email == email))
    if user is None:
        raise Unauthenticated("identity has no staff profile", public_message="Invalid email or password.")
    if not user.is_active:
        raise AccessDenied("staff inactive", public_message="Your account has been deactivated.")
    if user.agency_id is not None and (user.agency is None or not user.agency.is_active):
        raise AccessDenied("agency inactive", public_message="Your agency account is inactive.")

    user.last_login = utcnow()
    log_event(
        db,
        action="login",
        user_id=int(user.id),
        resource_type="user",
        resource_id=user.id,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.commit()

    token = create_access_token(user_id=int(user.id), role=str(user.role), agency_id=user.agency_id)
    return {"access_token": token, "token_type": "bearer", "user": staff_profile(user)}


# -------------------------
# create-user
# -------------------------
def _ensure_may_create(db: Session, actor: ActorContext, role: str, agency_id: Optional[int]) -> Optional[int]:
    if role not in STAFF_ROLES:
        raise ValidationFailed(f"Invalid role: {role}")

    if actor.role == "superadmin":
        pass
    elif actor.role == "agency_admin":
        if role != "agent":
            raise AccessDenied("agency_admin may only create agents")
        if agency_id is not None and int(agency_id) != actor.agency_id:
            raise AccessDenied("agency_admin may only create users in own agency")
        agency_id = actor.agency_id
    else:
        raise AccessDenied("Only administrators can create users")

    if role == "superadmin":
        return None

    if agency_id is None:
        raise ValidationFailed("agencyId is required for agency staff")
    agency = db.get(Agency, int(agency_id))
    if agency is None:
        raise NotFound("Agency not found")
    if not agency.is_active:
        raise ValidationFailed("Agency is inactive")
    return int(agency.id)


def create_user(
    db: Session,
    mailer: Mailer,
    actor: ActorContext,
    *,
    email: str,
    password: Optional[str],
    role: str,
    full_name: str,
    phone: Optional[str] = None,
    agency_id: Optional[int] = None,
) -> dict[str, Any]:
    """
    Two steps, two commits: the identity account first, then the staff row.
    If the staff row cannot be written the identity is deleted again so no
    orphan login exists.
    """
    email = (email or "").strip().lower()
    full_name = (full_name or "").strip()
    if not email or "@" not in email:
        raise ValidationFailed("A valid email is required")
    if not full_name:
        raise ValidationFailed("fullName is required")
    if password is not None and len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    agency_id = _ensure_may_create(db, actor, role, agency_id)
    password = password or generate_temp_password()

    if db.scalar(select(AuthIdentity.id).where(AuthIdentity.email == email)) is not None:
        raise Conflict("A user with this email address has already been registered")

    ident = AuthIdentity(email=email, password_hash=hash_password(password))
    db.add(ident)
    db.commit()
    db.refresh(ident)

    try:
        user = StaffUser(
            auth_user_id=int(ident.id),
            full_name=full_name,
            email=email,
            phone=(phone or "").strip() or None,
            role=role,
            agency_id=agency_id,
            created_by=int(actor.id),
        )
        db.add(user)
        log_event(db, action="create", user_id=int(actor.id), resource_type="user", details={"email": email, "role": role})
        db.commit()
    except IntegrityError as e:
        db.rollback()
        log.warning("staff_insert_failed email=%s err=%s; removing identity", email, e.orig)
        db.delete(db.get(AuthIdentity, ident.id))
        db.commit()
        raise Conflict("A staff profile with this email already exists") from e

    db.refresh(user)
    email_sent = send_best_effort(mailer, welcome_email(to=email, full_name=full_name, password=password, role=role))
    return {
        "success": True,
        "user": staff_profile(user),
        "email_sent": email_sent,
        "message": "User created successfully." + (" Welcome email sent." if email_sent else ""),
    }


def reset_password(
    db: Session,
    mailer: Mailer,
    actor: ActorContext,
    *,
    user_id: int,
    password: Optional[str],
) -> dict[str, Any]:
    user = db.get(StaffUser, int(user_id))
    if user is None:
        raise NotFound("User not found")

    if actor.role == "superadmin" or actor.id == user.id:
        pass
    elif actor.role == "agency_admin" and user.agency_id == actor.agency_id and user.role == "agent":
        pass
    else:
        raise AccessDenied("Not allowed to reset this user's password")

    if password is not None and len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    password = password or generate_temp_password()

    ident = db.get(AuthIdentity, user.auth_user_id) if user.auth_user_id else None
    if ident is None:
        ident = db.scalar(select(AuthIdentity).where(AuthIdentity.email == user.email))
    if ident is None:
        raise NotFound("User has no login account")

    ident.password_hash = hash_password(password)
    log_event(db, action="update", user_id=int(actor.id), resource_type="user", resource_id=user.id, details={"password_reset": True})
    db.commit()

    email_sent = send_best_effort(mailer, password_reset_email(to=user.email, full_name=user.full_name, password=password))
    return {"success": True, "user": staff_profile(user), "email_sent": email_sent, "message": "Password reset successfully."}


def list_staff(
    db: Session,
    actor: ActorContext,
    *,
    agency_id: Optional[int] = None,
    role: Optional[str] = None,
) -> list[StaffUser]:
    q = select(StaffUser)
    if actor.role == "superadmin":
        if agency_id is not None:
            q = q.where(StaffUser.agency_id == int(agency_id))
    elif actor.role == "agency_admin":
        q = q.where(StaffUser.agency_id == actor.agency_id)
    else:
        raise AccessDenied("Only administrators can list users")
    if role:
        q = q.where(StaffUser.role == role)
    return list(db.scalars(q.order_by(StaffUser.created_at.desc(), StaffUser.id.desc())).all())


# -------------------------
# Agencies
# -------------------------
def create_agency(
    db: Session,
    mailer: Mailer,
    actor: ActorContext,
    *,
    name: str,
    email: str,
    description: Optional[str] = None,
    admin_full_name: str,
    admin_email: str,
    admin_password: Optional[str] = None,
) -> dict[str, Any]:
    if actor.role != "superadmin":
        raise AccessDenied("Requires superadmin")
    name = (name or "").strip()
    email = (email or "").strip().lower()
    if not name:
        raise ValidationFailed("Agency name is required")
    if not email or "@" not in email:
        raise ValidationFailed("Agency email is required")

    agency = Agency(name=name, email=email, description=description)
    db.add(agency)
    log_event(db, action="create", user_id=int(actor.id), resource_type="agency", details={"name": name})
    db.commit()
    db.refresh(agency)

    try:
        admin = create_user(
            db,
            mailer,
            actor,
            email=admin_email,
            password=admin_password,
            role="agency_admin",
            full_name=admin_full_name,
            agency_id=int(agency.id),
        )
    except (Conflict, ValidationFailed):
        db.rollback()
        db.delete(db.get(Agency, agency.id))
        db.commit()
        raise

    return {"agency": agency, "admin": admin["user"], "email_sent": admin["email_sent"]}


def list_agencies(db: Session, actor: ActorContext) -> list[Agency]:
    q = select(Agency).order_by(Agency.created_at.desc(), Agency.id.desc())
    if actor.role != "superadmin":
        q = q.where(Agency.id == actor.agency_id)
    return list(db.scalars(q).all())


def update_agency(db: Session, actor: ActorContext, agency_id: int, changes: dict[str, Any]) -> Agency:
    agency = db.get(Agency, int(agency_id))
    if agency is None:
        raise NotFound("Agency not found")

    if actor.role == "superadmin":
        pass
    elif actor.role == "agency_admin" and actor.agency_id == agency.id:
        if "is_active" in changes and changes["is_active"] is not None:
            raise AccessDenied("Only superadmin can enable or disable an agency")
    else:
        raise AccessDenied("Not allowed to edit this agency")

    for key in ("name", "email", "description", "logo_url", "primary_color"):
        if key in changes and changes[key] is not None:
            val = str(changes[key]).strip()
            if key in ("name", "email") and not val:
                raise ValidationFailed(f"{key} cannot be empty")
            setattr(agency, key, val.lower() if key == "email" else val)
    if changes.get("is_active") is not None:
        agency.is_active = bool(changes["is_active"])

    log_event(db, action="update", user_id=int(actor.id), resource_type="agency", resource_id=agency.id, details={k: v for k, v in changes.items() if v is not None})
    db.commit()
    db.refresh(agency)
    return agency
