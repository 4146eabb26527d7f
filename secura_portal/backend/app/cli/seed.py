# backend/app/cli/seed.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from app.auth import hash_password
from app.db import SessionLocal
from app.models import AuthIdentity, StaffUser
from app.services.user_service import generate_temp_password


@dataclass(frozen=True)
class SeedResult:
    user_id: int
    email: str
    created: bool
    password: Optional[str]


def _get_or_create_identity(db: Session, email: str, password: str) -> tuple[AuthIdentity, bool]:
    row = db.query(AuthIdentity).filter(AuthIdentity.email == email).one_or_none()
    if row:
        row.password_hash = hash_password(password)
        db.commit()
        return row, False
    row = AuthIdentity(email=email, password_hash=hash_password(password))
    db.add(row)
    db.commit()
    db.refresh(row)
    return row, True


def seed_superadmin(*, email: str, password: Optional[str] = None, full_name: str = "Platform Admin") -> SeedResult:
    """Idempotent: re-running resets the password and reactivates the account."""
    email = email.strip().lower()
    password = password or generate_temp_password()

    db = SessionLocal()
    try:
        ident, created = _get_or_create_identity(db, email, password)

        user = db.query(StaffUser).filter(StaffUser.email == email).one_or_none()
        if user is None:
            user = StaffUser(auth_user_id=int(ident.id), full_name=full_name, email=email, role="superadmin")
            db.add(user)
        else:
            user.auth_user_id = int(ident.id)
            user.role = "superadmin"
            user.agency_id = None
            user.is_active = True
        db.commit()
        db.refresh(user)
        return SeedResult(user_id=int(user.id), email=email, created=created, password=password)
    finally:
        db.close()
