# backend/tests/conftest.py
from __future__ import annotations

import os
import shutil
import tempfile
from datetime import timedelta
from pathlib import Path

_TMP = Path(tempfile.mkdtemp(prefix="secura-tests-"))
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP / 'test.db'}"
os.environ["STORAGE_ROOT"] = str(_TMP / "storage")
os.environ.setdefault("AUTH_PBKDF2_ITERS", "1000")

import pytest
from fastapi.testclient import TestClient

from app.auth import create_access_token, hash_password, hash_session_token, new_session_token
from app.db import Base, SessionLocal, engine
from app.errors import UpstreamError
from app.main import create_app
from app.models import (
    Agency,
    AuthIdentity,
    Client,
    ClientProperty,
    ClientSession,
    StaffUser,
    Submission,
    utcnow,
)
from app.services.mailer import get_mailer
from app.services.sms import get_sms_sender

Base.metadata.create_all(bind=engine)


@pytest.fixture(autouse=True)
def _clean_tables():
    # core DELETE so the append-only mapper hooks on the audit tables do not fire
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())
    # every test starts with empty buckets; sqlite reuses ids after DELETE
    shutil.rmtree(os.environ["STORAGE_ROOT"], ignore_errors=True)
    yield


class FakeSms:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail = False

    def send(self, to: str, body: str) -> None:
        if self.fail:
            raise UpstreamError("fake provider down")
        self.sent.append((to, body))


class FakeMailer:
    def __init__(self) -> None:
        self.sent = []

    def send(self, email) -> None:
        self.sent.append(email)


@pytest.fixture()
def fake_sms() -> FakeSms:
    return FakeSms()


@pytest.fixture()
def fake_mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture()
def api(fake_sms, fake_mailer):
    app = create_app()
    app.dependency_overrides[get_sms_sender] = lambda: fake_sms
    app.dependency_overrides[get_mailer] = lambda: fake_mailer
    with TestClient(app) as c:
        yield c


# -------------------------
# Row factories
# -------------------------
class Factory:
    def __init__(self) -> None:
        self._n = 0

    def _seq(self) -> int:
        self._n += 1
        return self._n

    def agency(self, name: str = "Palm Realty", *, is_active: bool = True) -> int:
        db = SessionLocal()
        try:
            a = Agency(name=name, email=f"agency{self._seq()}@example.com", is_active=is_active)
            db.add(a)
            db.commit()
            return int(a.id)
        finally:
            db.close()

    def staff(
        self,
        role: str,
        agency_id: int | None = None,
        *,
        full_name: str = "Staff Member",
        password: str = "s3cret-pass",
        email: str | None = None,
    ) -> int:
        db = SessionLocal()
        try:
            email = email or f"{role}{self._seq()}@example.com"
            ident = AuthIdentity(email=email, password_hash=hash_password(password))
            db.add(ident)
            db.flush()
            u = StaffUser(auth_user_id=ident.id, full_name=full_name, email=email, role=role, agency_id=agency_id)
            db.add(u)
            db.commit()
            return int(u.id)
        finally:
            db.close()

    def client(
        self,
        phone: str | None = None,
        *,
        full_name: str = "Layla Client",
        agency_id: int | None = None,
        agent_id: int | None = None,
    ) -> int:
        db = SessionLocal()
        try:
            c = Client(
                phone=phone or f"+97150{1000000 + self._seq()}",
                full_name=full_name,
                is_verified=True,
                agency_id=agency_id,
                agent_id=agent_id,
                # outside the OTP rate-limit window
                updated_at=utcnow() - timedelta(hours=1),
            )
            db.add(c)
            db.commit()
            return int(c.id)
        finally:
            db.close()

    def property(self, client_id: int, *, title: str = "Marina View 12B", status: str = "in_portfolio") -> int:
        db = SessionLocal()
        try:
            p = ClientProperty(
                client_id=client_id,
                title=title,
                location="Dubai Marina",
                property_type="apartment",
                bedrooms=2,
                status=status,
            )
            db.add(p)
            db.commit()
            return int(p.id)
        finally:
            db.close()

    def submission(
        self,
        *,
        client_id: int,
        agency_id: int,
        property_id: int | None = None,
        agent_id: int | None = None,
        status: str = "submitted",
    ) -> int:
        db = SessionLocal()
        try:
            s = Submission(
                submission_type="property" if property_id is not None else "identity",
                property_id=property_id,
                client_id=client_id,
                agency_id=agency_id,
                agent_id=agent_id,
                status=status,
            )
            db.add(s)
            db.commit()
            return int(s.id)
        finally:
            db.close()

    def client_token(self, client_id: int) -> str:
        db = SessionLocal()
        try:
            raw = new_session_token()
            db.add(
                ClientSession(
                    client_id=client_id,
                    token_hash=hash_session_token(raw),
                    expires_at=utcnow() + timedelta(days=1),
                )
            )
            db.commit()
            return raw
        finally:
            db.close()

    def client_headers(self, client_id: int) -> dict[str, str]:
        return {"X-Client-Session": self.client_token(client_id)}

    def staff_headers(self, user_id: int) -> dict[str, str]:
        db = SessionLocal()
        try:
            u = db.get(StaffUser, user_id)
            token = create_access_token(user_id=int(u.id), role=str(u.role), agency_id=u.agency_id)
        finally:
            db.close()
        return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def factory() -> Factory:
    return Factory()


@pytest.fixture()
def agency_setup(factory):
    """One agency with an admin and an agent, plus a client referred by that agent."""
    agency_id = factory.agency()
    admin_id = factory.staff("agency_admin", agency_id, full_name="Omar Admin")
    agent_id = factory.staff("agent", agency_id, full_name="Sara Agent")
    client_id = factory.client(agency_id=agency_id, agent_id=agent_id)
    return {"agency_id": agency_id, "admin_id": admin_id, "agent_id": agent_id, "client_id": client_id}
