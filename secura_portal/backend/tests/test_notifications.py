# backend/tests/test_notifications.py
from __future__ import annotations

import json

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from app.db import SessionLocal
from app.models import AgencyNotification, ClientProperty, Submission, SubmissionAuditLog
from app.services import notification_service


def _submit(api, factory, s, title: str = "Marina View 12B") -> int:
    pid = factory.property(s["client_id"], title=title)
    r = api.post(
        "/api/submissions",
        headers=factory.client_headers(s["client_id"]),
        json={"property_ids": [pid], "agency_id": s["agency_id"], "agent_id": s["agent_id"]},
    )
    assert r.status_code == 201, r.text
    return pid


def test_notification_failure_does_not_undo_the_submission(api, factory, agency_setup, monkeypatch):
    def _boom(db, **kw):
        raise SQLAlchemyError("notifications table unavailable")

    monkeypatch.setattr(notification_service, "create_notification", _boom)
    pid = _submit(api, factory, agency_setup)

    db = SessionLocal()
    try:
        sub = db.scalars(select(Submission).where(Submission.property_id == pid)).one()
        assert sub.status == "submitted"
        assert db.get(ClientProperty, pid).status == "submitted"
        assert db.scalar(select(func.count(SubmissionAuditLog.id))) == 1
        assert db.scalar(select(func.count(AgencyNotification.id))) == 0
    finally:
        db.close()


def test_notification_metadata_is_a_snapshot(api, factory, agency_setup):
    pid = _submit(api, factory, agency_setup, title="Original Title")

    db = SessionLocal()
    try:
        db.get(ClientProperty, pid).title = "Renamed Later"
        db.commit()
        note = db.scalars(select(AgencyNotification)).one()
        meta = json.loads(note.metadata_json)
        assert meta["property_title"] == "Original Title"
        assert meta["agent_name"] == "Sara Agent"
        assert meta["client_name"] == "Layla Client"
    finally:
        db.close()


def test_agent_sees_own_and_agency_wide_notifications(api, factory, agency_setup):
    s = agency_setup
    other_agent = factory.staff("agent", s["agency_id"])

    db = SessionLocal()
    try:
        for agent_id, title in ((s["agent_id"], "mine"), (other_agent, "theirs"), (None, "everyone")):
            notification_service.create_notification(
                db, agency_id=s["agency_id"], agent_id=agent_id, type="property_submitted", title=title, message=title
            )
        db.commit()
    finally:
        db.close()

    agent_view = api.get("/api/notifications", headers=factory.staff_headers(s["agent_id"])).json()
    assert sorted(n["title"] for n in agent_view) == ["everyone", "mine"]

    admin_view = api.get("/api/notifications", headers=factory.staff_headers(s["admin_id"])).json()
    assert len(admin_view) == 3

    client = api.get("/api/notifications", headers=factory.client_headers(s["client_id"]))
    assert client.status_code == 403


def test_mark_read_and_read_all(api, factory, agency_setup):
    s = agency_setup
    _submit(api, factory, s, title="One")
    _submit(api, factory, s, title="Two")
    admin = factory.staff_headers(s["admin_id"])

    notes = api.get("/api/notifications?unread_only=true", headers=admin).json()
    assert len(notes) == 2

    first = api.post(f"/api/notifications/{notes[0]['id']}/read", headers=admin)
    assert first.status_code == 200
    read_at = first.json()["read_at"]
    assert first.json()["is_read"] is True

    # marking again keeps the original timestamp
    again = api.post(f"/api/notifications/{notes[0]['id']}/read", headers=admin)
    assert again.json()["read_at"] == read_at

    assert api.post("/api/notifications/read-all", headers=admin).json() == {"updated": 1}
    assert api.post("/api/notifications/read-all", headers=admin).json() == {"updated": 0}
    assert api.get("/api/notifications?unread_only=true", headers=admin).json() == []


def test_other_agency_cannot_mark_notification(api, factory, agency_setup):
    _submit(api, factory, agency_setup)
    outsider = factory.staff_headers(factory.staff("agency_admin", factory.agency("Elsewhere")))

    db = SessionLocal()
    try:
        note_id = db.scalars(select(AgencyNotification.id)).one()
    finally:
        db.close()

    assert api.post(f"/api/notifications/{note_id}/read", headers=outsider).status_code == 404
