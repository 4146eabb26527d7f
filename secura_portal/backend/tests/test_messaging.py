# backend/tests/test_messaging.py
from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.db import SessionLocal
from app.errors import StorageError
from app.models import (
    OrphanedBlob,
    SubmissionAuditLog,
    SubmissionUpdate,
    SubmissionUpdateAttachment,
)
from app.services import messaging_service
from app.services.storage import LocalBlobStore, get_blob_store


@pytest.fixture()
def thread(factory, agency_setup):
    s = agency_setup
    pid = factory.property(s["client_id"], status="submitted")
    sid = factory.submission(client_id=s["client_id"], agency_id=s["agency_id"], property_id=pid, agent_id=s["agent_id"])
    return {
        **s,
        "submission_id": sid,
        "admin": factory.staff_headers(s["admin_id"]),
        "client": factory.client_headers(s["client_id"]),
    }


def _unread_in_db(submission_id: int, viewer_role: str) -> int:
    db = SessionLocal()
    try:
        return int(
            db.scalar(
                select(func.count(SubmissionUpdate.id)).where(
                    SubmissionUpdate.submission_id == submission_id,
                    SubmissionUpdate.is_read.is_(False),
                    SubmissionUpdate.sender_role != viewer_role,
                )
            )
        )
    finally:
        db.close()


def test_admin_message_is_unread_until_client_marks_it(api, thread):
    sid = thread["submission_id"]

    r = api.post(f"/api/submissions/{sid}/updates", headers=thread["admin"], data={"message": "Please resend ID"})
    assert r.status_code == 201, r.text
    upd = r.json()["update"]
    assert upd["sender_role"] == "admin"
    assert upd["is_read"] is False
    assert upd["sender_name"] == "Omar Admin"

    db = SessionLocal()
    try:
        assert db.scalar(select(func.count(SubmissionUpdate.id))) == 1
        actions = db.scalars(select(SubmissionAuditLog.action).where(SubmissionAuditLog.submission_id == sid)).all()
        assert actions == ["message_sent"]
    finally:
        db.close()

    before = api.get(f"/api/submissions/{sid}/updates", headers=thread["client"])
    assert before.status_code == 200
    assert before.json()["unread_count"] >= 1

    marked = api.post(f"/api/submissions/{sid}/updates/read", headers=thread["client"])
    assert marked.status_code == 200
    assert marked.json() == {"marked": 1, "unread_count": 0}

    after = api.get(f"/api/submissions/{sid}/updates", headers=thread["client"])
    assert after.json()["unread_count"] == 0
    assert after.json()["updates"][0]["is_read"] is True


def test_mark_read_is_idempotent_and_only_touches_the_other_side(api, thread):
    sid = thread["submission_id"]
    api.post(f"/api/submissions/{sid}/updates", headers=thread["admin"], data={"message": "one"})
    api.post(f"/api/submissions/{sid}/updates", headers=thread["client"], data={"message": "two"})

    first = api.post(f"/api/submissions/{sid}/updates/read", headers=thread["client"])
    second = api.post(f"/api/submissions/{sid}/updates/read", headers=thread["client"])
    assert first.json()["marked"] == 1
    assert second.json()["marked"] == 0

    # the client's own message stays unread for the agency
    assert _unread_in_db(sid, "admin") == 1
    assert _unread_in_db(sid, "client") == 0


def test_unread_counts_match_a_direct_count(api, factory, thread):
    sid = thread["submission_id"]
    other = factory.submission(
        client_id=thread["client_id"],
        agency_id=thread["agency_id"],
        agent_id=thread["agent_id"],
        property_id=factory.property(thread["client_id"], title="Second"),
    )
    for _ in range(3):
        api.post(f"/api/submissions/{sid}/updates", headers=thread["admin"], data={"message": "ping"})
    api.post(f"/api/submissions/{other}/updates", headers=thread["client"], data={"message": "hello"})

    client_counts = api.get("/api/submissions/unread-counts", headers=thread["client"]).json()
    assert client_counts[str(sid)] == _unread_in_db(sid, "client") == 3
    assert client_counts[str(other)] == _unread_in_db(other, "client") == 0

    admin_counts = api.get("/api/submissions/unread-counts", headers=thread["admin"]).json()
    assert admin_counts[str(other)] == _unread_in_db(other, "admin") == 1

    listed = api.get("/api/submissions", headers=thread["client"]).json()
    by_id = {v["submission"]["id"]: v["unread_count"] for v in listed}
    assert by_id == {sid: 3, other: 0}


def test_empty_update_is_rejected(api, thread):
    r = api.post(f"/api/submissions/{thread['submission_id']}/updates", headers=thread["admin"], data={"message": "   "})
    assert r.status_code == 400


def test_oversized_attachment_is_rejected_before_anything_is_written(api, thread, monkeypatch):
    monkeypatch.setattr(settings, "max_upload_bytes", 1024)
    sid = thread["submission_id"]

    r = api.post(
        f"/api/submissions/{sid}/updates",
        headers=thread["client"],
        data={"message": "see attached"},
        files=[("files", ("big.pdf", b"x" * 1025, "application/pdf"))],
    )
    assert r.status_code == 400

    db = SessionLocal()
    try:
        assert db.scalar(select(func.count(SubmissionUpdate.id))) == 0
        assert db.scalar(select(func.count(SubmissionAuditLog.id))) == 0
    finally:
        db.close()
    bucket_dir = get_blob_store().root / settings.bucket_submission_updates / "submissions" / str(sid)
    assert not bucket_dir.exists()


def test_attachment_round_trip_is_byte_identical(api, thread):
    sid = thread["submission_id"]
    payload = bytes(range(256)) * 8

    r = api.post(
        f"/api/submissions/{sid}/updates",
        headers=thread["client"],
        files=[("files", ("scan.pdf", payload, "application/pdf"))],
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["failed_uploads"] == 0
    att = body["update"]["attachments"][0]
    assert att["file_size"] == len(payload)
    assert att["file_path"].startswith(f"submissions/{sid}/updates/")

    dl = api.post("/api/download-file", headers=thread["admin"], json={"filePath": att["file_path"], "userType": "admin"})
    assert dl.status_code == 200
    assert dl.content == payload
    assert "scan.pdf" in dl.headers["content-disposition"]

    db = SessionLocal()
    try:
        actions = db.scalars(
            select(SubmissionAuditLog.action).where(SubmissionAuditLog.submission_id == sid).order_by(SubmissionAuditLog.id)
        ).all()
        assert actions == ["file_uploaded", "downloaded_file"]
    finally:
        db.close()


def test_failed_attachment_row_keeps_the_update_and_records_the_orphan(api, thread, monkeypatch):
    def _boom(*args, **kwargs):
        raise SQLAlchemyError("simulated insert failure")

    monkeypatch.setattr(messaging_service, "insert_attachment", _boom)
    sid = thread["submission_id"]

    r = api.post(
        f"/api/submissions/{sid}/updates",
        headers=thread["admin"],
        data={"message": "Contract draft attached"},
        files=[("files", ("draft.pdf", b"%PDF draft", "application/pdf"))],
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["orphaned_uploads"] == 1
    assert body["update"]["message"] == "Contract draft attached"
    assert body["update"]["attachments"] == []

    db = SessionLocal()
    try:
        assert db.scalar(select(func.count(SubmissionUpdate.id))) == 1
        assert db.scalar(select(func.count(SubmissionUpdateAttachment.id))) == 0

        orphan = db.scalars(select(OrphanedBlob)).one()
        assert orphan.bucket == settings.bucket_submission_updates
        assert orphan.path.startswith(f"submissions/{sid}/updates/")
        assert orphan.resolved_at is None
        # the blob really is in storage with nothing pointing at it
        assert get_blob_store().exists(orphan.bucket, orphan.path)
    finally:
        db.close()


def test_outsider_cannot_read_or_post(api, factory, thread):
    other_agency = factory.agency("Other Realty")
    outsider = factory.staff_headers(factory.staff("agency_admin", other_agency))
    stranger = factory.client_headers(factory.client(full_name="Stranger"))
    sid = thread["submission_id"]

    assert api.get(f"/api/submissions/{sid}/updates", headers=outsider).status_code == 403
    assert api.post(f"/api/submissions/{sid}/updates", headers=stranger, data={"message": "hi"}).status_code == 403
    assert api.get("/api/submissions/999999/updates", headers=thread["admin"]).status_code == 404


def test_files_only_update_is_dropped_when_no_upload_succeeds(api, thread, monkeypatch):
    def _fail(self, bucket, path, data, content_type):
        raise StorageError("bucket unavailable")

    monkeypatch.setattr(LocalBlobStore, "upload", _fail)
    sid = thread["submission_id"]

    r = api.post(
        f"/api/submissions/{sid}/updates",
        headers=thread["admin"],
        files=[("files", ("contract.pdf", b"%PDF contract", "application/pdf"))],
    )
    assert r.status_code == 500
    assert r.json()["kind"] == "storage"

    db = SessionLocal()
    try:
        assert db.scalar(select(func.count(SubmissionUpdate.id))) == 0
        assert db.scalar(select(func.count(SubmissionAuditLog.id))) == 0
    finally:
        db.close()

    thread_view = api.get(f"/api/submissions/{sid}/updates", headers=thread["client"]).json()
    assert thread_view == {"updates": [], "unread_count": 0}


def test_message_survives_when_its_attachment_upload_fails(api, thread, monkeypatch):
    def _fail(self, bucket, path, data, content_type):
        raise StorageError("bucket unavailable")

    monkeypatch.setattr(LocalBlobStore, "upload", _fail)
    sid = thread["submission_id"]

    r = api.post(
        f"/api/submissions/{sid}/updates",
        headers=thread["admin"],
        data={"message": "contract attached"},
        files=[("files", ("contract.pdf", b"%PDF contract", "application/pdf"))],
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["failed_uploads"] == 1
    assert body["update"]["message"] == "contract attached"
    assert body["update"]["attachments"] == []
