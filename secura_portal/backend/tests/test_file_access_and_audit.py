# backend/tests/test_file_access_and_audit.py
from __future__ import annotations

import pytest
from sqlalchemy import select

from app.config import settings
from app.db import SessionLocal
from app.models import AuditLog, ImmutableRowError, SubmissionAuditLog
from app.services.storage import get_blob_store


@pytest.fixture()
def shared(factory, agency_setup):
    s = agency_setup
    pid = factory.property(s["client_id"], status="submitted")
    sid = factory.submission(client_id=s["client_id"], agency_id=s["agency_id"], property_id=pid, agent_id=s["agent_id"])
    return {**s, "submission_id": sid}


def _post_attachment(api, headers, sid: int, data: bytes = b"%PDF attach") -> dict:
    r = api.post(
        f"/api/submissions/{sid}/updates",
        headers=headers,
        files=[("files", ("terms.pdf", data, "application/pdf"))],
    )
    assert r.status_code == 201, r.text
    return r.json()["update"]["attachments"][0]


# -------------------------
# POST /download-file
# -------------------------
def test_download_file_rejects_malformed_path(api, factory, shared):
    headers = factory.client_headers(shared["client_id"])
    for bad in ("", "submissions/abc/updates/x.pdf", "other/1/updates/x.pdf", "submissions/1/updates/"):
        r = api.post("/api/download-file", headers=headers, json={"filePath": bad})
        assert r.status_code == 400, bad


def test_download_file_requires_a_session(api, shared):
    path = f"submissions/{shared['submission_id']}/updates/1-x.pdf"
    assert api.post("/api/download-file", json={"filePath": path}).status_code == 401
    assert api.post("/api/download-file", json={"filePath": path, "sessionToken": "bogus"}).status_code == 401
    assert api.post("/api/download-file", json={"filePath": path, "userType": "admin"}).status_code == 401


def test_download_file_forbidden_for_other_client_and_unknown_submission(api, factory, shared):
    stranger = factory.client_token(factory.client(full_name="Stranger"))
    path = f"submissions/{shared['submission_id']}/updates/1-x.pdf"

    r = api.post("/api/download-file", json={"filePath": path, "sessionToken": stranger})
    assert r.status_code == 403

    owner = factory.client_token(shared["client_id"])
    r = api.post("/api/download-file", json={"filePath": "submissions/999999/updates/1-x.pdf", "sessionToken": owner})
    assert r.status_code == 403


def test_download_file_missing_blob_is_404(api, factory, shared):
    owner = factory.client_token(shared["client_id"])
    path = f"submissions/{shared['submission_id']}/updates/1-gone.pdf"
    r = api.post("/api/download-file", json={"filePath": path, "sessionToken": owner})
    assert r.status_code == 404


def test_client_downloads_agency_attachment_with_session_token(api, factory, shared):
    att = _post_attachment(api, factory.staff_headers(shared["admin_id"]), shared["submission_id"], b"agency terms")
    owner = factory.client_token(shared["client_id"])

    r = api.post("/api/download-file", json={"filePath": att["file_path"], "sessionToken": owner, "userType": "client"})
    assert r.status_code == 200
    assert r.content == b"agency terms"


# -------------------------
# family/id file access + signed URLs
# -------------------------
def test_view_returns_signed_url_and_is_audited(api, factory, shared):
    sid = shared["submission_id"]
    att = _post_attachment(api, factory.client_headers(shared["client_id"]), sid, b"signed bytes")
    admin = factory.staff_headers(shared["admin_id"])

    r = api.get(f"/api/submissions/{sid}/files/attachment/{att['id']}/view", headers=admin)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["file_name"] == "terms.pdf"
    assert body["expires_in"] == settings.signed_url_ttl_seconds

    blob = api.get(body["url"])
    assert blob.status_code == 200
    assert blob.content == b"signed bytes"

    assert api.get("/api/files/signed/not-a-token").status_code == 401

    trail = api.get(f"/api/submissions/{sid}/audit?order=asc", headers=admin).json()
    assert [(i["action"], i["actor_type"], i["file_name"]) for i in trail["items"]] == [
        ("file_uploaded", "client", "terms.pdf"),
        ("viewed_file", "agency_admin", "terms.pdf"),
    ]


def test_property_document_download_is_scoped_to_the_submission(api, factory, shared):
    s = shared
    headers = factory.client_headers(s["client_id"])
    created = api.post(
        "/api/properties",
        headers=headers,
        data={"title": "Creek Tower", "location": "Creek Harbour", "property_type": "apartment"},
        files={"title_deed": ("deed.pdf", b"deed bytes", "application/pdf")},
    ).json()
    doc_id = created["property"]["documents"][0]["id"]

    # the shared submission points at a different property
    r = api.get(f"/api/submissions/{s['submission_id']}/files/property/{doc_id}/download", headers=factory.staff_headers(s["admin_id"]))
    assert r.status_code == 404

    sub = api.post("/api/submissions", headers=headers, json={"property_ids": [created["property"]["id"]]}).json()[0]
    r = api.get(f"/api/submissions/{sub['id']}/files/property/{doc_id}/download", headers=factory.staff_headers(s["admin_id"]))
    assert r.status_code == 200
    assert r.content == b"deed bytes"

    bad_family = api.get(f"/api/submissions/{sub['id']}/files/secret/{doc_id}/view", headers=factory.staff_headers(s["admin_id"]))
    assert bad_family.status_code == 400


def test_own_identity_document_access_goes_to_generic_log(api, factory, shared):
    headers = factory.client_headers(shared["client_id"])
    up = api.post(
        "/api/client/documents",
        headers=headers,
        data={"document_types": ["emirates_id"]},
        files=[("files", ("eid.png", b"\x89PNG eid", "image/png"))],
    ).json()
    doc = up["documents"][0]
    assert doc["file_path"].startswith(f"{shared['client_id']}/identity/emirates_id_")

    r = api.get(f"/api/client/documents/{doc['id']}/download", headers=headers)
    assert r.status_code == 200
    assert r.content == b"\x89PNG eid"

    other = factory.client_headers(factory.client(full_name="Other"))
    assert api.get(f"/api/client/documents/{doc['id']}/download", headers=other).status_code == 403

    db = SessionLocal()
    try:
        actions = db.scalars(
            select(AuditLog.action).where(AuditLog.client_id == shared["client_id"]).order_by(AuditLog.id)
        ).all()
        assert actions == ["upload", "download"]
        assert db.scalars(select(SubmissionAuditLog)).all() == []
    finally:
        db.close()


def test_identity_documents_must_be_images_or_pdf(api, factory, shared):
    r = api.post(
        "/api/client/documents",
        headers=factory.client_headers(shared["client_id"]),
        data={"document_types": ["passport"]},
        files=[("files", ("passport.docx", b"doc", "application/vnd.openxmlformats-officedocument.wordprocessingml.document"))],
    )
    assert r.status_code == 400


# -------------------------
# audit trail
# -------------------------
def test_audit_trail_pages_newest_first(api, factory, shared):
    sid = shared["submission_id"]
    admin = factory.staff_headers(shared["admin_id"])
    for i in range(3):
        api.post(f"/api/submissions/{sid}/updates", headers=admin, data={"message": f"note {i}"})
    api.post(f"/api/submissions/{sid}/status", headers=admin, json={"status": "under_review"})

    page = api.get(f"/api/submissions/{sid}/audit?limit=2", headers=admin).json()
    assert page["total"] == 4
    assert [i["action"] for i in page["items"]] == ["under_review", "message_sent"]

    rest = api.get(f"/api/submissions/{sid}/audit?limit=2&offset=2", headers=admin).json()
    assert [i["action"] for i in rest["items"]] == ["message_sent", "message_sent"]

    outsider = factory.staff_headers(factory.staff("agency_admin", factory.agency("Elsewhere")))
    assert api.get(f"/api/submissions/{sid}/audit", headers=outsider).status_code == 403


def test_audit_rows_are_append_only(api, factory, shared):
    sid = shared["submission_id"]
    api.post(f"/api/submissions/{sid}/updates", headers=factory.staff_headers(shared["admin_id"]), data={"message": "hi"})

    db = SessionLocal()
    try:
        row = db.scalars(select(SubmissionAuditLog)).first()
        row.action = "approved"
        with pytest.raises(ImmutableRowError):
            db.flush()
        db.rollback()

        row = db.scalars(select(SubmissionAuditLog)).first()
        db.delete(row)
        with pytest.raises(ImmutableRowError):
            db.flush()
        db.rollback()

        assert db.scalars(select(SubmissionAuditLog.action)).all() == ["message_sent"]
    finally:
        db.close()


def test_generic_audit_log_is_append_only(api, factory):
    factory.client("+971509999999")
    api.post("/api/client-auth/otp", json={"phone": "+971509999999"})

    db = SessionLocal()
    try:
        row = db.scalars(select(AuditLog)).first()
        row.details_json = "{}"
        with pytest.raises(ImmutableRowError):
            db.flush()
        db.rollback()
    finally:
        db.close()


def test_audit_logs_scoped_for_agency_admin(api, factory, shared):
    other_agency = factory.agency("Elsewhere")
    other_client = factory.client("+971508888888", agency_id=other_agency)
    mine_phone = "+971507777777"
    mine_client = factory.client(mine_phone, agency_id=shared["agency_id"])
    api.post("/api/client-auth/otp", json={"phone": mine_phone})
    api.post("/api/client-auth/otp", json={"phone": "+971508888888"})

    r = api.get("/api/audit-logs?action=sms_sent", headers=factory.staff_headers(shared["admin_id"]))
    assert r.status_code == 200
    assert {row["client_id"] for row in r.json()} == {mine_client}
    assert other_client not in {row["client_id"] for row in r.json()}

    agent = factory.staff_headers(shared["agent_id"])
    assert api.get("/api/audit-logs", headers=agent).status_code == 403


def test_store_round_trip_uses_configured_buckets():
    store = get_blob_store()
    store.upload(settings.bucket_client_documents, "1/identity/x.pdf", b"abc", "application/pdf")
    assert store.exists(settings.bucket_client_documents, "1/identity/x.pdf")
    assert store.download(settings.bucket_client_documents, "1/identity/x.pdf") == b"abc"
    store.delete(settings.bucket_client_documents, "1/identity/x.pdf")
    assert not store.exists(settings.bucket_client_documents, "1/identity/x.pdf")
