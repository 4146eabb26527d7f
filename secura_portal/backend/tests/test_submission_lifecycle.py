# backend/tests/test_submission_lifecycle.py
from __future__ import annotations

from sqlalchemy import func, select

from app.db import SessionLocal
from app.errors import StorageError
from app.models import AgencyNotification, ClientProperty, PropertyDocument, Submission, SubmissionAuditLog
from app.services.storage import LocalBlobStore


def _create_property(api, headers, title: str = "Marina View 12B") -> int:
    r = api.post(
        "/api/properties",
        headers=headers,
        data={"title": title, "location": "Dubai Marina", "property_type": "apartment", "bedrooms": "2"},
        files={"title_deed": ("deed.pdf", b"%PDF-1.4 deed", "application/pdf")},
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["failed_uploads"] == 0
    assert body["property"]["status"] == "in_portfolio"
    assert [d["document_type"] for d in body["property"]["documents"]] == ["title_deed"]
    return body["property"]["id"]


def test_client_submits_property_to_agency(api, factory, agency_setup):
    s = agency_setup
    headers = factory.client_headers(s["client_id"])
    pid = _create_property(api, headers)

    r = api.post(
        "/api/submissions",
        headers=headers,
        json={"property_ids": [pid], "agency_id": s["agency_id"], "agent_id": s["agent_id"]},
    )
    assert r.status_code == 201, r.text
    created = r.json()
    assert len(created) == 1
    assert created[0]["status"] == "submitted"
    assert created[0]["agent_id"] == s["agent_id"]

    db = SessionLocal()
    try:
        subs = db.scalars(select(Submission).where(Submission.property_id == pid)).all()
        assert len(subs) == 1
        assert db.get(ClientProperty, pid).status == "submitted"

        notes = db.scalars(select(AgencyNotification).where(AgencyNotification.agency_id == s["agency_id"])).all()
        assert len(notes) == 1
        assert notes[0].type == "property_submitted"
        assert notes[0].submission_id == subs[0].id

        trail = db.scalars(select(SubmissionAuditLog).where(SubmissionAuditLog.submission_id == subs[0].id)).all()
        assert [(t.action, t.actor_type) for t in trail] == [("submitted", "client")]
    finally:
        db.close()


def test_property_requires_title_deed(api, factory, agency_setup):
    headers = factory.client_headers(agency_setup["client_id"])
    r = api.post(
        "/api/properties",
        headers=headers,
        data={"title": "No Deed", "location": "JLT", "property_type": "villa"},
        files={"noc": ("noc.pdf", b"%PDF noc", "application/pdf")},
    )
    assert r.status_code == 400
    assert r.json()["kind"] == "validation"

    db = SessionLocal()
    try:
        assert db.scalar(select(func.count(ClientProperty.id))) == 0
    finally:
        db.close()


def test_duplicate_submission_to_same_agency_conflicts(api, factory, agency_setup):
    s = agency_setup
    pid = factory.property(s["client_id"])
    factory.submission(client_id=s["client_id"], agency_id=s["agency_id"], property_id=pid)

    r = api.post(
        "/api/submissions",
        headers=factory.client_headers(s["client_id"]),
        json={"property_ids": [pid], "agency_id": s["agency_id"]},
    )
    # the property is still in_portfolio, so only the per-agency uniqueness rejects it
    assert r.status_code == 409

    db = SessionLocal()
    try:
        assert db.scalar(select(func.count(Submission.id))) == 1
    finally:
        db.close()


def test_cannot_submit_someone_elses_property(api, factory, agency_setup):
    s = agency_setup
    other = factory.client(full_name="Other Owner")
    pid = factory.property(other)

    r = api.post(
        "/api/submissions",
        headers=factory.client_headers(s["client_id"]),
        json={"property_ids": [pid], "agency_id": s["agency_id"]},
    )
    assert r.status_code == 403


def test_agent_must_belong_to_target_agency(api, factory, agency_setup):
    s = agency_setup
    other_agency = factory.agency("Other Realty")
    outsider = factory.staff("agent", other_agency)
    pid = factory.property(s["client_id"])

    r = api.post(
        "/api/submissions",
        headers=factory.client_headers(s["client_id"]),
        json={"property_ids": [pid], "agency_id": s["agency_id"], "agent_id": outsider},
    )
    assert r.status_code == 400


def test_approval_does_not_touch_property_status(api, factory, agency_setup):
    s = agency_setup
    pid = factory.property(s["client_id"], status="submitted")
    sid = factory.submission(client_id=s["client_id"], agency_id=s["agency_id"], property_id=pid, agent_id=s["agent_id"])

    r = api.post(f"/api/submissions/{sid}/status", headers=factory.staff_headers(s["admin_id"]), json={"status": "approved"})
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "approved"
    assert r.json()["reviewed_at"] is not None

    db = SessionLocal()
    try:
        assert db.get(Submission, sid).status == "approved"
        # property and submission statuses are independent
        assert db.get(ClientProperty, pid).status == "submitted"
        actions = db.scalars(select(SubmissionAuditLog.action).where(SubmissionAuditLog.submission_id == sid)).all()
        assert actions == ["approved"]
    finally:
        db.close()


def test_terminal_status_cannot_move(api, factory, agency_setup):
    s = agency_setup
    sid = factory.submission(client_id=s["client_id"], agency_id=s["agency_id"], agent_id=s["agent_id"], status="rejected")

    r = api.post(f"/api/submissions/{sid}/status", headers=factory.staff_headers(s["admin_id"]), json={"status": "approved"})
    assert r.status_code == 409


def test_unknown_status_is_rejected(api, factory, agency_setup):
    s = agency_setup
    sid = factory.submission(client_id=s["client_id"], agency_id=s["agency_id"], agent_id=s["agent_id"])

    r = api.post(f"/api/submissions/{sid}/status", headers=factory.staff_headers(s["admin_id"]), json={"status": "closed"})
    assert r.status_code == 400


def test_only_reviewers_may_change_status(api, factory, agency_setup):
    s = agency_setup
    sid = factory.submission(client_id=s["client_id"], agency_id=s["agency_id"], agent_id=s["agent_id"])

    other_agent = factory.staff("agent", s["agency_id"])
    superadmin = factory.staff("superadmin")

    r1 = api.post(f"/api/submissions/{sid}/status", headers=factory.staff_headers(other_agent), json={"status": "under_review"})
    assert r1.status_code == 403

    r2 = api.post(f"/api/submissions/{sid}/status", headers=factory.staff_headers(superadmin), json={"status": "under_review"})
    assert r2.status_code == 403

    r3 = api.post(f"/api/submissions/{sid}/status", headers=factory.client_headers(s["client_id"]), json={"status": "approved"})
    assert r3.status_code == 403

    r4 = api.post(f"/api/submissions/{sid}/status", headers=factory.staff_headers(s["agent_id"]), json={"status": "under_review"})
    assert r4.status_code == 200
    assert r4.json()["status"] == "under_review"


def test_identity_submission_requires_documents(api, factory, agency_setup):
    s = agency_setup
    headers = factory.client_headers(s["client_id"])

    r = api.post("/api/submissions/identity", headers=headers, json={})
    assert r.status_code == 400

    up = api.post(
        "/api/client/documents",
        headers=headers,
        data={"document_types": ["passport"]},
        files=[("files", ("passport.jpg", b"\xff\xd8\xff jpeg", "image/jpeg"))],
    )
    assert up.status_code == 201, up.text

    r = api.post("/api/submissions/identity", headers=headers, json={})
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["submission_type"] == "identity"
    assert body["property_id"] is None
    assert body["agency_id"] == s["agency_id"]
    assert body["notes"] == "ID Documents Submission - Buyer Registration"

    detail = api.get(f"/api/submissions/{body['id']}", headers=factory.staff_headers(s["admin_id"]))
    assert detail.status_code == 200
    assert [d["document_type"] for d in detail.json()["identity_documents"]] == ["passport"]


def test_list_filters_missing_property_but_tasks_keep_placeholder(api, factory, agency_setup):
    s = agency_setup
    pid = factory.property(s["client_id"], status="submitted")
    sid = factory.submission(client_id=s["client_id"], agency_id=s["agency_id"], property_id=pid, agent_id=s["agent_id"])

    db = SessionLocal()
    try:
        db.get(Submission, sid).property_id = None
        db.commit()
    finally:
        db.close()

    admin = factory.staff_headers(s["admin_id"])

    listed = api.get("/api/submissions", headers=admin)
    assert listed.status_code == 200
    assert listed.json() == []

    tasks = api.get("/api/submissions/tasks", headers=admin)
    assert tasks.status_code == 200
    rows = tasks.json()
    assert len(rows) == 1
    assert rows[0]["property"]["title"] == "Property Details Unavailable"
    assert rows[0]["client"]["full_name"] == "Layla Client"


def test_agent_sees_only_assigned_submissions(api, factory, agency_setup):
    s = agency_setup
    other_agent = factory.staff("agent", s["agency_id"])
    mine = factory.submission(client_id=s["client_id"], agency_id=s["agency_id"], agent_id=s["agent_id"], property_id=factory.property(s["client_id"]))
    factory.submission(client_id=s["client_id"], agency_id=s["agency_id"], agent_id=other_agent, property_id=factory.property(s["client_id"], title="Other"))

    r = api.get("/api/submissions", headers=factory.staff_headers(s["agent_id"]))
    assert r.status_code == 200
    assert [v["submission"]["id"] for v in r.json()] == [mine]

    admin_view = api.get("/api/submissions", headers=factory.staff_headers(s["admin_id"]))
    assert len(admin_view.json()) == 2


def test_property_is_kept_when_one_document_upload_fails(api, factory, agency_setup, monkeypatch):
    real_upload = LocalBlobStore.upload

    def _flaky(self, bucket, path, data, content_type):
        if path.rsplit("/", 1)[-1].startswith("noc_"):
            raise StorageError("bucket unavailable")
        real_upload(self, bucket, path, data, content_type)

    monkeypatch.setattr(LocalBlobStore, "upload", _flaky)
    r = api.post(
        "/api/properties",
        headers=factory.client_headers(agency_setup["client_id"]),
        data={"title": "Partial Docs", "location": "Business Bay", "property_type": "apartment"},
        files={
            "title_deed": ("deed.pdf", b"%PDF deed", "application/pdf"),
            "noc": ("noc.pdf", b"%PDF noc", "application/pdf"),
        },
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["failed_uploads"] == 1
    assert [d["document_type"] for d in body["property"]["documents"]] == ["title_deed"]

    db = SessionLocal()
    try:
        docs = db.scalars(select(PropertyDocument)).all()
        assert [d.document_type for d in docs] == ["title_deed"]
        assert docs[0].property_id == body["property"]["id"]
    finally:
        db.close()


def test_batch_submission_writes_one_row_set_per_property(api, factory, agency_setup):
    s = agency_setup
    first = factory.property(s["client_id"], title="Marina View 12B")
    second = factory.property(s["client_id"], title="Creek Harbour 7")

    r = api.post(
        "/api/submissions",
        headers=factory.client_headers(s["client_id"]),
        json={"property_ids": [first, second], "agency_id": s["agency_id"], "agent_id": s["agent_id"]},
    )
    assert r.status_code == 201, r.text
    assert sorted(x["property_id"] for x in r.json()) == sorted([first, second])

    db = SessionLocal()
    try:
        subs = db.scalars(select(Submission)).all()
        assert sorted(x.property_id for x in subs) == sorted([first, second])
        assert {x.status for x in subs} == {"submitted"}
        assert {db.get(ClientProperty, pid).status for pid in (first, second)} == {"submitted"}

        trail = db.scalars(select(SubmissionAuditLog)).all()
        assert sorted(t.submission_id for t in trail) == sorted(x.id for x in subs)
        assert {t.action for t in trail} == {"submitted"}

        notes = db.scalars(select(AgencyNotification)).all()
        assert sorted(n.submission_id for n in notes) == sorted(x.id for x in subs)
        assert sorted(n.property_id for n in notes) == sorted([first, second])
    finally:
        db.close()


def test_batch_with_an_unavailable_property_writes_nothing(api, factory, agency_setup):
    s = agency_setup
    ready = factory.property(s["client_id"], title="Ready")
    taken = factory.property(s["client_id"], title="Already Out", status="submitted")
    headers = factory.client_headers(s["client_id"])

    r = api.post(
        "/api/submissions",
        headers=headers,
        json={"property_ids": [ready, taken], "agency_id": s["agency_id"]},
    )
    assert r.status_code == 409

    missing = api.post(
        "/api/submissions",
        headers=headers,
        json={"property_ids": [ready, 999999], "agency_id": s["agency_id"]},
    )
    assert missing.status_code == 404

    db = SessionLocal()
    try:
        assert db.scalar(select(func.count(Submission.id))) == 0
        assert db.scalar(select(func.count(SubmissionAuditLog.id))) == 0
        assert db.scalar(select(func.count(AgencyNotification.id))) == 0
        assert db.get(ClientProperty, ready).status == "in_portfolio"
    finally:
        db.close()
