# backend/tests/test_meta.py
from __future__ import annotations


def test_health_and_request_id(api):
    r = api.get("/api/meta/health", headers={"X-Request-ID": "req-123"})
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert r.headers["X-Request-ID"] == "req-123"

    generated = api.get("/api/meta/health")
    assert generated.headers["X-Request-ID"]


def test_enums_expose_the_state_machine(api):
    body = api.get("/api/meta/enums").json()
    assert "title_deed" in body["property_document_types"]
    assert body["submission_transitions"]["approved"] == []
    assert body["submission_transitions"]["submitted"] == [
        "additional_info_required",
        "approved",
        "rejected",
        "under_review",
    ]


def test_errors_share_one_envelope(api):
    unauth = api.get("/api/client/me")
    assert unauth.status_code == 401
    assert unauth.json() == {"kind": "unauthenticated", "error": "Authentication required."}

    invalid = api.post("/api/client-auth/otp", json={})
    assert invalid.status_code == 400
    assert invalid.json()["kind"] == "validation"
