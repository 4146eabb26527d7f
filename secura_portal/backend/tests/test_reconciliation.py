# backend/tests/test_reconciliation.py
from __future__ import annotations

from sqlalchemy import select

from app.cli.seed import seed_superadmin
from app.config import settings
from app.db import SessionLocal
from app.errors import StorageError
from app.models import OrphanedBlob, StaffUser
from app.services.reconciliation import reconcile_orphans, record_orphan
from app.services.storage import LocalBlobStore


class _FlakyStore(LocalBlobStore):
    def delete(self, bucket: str, path: str) -> None:
        if path.endswith("stuck.pdf"):
            raise StorageError("permission denied")
        super().delete(bucket, path)


def test_reconcile_deletes_orphans_and_keeps_failures_pending(tmp_path):
    store = _FlakyStore(tmp_path)
    bucket = settings.bucket_submission_updates
    for name in ("gone.pdf", "stuck.pdf"):
        store.upload(bucket, f"submissions/1/updates/{name}", b"data", "application/pdf")

    db = SessionLocal()
    try:
        record_orphan(db, bucket=bucket, path="submissions/1/updates/gone.pdf", reason="attachment row insert failed")
        record_orphan(db, bucket=bucket, path="submissions/1/updates/stuck.pdf", reason="attachment row insert failed")
        db.commit()

        out = reconcile_orphans(db, store)
        assert out == {"scanned": 2, "resolved": 1, "failed": 1}
        assert not store.exists(bucket, "submissions/1/updates/gone.pdf")
        assert store.exists(bucket, "submissions/1/updates/stuck.pdf")

        pending = db.scalars(select(OrphanedBlob.path).where(OrphanedBlob.resolved_at.is_(None))).all()
        assert pending == ["submissions/1/updates/stuck.pdf"]

        # resolved rows are not picked up again
        assert reconcile_orphans(db, store) == {"scanned": 1, "resolved": 0, "failed": 1}
    finally:
        db.close()


def test_delete_property_records_orphan_when_blob_delete_fails(api, factory, agency_setup, monkeypatch):
    headers = factory.client_headers(agency_setup["client_id"])
    created = api.post(
        "/api/properties",
        headers=headers,
        data={"title": "Stuck", "location": "JVC", "property_type": "townhouse"},
        files={"title_deed": ("stuck.pdf", b"deed", "application/pdf")},
    ).json()
    pid = created["property"]["id"]

    def _fail(self, bucket, path):
        raise StorageError("disk read-only")

    monkeypatch.setattr(LocalBlobStore, "delete", _fail)
    r = api.delete(f"/api/properties/{pid}", headers=headers)
    assert r.status_code == 200

    db = SessionLocal()
    try:
        orphan = db.scalars(select(OrphanedBlob)).one()
        assert orphan.bucket == settings.bucket_property_documents
        assert orphan.path == created["property"]["documents"][0]["file_path"]
    finally:
        db.close()


def test_submitted_property_cannot_be_deleted(api, factory, agency_setup):
    s = agency_setup
    pid = factory.property(s["client_id"])
    factory.submission(client_id=s["client_id"], agency_id=s["agency_id"], property_id=pid)

    r = api.delete(f"/api/properties/{pid}", headers=factory.client_headers(s["client_id"]))
    assert r.status_code == 409


def test_seed_superadmin_is_idempotent():
    first = seed_superadmin(email="Root@Secura.example", password="first-pass")
    second = seed_superadmin(email="root@secura.example", password="second-pass")

    assert first.created is True
    assert second.created is False
    assert first.user_id == second.user_id

    db = SessionLocal()
    try:
        user = db.get(StaffUser, first.user_id)
        assert (user.role, user.agency_id, user.is_active) == ("superadmin", None, True)
    finally:
        db.close()
