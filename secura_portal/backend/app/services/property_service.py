# backend/app/services/property_service.py
from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from ..auth import ActorContext
from ..config import settings
from ..domain.files import (
    PROPERTY_DOCUMENT_TYPES,
    IncomingFile,
    content_type_for,
    ensure_within_size,
    now_ms,
    owned_document_path,
)
from ..domain.lifecycle import PROPERTY_TYPES
from ..errors import AccessDenied, Conflict, NotFound, PortalError, ValidationFailed
from ..models import Agency, ClientProperty, PropertyDocument, Submission
from .reconciliation import record_orphan
from .storage import BlobStore

log = logging.getLogger(__name__)

MAX_PARALLEL_UPLOADS = 4


@dataclass(frozen=True)
class UploadJob:
    file: IncomingFile
    path: str


def upload_in_parallel(store: BlobStore, bucket: str, jobs: Sequence[UploadJob]) -> list[Optional[str]]:
    """
    Upload every job; result[i] is None on success or the error message.
    Never raises for a single failed file.
    """

    def _one(job: UploadJob) -> Optional[str]:
        try:
            store.upload(bucket, job.path, job.file.data, job.file.content_type or content_type_for(job.file.file_name))
            return None
        except PortalError as e:
            log.warning("upload_failed %s", e.message, extra={"bucket": bucket, "path": job.path})
            return e.message

    if not jobs:
        return []
    with ThreadPoolExecutor(max_workers=min(MAX_PARALLEL_UPLOADS, len(jobs))) as pool:
        return list(pool.map(_one, jobs))


def _validate_fields(fields: dict[str, Any]) -> dict[str, Any]:
    title = str(fields.get("title") or "").strip()
    location = str(fields.get("location") or "").strip()
    ptype = str(fields.get("property_type") or "").strip().lower()
    if not title:
        raise ValidationFailed("Property title is required")
    if not location:
        raise ValidationFailed("Property location is required")
    if ptype not in PROPERTY_TYPES:
        raise ValidationFailed(f"Invalid property type: {ptype or '(missing)'}")

    out: dict[str, Any] = {"title": title, "location": location, "property_type": ptype}
    for key, cast in (("bedrooms", int), ("bathrooms", float), ("area_sqft", float)):
        raw = fields.get(key)
        if raw is None or raw == "":
            out[key] = None
            continue
        try:
            val = cast(raw)
        except (TypeError, ValueError):
            raise ValidationFailed(f"{key} must be a number")
        if val < 0:
            raise ValidationFailed(f"{key} cannot be negative")
        out[key] = val

    details = fields.get("details")
    out["details_json"] = json.dumps(details, sort_keys=True) if details else None
    return out


def create_property(
    db: Session,
    store: BlobStore,
    actor: ActorContext,
    fields: dict[str, Any],
    files: Sequence[IncomingFile],
) -> dict[str, Any]:
    """
    Everything is validated before the first write. The property row is
    committed first; each document row is written only after its upload
    succeeded, and failed uploads are reported instead of rolled back.
    """
    if not actor.is_client:
        raise AccessDenied("Only clients can add properties")

    values = _validate_fields(fields)
    for f in files:
        if f.document_type not in PROPERTY_DOCUMENT_TYPES:
            raise ValidationFailed(f"Invalid document type: {f.document_type}")
    if not any(f.document_type == "title_deed" for f in files):
        raise ValidationFailed("Title deed document is required")
    ensure_within_size(files)

    prop = ClientProperty(client_id=actor.id, status="in_portfolio", **values)
    db.add(prop)
    db.commit()
    db.refresh(prop)

    base = now_ms()
    jobs = [
        UploadJob(file=f, path=owned_document_path(actor.id, prop.id, f.document_type, f.file_name, base + i))
        for i, f in enumerate(files)
    ]
    bucket = settings.bucket_property_documents
    results = upload_in_parallel(store, bucket, jobs)

    failed = 0
    for job, err in zip(jobs, results):
        if err is not None:
            failed += 1
            continue
        db.add(
            PropertyDocument(
                property_id=int(prop.id),
                client_id=actor.id,
                document_type=job.file.document_type,
                file_name=job.file.file_name,
                file_path=job.path,
                file_size=job.file.size,
                mime_type=job.file.content_type or content_type_for(job.file.file_name),
            )
        )
    db.commit()
    db.refresh(prop)

    log.info("property_created docs=%s failed=%s", len(jobs) - failed, failed, extra={"client_id": actor.id})
    return {"property": prop, "documents": list(prop.documents), "failed_uploads": failed}


def list_properties(db: Session, actor: ActorContext) -> list[ClientProperty]:
    if not actor.is_client:
        raise AccessDenied("Clients only")
    return list(
        db.scalars(
            select(ClientProperty)
            .options(selectinload(ClientProperty.documents))
            .where(ClientProperty.client_id == actor.id)
            .order_by(ClientProperty.created_at.desc(), ClientProperty.id.desc())
        ).all()
    )


def get_owned_property(db: Session, actor: ActorContext, property_id: int) -> ClientProperty:
    prop = db.get(ClientProperty, int(property_id))
    if prop is None:
        raise NotFound("Property not found")
    if not actor.is_client or prop.client_id != actor.id:
        raise AccessDenied("Not your property")
    return prop


def list_available_for_agency(db: Session, actor: ActorContext, agency_id: int) -> list[ClientProperty]:
    """In-portfolio properties of the client that were never sent to this agency."""
    if not actor.is_client:
        raise AccessDenied("Clients only")
    if db.get(Agency, int(agency_id)) is None:
        raise NotFound("Agency not found")

    already = select(Submission.property_id).where(
        Submission.agency_id == int(agency_id), Submission.property_id.is_not(None)
    )
    return list(
        db.scalars(
            select(ClientProperty)
            .where(
                ClientProperty.client_id == actor.id,
                ClientProperty.status == "in_portfolio",
                ClientProperty.id.not_in(already),
            )
            .order_by(ClientProperty.created_at.desc(), ClientProperty.id.desc())
        ).all()
    )


def delete_property(db: Session, store: BlobStore, actor: ActorContext, property_id: int) -> None:
    prop = get_owned_property(db, actor, property_id)
    if prop.status != "in_portfolio":
        raise Conflict("Only properties in your portfolio can be deleted")
    if db.scalar(select(Submission.id).where(Submission.property_id == prop.id).limit(1)) is not None:
        raise Conflict("This property has already been submitted to an agency")

    paths = [d.file_path for d in prop.documents]
    db.delete(prop)
    db.commit()

    bucket = settings.bucket_property_documents
    for path in paths:
        try:
            store.delete(bucket, path)
        except PortalError as e:
            record_orphan(db, bucket=bucket, path=path, reason=f"property delete: {e.message}")
    db.commit()
