# backend/app/services/document_service.py
from __future__ import annotations

import logging
from typing import Any, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import ActorContext
from ..config import settings
from ..domain.audit import log_event
from ..domain.files import (
    IDENTITY_DOCUMENT_TYPES,
    IncomingFile,
    content_type_for,
    ensure_image_or_pdf,
    ensure_within_size,
    now_ms,
    owned_document_path,
)
from ..errors import AccessDenied, NotFound, PortalError, ValidationFailed
from ..models import ClientDocument
from .property_service import UploadJob, upload_in_parallel
from .reconciliation import record_orphan
from .storage import BlobStore

log = logging.getLogger(__name__)


def upload_identity_documents(
    db: Session,
    store: BlobStore,
    actor: ActorContext,
    files: Sequence[IncomingFile],
) -> dict[str, Any]:
    if not actor.is_client:
        raise AccessDenied("Clients only")
    if not files:
        raise ValidationFailed("At least one document is required")
    for f in files:
        if f.document_type not in IDENTITY_DOCUMENT_TYPES:
            raise ValidationFailed(f"Invalid identity document type: {f.document_type}")
    ensure_image_or_pdf(files)
    ensure_within_size(files)

    base = now_ms()
    jobs = [
        UploadJob(file=f, path=owned_document_path(actor.id, "identity", f.document_type, f.file_name, base + i))
        for i, f in enumerate(files)
    ]
    results = upload_in_parallel(store, settings.bucket_client_documents, jobs)

    created: list[ClientDocument] = []
    for job, err in zip(jobs, results):
        if err is not None:
            continue
        doc = ClientDocument(
            client_id=actor.id,
            document_type=job.file.document_type,
            file_name=job.file.file_name,
            file_path=job.path,
            file_size=job.file.size,
            mime_type=job.file.content_type or content_type_for(job.file.file_name),
        )
        db.add(doc)
        created.append(doc)

    if created:
        log_event(
            db,
            action="upload",
            client_id=actor.id,
            resource_type="client_document",
            details={"count": len(created), "types": sorted({d.document_type for d in created})},
        )
    db.commit()
    return {"documents": created, "failed_uploads": len(jobs) - len(created)}


def list_identity_documents(db: Session, client_id: int) -> list[ClientDocument]:
    return list(
        db.scalars(
            select(ClientDocument)
            .where(ClientDocument.client_id == int(client_id))
            .order_by(ClientDocument.uploaded_at.desc(), ClientDocument.id.desc())
        ).all()
    )


def get_own_document(db: Session, actor: ActorContext, document_id: int) -> ClientDocument:
    doc = db.get(ClientDocument, int(document_id))
    if doc is None:
        raise NotFound("Document not found")
    if not actor.is_client or doc.client_id != actor.id:
        raise AccessDenied("Not your document")
    return doc


def delete_identity_document(db: Session, store: BlobStore, actor: ActorContext, document_id: int) -> None:
    doc = get_own_document(db, actor, document_id)
    bucket = settings.bucket_client_documents
    path = doc.file_path

    db.delete(doc)
    log_event(db, action="delete", client_id=actor.id, resource_type="client_document", resource_id=document_id)
    db.commit()

    try:
        store.delete(bucket, path)
    except PortalError as e:
        record_orphan(db, bucket=bucket, path=path, reason=f"document delete: {e.message}")
        db.commit()
