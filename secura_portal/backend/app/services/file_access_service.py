# backend/app/services/file_access_service.py
"""
Three document families, each with its own bucket and resolver:

  property    -> property_documents             (bucket_property_documents)
  identity    -> client_documents               (bucket_client_documents)
  attachment  -> submission_update_attachments  (bucket_submission_updates)

Access through a submission writes to the submission trail. Access to a
client's own identity documents from settings has no submission and only
writes the generic audit log.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import ActorContext
from ..config import settings
from ..domain.audit import log_event, record_submission_action
from ..domain.files import content_type_for, parse_update_attachment_path
from ..errors import AccessDenied, NotFound, ValidationFailed
from ..models import (
    ClientDocument,
    PropertyDocument,
    Submission,
    SubmissionUpdate,
    SubmissionUpdateAttachment,
)
from .document_service import get_own_document
from .storage import BlobStore, signed_url
from .submission_access import can_access, load_submission_for

log = logging.getLogger(__name__)

FILE_FAMILIES = ("property", "identity", "attachment")


@dataclass(frozen=True)
class StoredFile:
    bucket: str
    path: str
    file_name: str
    mime_type: str


def resolve_submission_file(db: Session, sub: Submission, family: str, file_id: int) -> StoredFile:
    if family == "property":
        doc = db.get(PropertyDocument, int(file_id))
        if doc is None or sub.property_id is None or doc.property_id != sub.property_id:
            raise NotFound("File not found")
        return StoredFile(settings.bucket_property_documents, doc.file_path, doc.file_name, doc.mime_type)

    if family == "identity":
        doc = db.get(ClientDocument, int(file_id))
        if doc is None or sub.client_id is None or doc.client_id != sub.client_id:
            raise NotFound("File not found")
        return StoredFile(settings.bucket_client_documents, doc.file_path, doc.file_name, doc.mime_type)

    if family == "attachment":
        att = db.get(SubmissionUpdateAttachment, int(file_id))
        if att is None:
            raise NotFound("File not found")
        upd = db.get(SubmissionUpdate, att.update_id)
        if upd is None or upd.submission_id != sub.id:
            raise NotFound("File not found")
        return StoredFile(settings.bucket_submission_updates, att.file_path, att.file_name, att.mime_type)

    raise ValidationFailed(f"Unknown file family: {family}")


def view_submission_file(db: Session, actor: ActorContext, submission_id: int, family: str, file_id: int) -> dict[str, Any]:
    sub = load_submission_for(db, actor, submission_id)
    f = resolve_submission_file(db, sub, family, file_id)
    url = signed_url(f.bucket, f.path, file_name=f.file_name)

    record_submission_action(db, submission_id=sub.id, actor=actor, action="viewed_file", file_name=f.file_name)
    db.commit()
    return {"url": url, "file_name": f.file_name, "mime_type": f.mime_type, "expires_in": int(settings.signed_url_ttl_seconds)}


def download_submission_file(
    db: Session,
    store: BlobStore,
    actor: ActorContext,
    submission_id: int,
    family: str,
    file_id: int,
) -> tuple[bytes, str, str]:
    sub = load_submission_for(db, actor, submission_id)
    f = resolve_submission_file(db, sub, family, file_id)
    data = store.download(f.bucket, f.path)

    record_submission_action(db, submission_id=sub.id, actor=actor, action="downloaded_file", file_name=f.file_name)
    db.commit()
    return data, f.file_name, f.mime_type or content_type_for(f.file_name)


def download_by_path(db: Session, store: BlobStore, actor: ActorContext, file_path: str) -> tuple[bytes, str, str]:
    """
    Attachment download addressed by storage path
    (`submissions/{submission_id}/updates/{name}`). An unknown submission is
    reported the same way as a forbidden one.
    """
    sid, stored_name = parse_update_attachment_path(file_path)
    sub = db.get(Submission, sid)
    if sub is None or not can_access(actor, sub):
        raise AccessDenied(f"actor {actor.role}:{actor.id} cannot download from submission {sid}")

    data = store.download(settings.bucket_submission_updates, file_path)

    att = db.scalar(select(SubmissionUpdateAttachment).where(SubmissionUpdateAttachment.file_path == file_path))
    file_name = att.file_name if att is not None else stored_name
    record_submission_action(db, submission_id=sub.id, actor=actor, action="downloaded_file", file_name=file_name)
    db.commit()

    log.info("download_file", extra={"submission_id": sub.id, "actor_role": actor.role, "actor_id": actor.id})
    return data, file_name, content_type_for(file_name)


# -------------------------
# Settings: a client's own identity documents
# -------------------------
def view_own_document(db: Session, actor: ActorContext, document_id: int) -> dict[str, Any]:
    doc = get_own_document(db, actor, document_id)
    url = signed_url(settings.bucket_client_documents, doc.file_path, file_name=doc.file_name)
    log_event(db, action="view", client_id=actor.id, resource_type="client_document", resource_id=doc.id, details={"file_name": doc.file_name})
    db.commit()
    return {"url": url, "file_name": doc.file_name, "mime_type": doc.mime_type, "expires_in": int(settings.signed_url_ttl_seconds)}


def download_own_document(db: Session, store: BlobStore, actor: ActorContext, document_id: int) -> tuple[bytes, str, str]:
    if not actor.is_client:
        raise AccessDenied("Clients only")
    doc = get_own_document(db, actor, document_id)
    data = store.download(settings.bucket_client_documents, doc.file_path)
    log_event(db, action="download", client_id=actor.id, resource_type="client_document", resource_id=doc.id, details={"file_name": doc.file_name})
    db.commit()
    return data, doc.file_name, doc.mime_type or content_type_for(doc.file_name)
