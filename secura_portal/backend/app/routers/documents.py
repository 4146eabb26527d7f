# backend/app/routers/documents.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..auth import ActorContext, require_client
from ..db import get_db
from ..domain.files import incoming_from_upload
from ..errors import ValidationFailed
from ..schemas import DocumentOut, DocumentUploadOut, SignedUrlOut
from ..services import document_service, file_access_service
from ..services.storage import BlobStore, get_blob_store
from .files import attachment_response

router = APIRouter(prefix="/client/documents", tags=["documents"])


@router.post("", response_model=DocumentUploadOut, status_code=201)
def upload_documents(
    document_types: List[str] = Form(...),
    files: List[UploadFile] = File(...),
    db: Session = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    actor: ActorContext = Depends(require_client),
):
    """document_types[i] is the type of files[i] (emirates_id, passport, visa, national_id, other)."""
    if len(document_types) != len(files):
        raise ValidationFailed("Each file needs a document type")
    incoming = [incoming_from_upload(f, t) for f, t in zip(files, document_types)]
    return document_service.upload_identity_documents(db, store, actor, incoming)


@router.get("", response_model=list[DocumentOut])
def list_documents(db: Session = Depends(get_db), actor: ActorContext = Depends(require_client)):
    return document_service.list_identity_documents(db, actor.id)


@router.delete("/{document_id}", response_model=dict)
def delete_document(
    document_id: int,
    db: Session = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    actor: ActorContext = Depends(require_client),
):
    document_service.delete_identity_document(db, store, actor, document_id)
    return {"ok": True}


@router.get("/{document_id}/view", response_model=SignedUrlOut)
def view_document(document_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(require_client)):
    return file_access_service.view_own_document(db, actor, document_id)


@router.get("/{document_id}/download")
def download_document(
    document_id: int,
    db: Session = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    actor: ActorContext = Depends(require_client),
) -> Response:
    data, name, ctype = file_access_service.download_own_document(db, store, actor, document_id)
    return attachment_response(data, name, ctype)
