# backend/app/routers/submissions.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..auth import ActorContext, get_actor, require_client, require_staff
from ..db import get_db
from ..schemas import (
    DocumentOut,
    IdentitySubmissionCreate,
    SignedUrlOut,
    StatusChangeIn,
    SubmissionCreate,
    SubmissionDetailOut,
    SubmissionOut,
    SubmissionViewOut,
)
from ..services import file_access_service, submission_service
from ..services.messaging_service import unread_counts_for_actor
from ..services.storage import BlobStore, get_blob_store
from .files import attachment_response

router = APIRouter(prefix="/submissions", tags=["submissions"])


@router.post("", response_model=list[SubmissionOut], status_code=201)
def create_submissions(
    payload: SubmissionCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_client),
):
    return submission_service.create_submissions(
        db, actor, property_ids=payload.property_ids, agency_id=payload.agency_id, agent_id=payload.agent_id
    )


@router.post("/identity", response_model=SubmissionOut, status_code=201)
def create_identity_submission(
    payload: IdentitySubmissionCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_client),
):
    return submission_service.create_identity_submission(db, actor, agency_id=payload.agency_id, agent_id=payload.agent_id)


@router.get("", response_model=list[SubmissionViewOut])
def list_submissions(
    status: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return [SubmissionViewOut.model_validate(v) for v in submission_service.list_for_actor(db, actor, status=status)]


@router.get("/tasks", response_model=list[SubmissionViewOut])
def list_tasks(
    status: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_staff),
):
    return [SubmissionViewOut.model_validate(v) for v in submission_service.list_tasks(db, actor, status=status)]


@router.get("/unread-counts", response_model=dict[int, int])
def unread_counts(db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return unread_counts_for_actor(db, actor)


@router.get("/{submission_id}", response_model=SubmissionDetailOut)
def get_submission(submission_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    detail = submission_service.get_submission_detail(db, actor, submission_id)
    view = SubmissionViewOut.model_validate(detail["view"])
    return SubmissionDetailOut(
        **view.model_dump(),
        property_documents=[DocumentOut.model_validate(d) for d in detail["property_documents"]],
        identity_documents=[DocumentOut.model_validate(d) for d in detail["identity_documents"]],
    )


@router.post("/{submission_id}/status", response_model=SubmissionOut)
def change_status(
    submission_id: int,
    payload: StatusChangeIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_staff),
):
    return submission_service.transition_status(db, actor, submission_id, payload.status)


@router.get("/{submission_id}/files/{family}/{file_id}/view", response_model=SignedUrlOut)
def view_file(
    submission_id: int,
    family: str,
    file_id: int,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return file_access_service.view_submission_file(db, actor, submission_id, family, file_id)


@router.get("/{submission_id}/files/{family}/{file_id}/download")
def download_file(
    submission_id: int,
    family: str,
    file_id: int,
    db: Session = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    actor: ActorContext = Depends(get_actor),
) -> Response:
    data, name, ctype = file_access_service.download_submission_file(db, store, actor, submission_id, family, file_id)
    return attachment_response(data, name, ctype)
