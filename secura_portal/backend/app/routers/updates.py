# backend/app/routers/updates.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from ..auth import ActorContext, get_actor
from ..db import get_db
from ..domain.files import incoming_from_upload
from ..models import SubmissionUpdate
from ..schemas import PostUpdateOut, ThreadOut, UpdateOut
from ..services import messaging_service
from ..services.storage import BlobStore, get_blob_store

router = APIRouter(prefix="/submissions/{submission_id}/updates", tags=["updates"])


def _update_out(u: SubmissionUpdate) -> UpdateOut:
    out = UpdateOut.model_validate(u)
    out.sender_name = messaging_service.sender_name(u)
    return out


@router.get("", response_model=ThreadOut)
def list_thread(submission_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    rows, unread = messaging_service.list_thread(db, actor, submission_id)
    return ThreadOut(updates=[_update_out(u) for u in rows], unread_count=unread)


@router.post("", response_model=PostUpdateOut, status_code=201)
def post_update(
    submission_id: int,
    message: Optional[str] = Form(default=None),
    files: List[UploadFile] = File(default=[]),
    db: Session = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    actor: ActorContext = Depends(get_actor),
):
    incoming = [incoming_from_upload(f) for f in files or []]
    result = messaging_service.post_update(db, store, actor, submission_id, message=message, files=incoming)
    return PostUpdateOut(
        update=_update_out(result["update"]),
        failed_uploads=result["failed_uploads"],
        orphaned_uploads=result["orphaned_uploads"],
    )


@router.post("/read", response_model=dict)
def mark_read(submission_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    marked = messaging_service.mark_thread_read(db, actor, submission_id)
    return {"marked": marked, "unread_count": messaging_service.unread_count(db, submission_id, actor.sender_role)}
