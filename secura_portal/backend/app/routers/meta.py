# backend/app/routers/meta.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..domain.files import DOCUMENT_TYPES, IDENTITY_DOCUMENT_TYPES, PROPERTY_DOCUMENT_TYPES
from ..domain.lifecycle import PROPERTY_TYPES, SUBMISSION_STATUSES, SUBMISSION_TRANSITIONS

router = APIRouter(prefix="/meta", tags=["meta"])


@router.get("/health", response_model=dict)
def health(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return {"ok": True, "env": settings.app_env, "version": settings.app_version}


@router.get("/enums", response_model=dict)
def enums():
    return {
        "property_types": list(PROPERTY_TYPES),
        "document_types": list(DOCUMENT_TYPES),
        "property_document_types": list(PROPERTY_DOCUMENT_TYPES),
        "identity_document_types": list(IDENTITY_DOCUMENT_TYPES),
        "submission_statuses": list(SUBMISSION_STATUSES),
        "submission_transitions": {k: sorted(v) for k, v in SUBMISSION_TRANSITIONS.items()},
        "max_upload_bytes": int(settings.max_upload_bytes),
    }
