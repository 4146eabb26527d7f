# backend/app/routers/properties.py
from __future__ import annotations

import json
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.orm import Session

from ..auth import ActorContext, require_client
from ..db import get_db
from ..domain.files import incoming_from_upload
from ..errors import ValidationFailed
from ..schemas import PropertyCreateOut, PropertyOut
from ..services import property_service
from ..services.storage import BlobStore, get_blob_store

router = APIRouter(prefix="/properties", tags=["properties"])

SINGLE_DOCUMENT_FIELDS = ("title_deed", "power_of_attorney", "noc", "ejari", "dewa_bill")


@router.post("", response_model=PropertyCreateOut, status_code=201)
def create_property(
    title: str = Form(...),
    location: str = Form(...),
    property_type: str = Form(...),
    bedrooms: Optional[str] = Form(default=None),
    bathrooms: Optional[str] = Form(default=None),
    area_sqft: Optional[str] = Form(default=None),
    details: Optional[str] = Form(default=None),
    title_deed: Optional[UploadFile] = File(default=None),
    power_of_attorney: Optional[UploadFile] = File(default=None),
    noc: Optional[UploadFile] = File(default=None),
    ejari: Optional[UploadFile] = File(default=None),
    dewa_bill: Optional[UploadFile] = File(default=None),
    other: List[UploadFile] = File(default=[]),
    db: Session = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    actor: ActorContext = Depends(require_client),
):
    parsed_details = None
    if details:
        try:
            parsed_details = json.loads(details)
        except ValueError:
            raise ValidationFailed("details must be valid JSON")

    singles = dict(zip(SINGLE_DOCUMENT_FIELDS, (title_deed, power_of_attorney, noc, ejari, dewa_bill)))
    files = [incoming_from_upload(up, doc_type) for doc_type, up in singles.items() if up is not None]
    files += [incoming_from_upload(up, "other") for up in other or []]

    result = property_service.create_property(
        db,
        store,
        actor,
        {
            "title": title,
            "location": location,
            "property_type": property_type,
            "bedrooms": bedrooms,
            "bathrooms": bathrooms,
            "area_sqft": area_sqft,
            "details": parsed_details,
        },
        files,
    )
    return {"property": PropertyOut.from_row(result["property"]), "failed_uploads": result["failed_uploads"]}


@router.get("", response_model=list[PropertyOut])
def list_properties(db: Session = Depends(get_db), actor: ActorContext = Depends(require_client)):
    return [PropertyOut.from_row(p) for p in property_service.list_properties(db, actor)]


@router.get("/available", response_model=list[PropertyOut])
def available_for_agency(
    agency_id: int = Query(...),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_client),
):
    return [PropertyOut.from_row(p) for p in property_service.list_available_for_agency(db, actor, agency_id)]


@router.get("/{property_id}", response_model=PropertyOut)
def get_property(property_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(require_client)):
    return PropertyOut.from_row(property_service.get_owned_property(db, actor, property_id))


@router.delete("/{property_id}", response_model=dict)
def delete_property(
    property_id: int,
    db: Session = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    actor: ActorContext = Depends(require_client),
):
    property_service.delete_property(db, store, actor, property_id)
    return {"ok": True}
