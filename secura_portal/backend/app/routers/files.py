# backend/app/routers/files.py
from __future__ import annotations

from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Header
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..auth import ActorContext, bearer_token, actor_for_client, actor_for_staff, client_from_session_token, staff_from_token
from ..db import get_db
from ..domain.files import content_type_for, parse_update_attachment_path
from ..errors import Unauthenticated
from ..schemas import DownloadFileIn
from ..services import file_access_service
from ..services.storage import BlobStore, get_blob_store, read_signed

router = APIRouter(tags=["files"])


def attachment_response(data: bytes, file_name: str, content_type: str, *, inline: bool = False) -> Response:
    safe = file_name.encode("ascii", "ignore").decode().replace('"', "") or "file"
    disposition = "inline" if inline else "attachment"
    return Response(
        content=data,
        media_type=content_type,
        headers={"Content-Disposition": f"{disposition}; filename=\"{safe}\"; filename*=UTF-8''{quote(file_name)}"},
    )


@router.get("/files/signed/{token}")
def signed_file(token: str, store: BlobStore = Depends(get_blob_store)) -> Response:
    bucket, path, name = read_signed(token)
    data = store.download(bucket, path)
    file_name = name or path.rsplit("/", 1)[-1]
    return attachment_response(data, file_name, content_type_for(file_name), inline=True)


def _download_actor(
    db: Session,
    payload: DownloadFileIn,
    authorization: Optional[str],
    x_client_session: Optional[str],
) -> ActorContext:
    if (payload.user_type or "client").lower() == "client":
        raw = payload.session_token or x_client_session
        if not raw:
            raise Unauthenticated("Missing session token")
        return actor_for_client(client_from_session_token(db, raw))

    token = bearer_token(authorization) or payload.session_token
    if not token:
        raise Unauthenticated("Missing authorization")
    return actor_for_staff(staff_from_token(db, token))


@router.post("/download-file")
def download_file(
    payload: DownloadFileIn,
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
    x_client_session: Optional[str] = Header(default=None, alias="X-Client-Session"),
    db: Session = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
) -> Response:
    """
    400 bad path, 401 no/invalid session, 403 not allowed on that submission,
    404 blob missing, 500 storage failure.
    """
    parse_update_attachment_path(payload.file_path)
    actor = _download_actor(db, payload, authorization, x_client_session)
    data, name, ctype = file_access_service.download_by_path(db, store, actor, payload.file_path)
    return attachment_response(data, name, ctype)
