# backend/app/services/storage.py
from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional, Protocol

import jwt

from ..config import settings
from ..errors import BlobNotFound, StorageError, Unauthenticated

log = logging.getLogger(__name__)


class BlobStore(Protocol):
    def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> None: ...

    def download(self, bucket: str, path: str) -> bytes: ...

    def delete(self, bucket: str, path: str) -> None: ...

    def exists(self, bucket: str, path: str) -> bool: ...


class LocalBlobStore:
    """
    Buckets are directories under `root`. Paths are the object keys used in the
    database (e.g. "12/34/title_deed_1700000000000.pdf").
    """

    def __init__(self, root: str | os.PathLike[str]) -> None:
        self.root = Path(root).resolve()

    def _resolve(self, bucket: str, path: str) -> Path:
        if not bucket or not path:
            raise StorageError(f"bucket and path are required (bucket={bucket!r} path={path!r})")
        base = (self.root / bucket).resolve()
        target = (base / path).resolve()
        if base != target and base not in target.parents:
            raise StorageError(f"path escapes bucket: {bucket}/{path}")
        return target

    def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> None:
        target = self._resolve(bucket, path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise StorageError(f"upload failed for {bucket}/{path}: {e}") from e

    def download(self, bucket: str, path: str) -> bytes:
        target = self._resolve(bucket, path)
        if not target.is_file():
            raise BlobNotFound(f"missing blob {bucket}/{path}")
        try:
            return target.read_bytes()
        except OSError as e:
            raise StorageError(f"download failed for {bucket}/{path}: {e}") from e

    def delete(self, bucket: str, path: str) -> None:
        target = self._resolve(bucket, path)
        try:
            target.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"delete failed for {bucket}/{path}: {e}") from e

    def exists(self, bucket: str, path: str) -> bool:
        return self._resolve(bucket, path).is_file()


_store: Optional[LocalBlobStore] = None


def get_blob_store() -> BlobStore:
    global _store
    if _store is None or _store.root != Path(settings.storage_root).resolve():
        _store = LocalBlobStore(settings.storage_root)
    return _store


# -------------------------
# Signed URLs
# -------------------------
def sign_blob(bucket: str, path: str, *, file_name: Optional[str] = None, ttl_seconds: Optional[int] = None) -> str:
    ttl = int(ttl_seconds if ttl_seconds is not None else settings.signed_url_ttl_seconds)
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "typ": "blob",
        "b": bucket,
        "p": path,
        "n": file_name,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def signed_url(bucket: str, path: str, *, file_name: Optional[str] = None) -> str:
    return f"/api/files/signed/{sign_blob(bucket, path, file_name=file_name)}"


def read_signed(token: str) -> tuple[str, str, Optional[str]]:
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Signed URL expired", public_message="This link has expired.")
    except jwt.InvalidTokenError:
        raise Unauthenticated("Invalid signed URL")
    if claims.get("typ") != "blob":
        raise Unauthenticated("Wrong token type")
    return str(claims["b"]), str(claims["p"]), claims.get("n")
