# backend/app/domain/files.py
from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Iterable

from ..config import settings
from ..errors import ValidationFailed

PROPERTY_DOCUMENT_TYPES = ("title_deed", "power_of_attorney", "noc", "ejari", "dewa_bill", "other")
IDENTITY_DOCUMENT_TYPES = ("emirates_id", "passport", "visa", "national_id", "other")
DOCUMENT_TYPES = tuple(dict.fromkeys(PROPERTY_DOCUMENT_TYPES + IDENTITY_DOCUMENT_TYPES))

_CONTENT_TYPES = {
    "pdf": "application/pdf",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


@dataclass(frozen=True)
class IncomingFile:
    """An uploaded file already read into memory."""

    file_name: str
    content_type: str
    data: bytes
    document_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)


def now_ms() -> int:
    return int(time.time() * 1000)


def extension_of(file_name: str) -> str:
    name = str(file_name or "")
    if "." not in name:
        return "bin"
    ext = name.rsplit(".", 1)[1].lower()
    return re.sub(r"[^a-z0-9]", "", ext) or "bin"


def sanitize_file_name(file_name: str) -> str:
    s = re.sub(r"\s+", "_", str(file_name or "").strip())
    s = re.sub(r"[^A-Za-z0-9_\-.]", "", s).lstrip(".")
    return s or "file"


def content_type_for(file_name: str) -> str:
    return _CONTENT_TYPES.get(extension_of(file_name), "application/octet-stream")


def ensure_within_size(files: Iterable[IncomingFile]) -> None:
    limit = int(settings.max_upload_bytes)
    for f in files:
        if f.size == 0:
            raise ValidationFailed(f"{f.file_name} is empty")
        if f.size > limit:
            mb = limit // (1024 * 1024)
            raise ValidationFailed(f"{f.file_name} exceeds the {mb}MB upload limit")


def ensure_image_or_pdf(files: Iterable[IncomingFile]) -> None:
    for f in files:
        ct = (f.content_type or "").lower()
        if not (ct.startswith("image/") or ct == "application/pdf"):
            raise ValidationFailed("Only images and PDF files are allowed")


# ---- storage path contract ----
def owned_document_path(owner_id: int, entity: int | str, doc_type: str, file_name: str, ts: int) -> str:
    return f"{owner_id}/{entity}/{doc_type}_{ts}.{extension_of(file_name)}"


def update_attachment_path(submission_id: int, file_name: str, ts: int) -> str:
    return f"submissions/{submission_id}/updates/{ts}-{sanitize_file_name(file_name)}"


def parse_update_attachment_path(file_path: str) -> tuple[int, str]:
    """
    submissions/{submission_id}/updates/{file_name} -> (submission_id, file_name)
    """
    parts = str(file_path or "").split("/")
    if len(parts) != 4 or parts[0] != "submissions" or parts[2] != "updates" or not parts[3]:
        raise ValidationFailed("Invalid file path structure")
    try:
        sid = int(parts[1])
    except ValueError:
        raise ValidationFailed("Invalid file path structure")
    return sid, parts[3]


def incoming_from_upload(upload, document_type: str | None = None) -> IncomingFile:
    """Read a multipart upload (anything with .filename/.content_type/.file) into memory."""
    name = str(getattr(upload, "filename", None) or "file")
    return IncomingFile(
        file_name=name,
        content_type=getattr(upload, "content_type", None) or content_type_for(name),
        data=upload.file.read(),
        document_type=document_type,
    )
