# backend/app/errors.py
from __future__ import annotations

from typing import Any, Optional


class PortalError(Exception):
    """
    Typed failure raised by services and mapped to HTTP at the boundary.

    `message` is the raw/internal text (logged). `public_message` is what an
    end user sees; it defaults to a kind-level message so provider error text
    never leaks into the UI.
    """

    kind = "internal"
    status_code = 500
    default_public_message = "Something went wrong. Please try again."

    def __init__(
        self,
        message: str,
        *,
        public_message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.public_message = public_message or self.default_public_message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"kind": self.kind, "error": self.public_message}
        if self.details:
            out["details"] = self.details
        return out


class ValidationFailed(PortalError):
    kind = "validation"
    status_code = 400
    default_public_message = "The request is invalid."

    def __init__(self, message: str, **kw: Any) -> None:
        # validation text is written for users, so expose it as-is
        kw.setdefault("public_message", message)
        super().__init__(message, **kw)


class Unauthenticated(PortalError):
    kind = "unauthenticated"
    status_code = 401
    default_public_message = "Authentication required."


class AccessDenied(PortalError):
    kind = "forbidden"
    status_code = 403
    default_public_message = "You do not have access to this resource."


class NotFound(PortalError):
    kind = "not_found"
    status_code = 404
    default_public_message = "Not found."

    def __init__(self, message: str, **kw: Any) -> None:
        kw.setdefault("public_message", message)
        super().__init__(message, **kw)


class Conflict(PortalError):
    kind = "conflict"
    status_code = 409
    default_public_message = "The request conflicts with the current state."

    def __init__(self, message: str, **kw: Any) -> None:
        kw.setdefault("public_message", message)
        super().__init__(message, **kw)


class RateLimited(PortalError):
    kind = "rate_limited"
    status_code = 429
    default_public_message = "Please wait before requesting another code."


class UpstreamError(PortalError):
    kind = "upstream"
    status_code = 502
    default_public_message = "A delivery provider is unavailable. Please try again."


class StorageError(PortalError):
    kind = "storage"
    status_code = 500
    default_public_message = "File storage is unavailable. Please try again."


class BlobNotFound(PortalError):
    kind = "not_found"
    status_code = 404
    default_public_message = "File not found."
