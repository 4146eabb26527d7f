# backend/app/domain/phone.py
from __future__ import annotations

import re

from ..errors import ValidationFailed

_E164 = re.compile(r"^\+\d{8,15}$")
_STRIP = re.compile(r"[\s\-().]")


def normalize_phone(raw: str | None) -> str:
    """
    Normalize user input to E.164.

    Accepts spaces, dashes, dots and parentheses; a leading "00" is treated as "+".
    Raises ValidationFailed when the result is not a plausible international number.
    """
    s = _STRIP.sub("", str(raw or "").strip())
    if s.startswith("00"):
        s = "+" + s[2:]
    if not _E164.match(s):
        raise ValidationFailed("Invalid international phone number format")
    return s


def redact_phone(phone: str | None) -> str:
    s = str(phone or "")
    return s[-4:] if len(s) >= 4 else "****"
