# backend/app/domain/lifecycle.py
from __future__ import annotations

from ..errors import Conflict, ValidationFailed

PROPERTY_TYPES = (
    "apartment",
    "villa",
    "townhouse",
    "penthouse",
    "studio",
    "office",
    "retail",
    "warehouse",
    "land",
)

# Property.status and Submission.status move independently; a status change on
# a submission never touches the property row.
PROPERTY_STATUSES = ("in_portfolio", "submitted", "approved", "rejected")

SUBMISSION_STATUSES = ("submitted", "under_review", "approved", "rejected", "additional_info_required")
TERMINAL_SUBMISSION_STATUSES = frozenset({"approved", "rejected"})

SUBMISSION_TRANSITIONS: dict[str, frozenset[str]] = {
    "submitted": frozenset({"under_review", "approved", "rejected", "additional_info_required"}),
    "under_review": frozenset({"approved", "rejected", "additional_info_required"}),
    "additional_info_required": frozenset({"under_review", "approved", "rejected"}),
    "approved": frozenset(),
    "rejected": frozenset(),
}


def ensure_transition(current: str, target: str) -> None:
    if target not in SUBMISSION_STATUSES:
        raise ValidationFailed(f"Unknown submission status: {target}")
    if target == current:
        raise Conflict(f"Submission is already {current}")
    allowed = SUBMISSION_TRANSITIONS.get(current, frozenset())
    if target not in allowed:
        raise Conflict(f"Cannot move a submission from {current} to {target}")
