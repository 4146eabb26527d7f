# backend/app/services/submission_access.py
from __future__ import annotations

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from ..auth import ActorContext
from ..errors import AccessDenied, NotFound
from ..models import Submission


def can_access(actor: ActorContext, sub: Submission) -> bool:
    """
    client        -> own submissions
    superadmin    -> everything
    agency_admin  -> submissions of own agency
    agent         -> submissions of own agency assigned to them
    """
    if actor.is_client:
        return sub.client_id is not None and sub.client_id == actor.id
    if actor.role == "superadmin":
        return True
    if actor.role == "agency_admin":
        return sub.agency_id == actor.agency_id
    if actor.role == "agent":
        return sub.agency_id == actor.agency_id and sub.agent_id == actor.id
    return False


def can_review(actor: ActorContext, sub: Submission) -> bool:
    """Status changes: the agency's admin or the assigned agent, nobody else."""
    if actor.role == "agency_admin":
        return sub.agency_id == actor.agency_id
    if actor.role == "agent":
        return sub.agency_id == actor.agency_id and sub.agent_id == actor.id
    return False


def load_submission_for(db: Session, actor: ActorContext, submission_id: int) -> Submission:
    sub = db.get(Submission, int(submission_id))
    if sub is None:
        raise NotFound("Submission not found")
    if not can_access(actor, sub):
        raise AccessDenied(f"actor {actor.role}:{actor.id} cannot access submission {submission_id}")
    return sub


def visible_submissions(actor: ActorContext) -> Select:
    q = select(Submission)
    if actor.is_client:
        return q.where(Submission.client_id == actor.id)
    if actor.role == "superadmin":
        return q
    if actor.role == "agency_admin":
        return q.where(Submission.agency_id == actor.agency_id)
    if actor.role == "agent":
        return q.where(Submission.agency_id == actor.agency_id, Submission.agent_id == actor.id)
    raise AccessDenied("Unknown role")
