# backend/app/services/submission_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ..auth import ActorContext
from ..domain.audit import record_submission_action
from ..domain.lifecycle import SUBMISSION_STATUSES, ensure_transition
from ..errors import AccessDenied, Conflict, NotFound, ValidationFailed
from ..models import Agency, Client, ClientDocument, ClientProperty, StaffUser, Submission, utcnow
from .document_service import list_identity_documents
from .messaging_service import unread_counts
from .notification_service import notify_best_effort
from .submission_access import can_review, load_submission_for, visible_submissions

log = logging.getLogger(__name__)

IDENTITY_SUBMISSION_NOTES = "ID Documents Submission - Buyer Registration"
PROPERTY_PLACEHOLDER_TITLE = "Property Details Unavailable"
CLIENT_PLACEHOLDER_NAME = "Unknown Client"

MissingPolicy = Literal["filter", "placeholder"]


@dataclass(frozen=True)
class PropertySnapshot:
    id: Optional[int]
    title: str
    location: str
    property_type: str
    status: Optional[str] = None


@dataclass(frozen=True)
class ClientSnapshot:
    id: Optional[int]
    full_name: str
    phone: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class SubmissionView:
    """
    A submission joined live with its property and client.

    property is None for identity-only submissions, and for property
    submissions whose property row is gone when the caller chose "filter".
    """

    submission: Submission
    property: Optional[PropertySnapshot]
    client: Optional[ClientSnapshot]
    unread_count: int = 0
    agency_name: Optional[str] = None
    agent_name: Optional[str] = None


def _property_snapshot(p: ClientProperty) -> PropertySnapshot:
    return PropertySnapshot(id=int(p.id), title=p.title, location=p.location, property_type=p.property_type, status=p.status)


def _client_snapshot(c: Client) -> ClientSnapshot:
    return ClientSnapshot(id=int(c.id), full_name=c.full_name or c.phone, phone=c.phone, email=c.email)


def build_view(sub: Submission, policy: MissingPolicy, unread: int = 0) -> Optional[SubmissionView]:
    """Returns None when the row must be dropped under the "filter" policy."""
    prop: Optional[PropertySnapshot] = None
    if sub.submission_type == "property":
        if sub.property is not None:
            prop = _property_snapshot(sub.property)
        elif policy == "filter":
            return None
        else:
            prop = PropertySnapshot(id=None, title=PROPERTY_PLACEHOLDER_TITLE, location="", property_type="")

    if sub.client is not None:
        client: Optional[ClientSnapshot] = _client_snapshot(sub.client)
    elif policy == "filter":
        return None
    else:
        client = ClientSnapshot(id=None, full_name=CLIENT_PLACEHOLDER_NAME)

    return SubmissionView(
        submission=sub,
        property=prop,
        client=client,
        unread_count=unread,
        agency_name=sub.agency.name if sub.agency else None,
        agent_name=sub.agent.full_name if sub.agent else None,
    )


# -------------------------
# Create
# -------------------------
def _resolve_target(
    db: Session, client: Client, agency_id: Optional[int], agent_id: Optional[int]
) -> tuple[Agency, Optional[StaffUser]]:
    agency_id = agency_id if agency_id is not None else client.agency_id
    if agency_id is None:
        raise ValidationFailed("Choose an agency to submit to")
    agency = db.get(Agency, int(agency_id))
    if agency is None:
        raise NotFound("Agency not found")
    if not agency.is_active:
        raise ValidationFailed("This agency is not accepting submissions")

    if agent_id is None and client.agency_id == agency.id:
        agent_id = client.agent_id

    agent = None
    if agent_id is not None:
        agent = db.get(StaffUser, int(agent_id))
        if agent is None or agent.agency_id != agency.id or agent.role != "agent":
            raise ValidationFailed("Agent does not belong to this agency")
        if not agent.is_active:
            raise ValidationFailed("Agent is inactive")
    return agency, agent


def create_submissions(
    db: Session,
    actor: ActorContext,
    *,
    property_ids: Sequence[int],
    agency_id: Optional[int] = None,
    agent_id: Optional[int] = None,
) -> list[Submission]:
    """
    Submissions, property status changes and `submitted` audit rows commit
    together. Notifications follow, one savepoint each; a failed notification
    is logged and the submissions stand.
    """
    if not actor.is_client:
        raise AccessDenied("Only clients can submit properties")
    ids = list(dict.fromkeys(int(x) for x in property_ids))
    if not ids:
        raise ValidationFailed("Select at least one property")

    client = db.get(Client, actor.id)
    if client is None:
        raise NotFound("Client not found")
    agency, agent = _resolve_target(db, client, agency_id, agent_id)

    props = {p.id: p for p in db.scalars(select(ClientProperty).where(ClientProperty.id.in_(ids))).all()}
    for pid in ids:
        p = props.get(pid)
        if p is None:
            raise NotFound(f"Property {pid} not found")
        if p.client_id != actor.id:
            raise AccessDenied(f"property {pid} belongs to another client")
        if p.status != "in_portfolio":
            raise Conflict(f"Property '{p.title}' is not available for submission")

    dupes = db.scalars(
        select(Submission.property_id).where(Submission.agency_id == agency.id, Submission.property_id.in_(ids))
    ).all()
    if dupes:
        raise Conflict("One or more properties were already submitted to this agency", details={"property_ids": sorted(dupes)})

    created: list[Submission] = []
    try:
        for pid in ids:
            sub = Submission(
                submission_type="property",
                property_id=pid,
                client_id=actor.id,
                agent_id=agent.id if agent else None,
                agency_id=agency.id,
                status="submitted",
            )
            db.add(sub)
            props[pid].status = "submitted"
            db.flush()
            record_submission_action(db, submission_id=sub.id, actor=actor, action="submitted")
            created.append(sub)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise Conflict("One or more properties were already submitted to this agency") from e

    client_name = client.full_name or client.phone
    for sub in created:
        p = props[sub.property_id]
        notify_best_effort(
            db,
            agency_id=agency.id,
            agent_id=sub.agent_id,
            client_id=actor.id,
            property_id=p.id,
            submission_id=sub.id,
            type="property_submitted",
            title="New Property Submission",
            message=f"{client_name} submitted {p.title} ({p.location}) for review",
            metadata={
                "property_title": p.title,
                "property_location": p.location,
                "property_type": p.property_type,
                "client_name": client_name,
                "agent_name": agent.full_name if agent else None,
            },
        )
    db.commit()

    log.info("submissions_created count=%s", len(created), extra={"agency_id": agency.id, "client_id": actor.id})
    return created


def create_identity_submission(
    db: Session,
    actor: ActorContext,
    *,
    agency_id: Optional[int] = None,
    agent_id: Optional[int] = None,
) -> Submission:
    if not actor.is_client:
        raise AccessDenied("Only clients can submit identity documents")
    client = db.get(Client, actor.id)
    if client is None:
        raise NotFound("Client not found")

    has_docs = db.scalar(select(ClientDocument.id).where(ClientDocument.client_id == actor.id).limit(1))
    if has_docs is None:
        raise ValidationFailed("Upload at least one identity document first")

    agency, agent = _resolve_target(db, client, agency_id, agent_id)

    sub = Submission(
        submission_type="identity",
        property_id=None,
        client_id=actor.id,
        agent_id=agent.id if agent else None,
        agency_id=agency.id,
        status="submitted",
        notes=IDENTITY_SUBMISSION_NOTES,
    )
    db.add(sub)
    db.flush()
    record_submission_action(db, submission_id=sub.id, actor=actor, action="id_documents_submitted")
    db.commit()

    client_name = client.full_name or client.phone
    notify_best_effort(
        db,
        agency_id=agency.id,
        agent_id=sub.agent_id,
        client_id=actor.id,
        submission_id=sub.id,
        type="id_documents_submitted",
        title="New Buyer Registration",
        message=f"{client_name} submitted identity documents",
        metadata={"client_name": client_name, "agent_name": agent.full_name if agent else None},
    )
    db.commit()

    log.info("identity_submission_created", extra={"agency_id": agency.id, "client_id": actor.id, "submission_id": sub.id})
    return sub


# -------------------------
# Status
# -------------------------
def transition_status(db: Session, actor: ActorContext, submission_id: int, target: str) -> Submission:
    """
    Moves the submission only. The property keeps its own status; dashboards
    read the two fields independently.
    """
    sub = load_submission_for(db, actor, submission_id)
    if not can_review(actor, sub):
        raise AccessDenied("Only the agency admin or the assigned agent can change the status")

    target = (target or "").strip().lower()
    ensure_transition(sub.status, target)

    sub.status = target
    sub.reviewed_at = utcnow()
    record_submission_action(db, submission_id=sub.id, actor=actor, action=target)
    db.commit()
    db.refresh(sub)

    log.info("submission_status -> %s", target, extra={"submission_id": sub.id, "actor_role": actor.role, "actor_id": actor.id})
    return sub


# -------------------------
# Read
# -------------------------
def list_for_actor(
    db: Session,
    actor: ActorContext,
    *,
    policy: MissingPolicy = "filter",
    status: Optional[str] = None,
) -> list[SubmissionView]:
    q = visible_submissions(actor).options(
        selectinload(Submission.property),
        selectinload(Submission.client),
        selectinload(Submission.agent),
        selectinload(Submission.agency),
    )
    if status:
        if status not in SUBMISSION_STATUSES:
            raise ValidationFailed(f"Unknown submission status: {status}")
        q = q.where(Submission.status == status)
    subs = list(db.scalars(q.order_by(Submission.created_at.desc(), Submission.id.desc())).all())

    counts = unread_counts(db, [s.id for s in subs], actor.sender_role)
    views = []
    for s in subs:
        v = build_view(s, policy, counts.get(s.id, 0))
        if v is not None:
            views.append(v)
    return views


def list_tasks(db: Session, actor: ActorContext, *, status: Optional[str] = None) -> list[SubmissionView]:
    """Agency work queue: every row is kept, missing relations get placeholders."""
    if not actor.is_staff:
        raise AccessDenied("Staff only")
    return list_for_actor(db, actor, policy="placeholder", status=status)


def get_submission_detail(db: Session, actor: ActorContext, submission_id: int) -> dict[str, Any]:
    sub = load_submission_for(db, actor, submission_id)
    counts = unread_counts(db, [sub.id], actor.sender_role)
    view = build_view(sub, "placeholder", counts.get(sub.id, 0))

    property_documents = list(sub.property.documents) if sub.property is not None else []
    identity_documents = (
        list_identity_documents(db, sub.client_id)
        if sub.submission_type == "identity" and sub.client_id is not None
        else []
    )
    return {"view": view, "property_documents": property_documents, "identity_documents": identity_documents}
