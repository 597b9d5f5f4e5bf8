"""Prospect service: creation, interactions, appointments and lead rescoring.

Rescoring persists the new score on the prospect and records the old one
in an AuditEvent ("prospect.rescored") so the history stays retrievable.

Functions flush but do NOT commit; the caller commits.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import selectinload

from supreme_crm.extensions import db
from supreme_crm.models.audit import AuditEvent
from supreme_crm.models.enums import InteractionType, ProspectStatus
from supreme_crm.models.interaction import Appointment, Interaction
from supreme_crm.models.prospect import Prospect
from supreme_crm.services.access import (
    ensure_active,
    ensure_can_view_prospect,
    visible_prospects,  # noqa: F401  re-exported for the blueprint
)
from supreme_crm.services.lead_scoring import score_prospect
from supreme_crm.services.text import clean_or_none, sanitize

logger = logging.getLogger(__name__)

RESCORED_ACTION = "prospect.rescored"


def _employee_count(value):
    if value in (None, ""):
        return None
    try:
        count = int(value)
    except (TypeError, ValueError):
        raise ValueError("employee_count must be a whole number.")
    if count < 0:
        raise ValueError("employee_count cannot be negative.")
    return count


def create_prospect(user, data, source="manual"):
    """Create a prospect owned by ``user``.

    Raises:
        ValueError: If first/last name is missing or a field is invalid.
    """
    ensure_active(user)
    first_name = sanitize(data.get("first_name") or "")
    last_name = sanitize(data.get("last_name") or "")
    if not first_name or not last_name:
        raise ValueError("First name and last name are required.")

    status = ProspectStatus.COLD
    if data.get("status"):
        status = ProspectStatus.parse(data["status"])
        if status is None:
            raise ValueError(
                f"Invalid status '{data['status']}'. "
                f"Must be one of: {', '.join(ProspectStatus.values())}"
            )

    email = clean_or_none(data.get("email"))
    prospect = Prospect(
        first_name=first_name,
        last_name=last_name,
        email=email.lower() if email else None,
        phone=clean_or_none(data.get("phone")),
        company=clean_or_none(data.get("company")),
        position=clean_or_none(data.get("position")),
        industry=clean_or_none(data.get("industry")),
        employee_count=_employee_count(data.get("employee_count")),
        linkedin_url=clean_or_none(data.get("linkedin_url")),
        notes=clean_or_none(data.get("notes")),
        status=status.value,
        source=source,
        user_id=user.id,
    )
    db.session.add(prospect)
    db.session.flush()
    return prospect


def log_interaction(user, prospect, interaction_type, note=None):
    """Append an interaction to a prospect's engagement history."""
    ensure_can_view_prospect(user, prospect)
    parsed = InteractionType.parse(interaction_type)
    if parsed is None:
        raise ValueError(
            f"Invalid interaction type '{interaction_type}'. "
            f"Must be one of: {', '.join(InteractionType.values())}"
        )
    interaction = Interaction(
        prospect=prospect,
        type=parsed.value,
        note=clean_or_none(note),
        user_id=user.id,
    )
    db.session.add(interaction)
    db.session.flush()
    return interaction


def _timestamp(raw, name, required=False):
    if not raw:
        if required:
            raise ValueError(f"{name} is required.")
        return None
    try:
        value = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        raise ValueError(f"{name} must be an ISO 8601 timestamp.")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def schedule_appointment(user, prospect, data):
    """Book an appointment with a prospect and mark them APPOINTMENT_SET.

    Raises:
        ValueError: Missing title / start_time, a bad timestamp, or an
            end_time that is not after start_time.
        AccessDenied: The prospect belongs to someone else.
    """
    ensure_can_view_prospect(user, prospect)
    title = sanitize(data.get("title") or "")
    if not title:
        raise ValueError("Title is required.")
    start_time = _timestamp(data.get("start_time"), "start_time", required=True)
    end_time = _timestamp(data.get("end_time"), "end_time")
    if end_time is not None and end_time <= start_time:
        raise ValueError("end_time must be after start_time.")

    appointment = Appointment(
        prospect=prospect,
        title=title,
        start_time=start_time,
        end_time=end_time,
        location=clean_or_none(data.get("location")),
        notes=clean_or_none(data.get("notes")),
        user_id=user.id,
    )
    db.session.add(appointment)
    prospect.status = ProspectStatus.APPOINTMENT_SET.value
    db.session.flush()
    logger.info(f"Appointment booked with prospect {prospect.id} by {user.id}")
    return appointment


def list_appointments(prospect):
    """A prospect's appointments, soonest first."""
    return (
        Appointment.query
        .filter_by(prospect_id=prospect.id)
        .order_by(Appointment.start_time.asc())
        .all()
    )


def rescore_prospects(user, prospect_ids, now=None):
    """Recompute and persist lead scores.

    Args:
        user: The caller. USER callers may only rescore their own prospects.
        prospect_ids: Non-empty list of prospect UUID strings.
        now: Timestamp to stamp on ``lead_scored_at`` (defaults to utcnow).

    Returns:
        list of dicts, one per prospect, in the order requested.

    Raises:
        ValueError: If no ids are given.
        LookupError: If any id does not exist.
        AccessDenied: If any prospect belongs to someone else.
    """
    ensure_active(user)
    ids = list(dict.fromkeys(pid for pid in prospect_ids or [] if pid))
    if not ids:
        raise ValueError("prospect_id or prospect_ids required")

    prospects = (
        Prospect.query
        .options(
            selectinload(Prospect.interactions),
            selectinload(Prospect.appointments),
        )
        .filter(Prospect.id.in_(ids))
        .all()
    )
    by_id = {p.id: p for p in prospects}
    missing = [pid for pid in ids if pid not in by_id]
    if missing:
        raise LookupError(f"Prospect not found: {', '.join(missing)}")

    for prospect in prospects:
        ensure_can_view_prospect(user, prospect)

    now = now or datetime.now(timezone.utc)
    results = []
    for pid in ids:
        prospect = by_id[pid]
        previous = prospect.lead_score or 0
        scored = score_prospect(prospect)

        prospect.lead_score = scored["score"]
        prospect.lead_scored_at = now
        db.session.add(AuditEvent(
            actor_user_id=user.id,
            action=RESCORED_ACTION,
            subject_id=prospect.id,
            metadata_={
                "previous_score": previous,
                "new_score": scored["score"],
            },
        ))
        results.append({
            "prospect_id": prospect.id,
            "first_name": prospect.first_name,
            "last_name": prospect.last_name,
            "company": prospect.company,
            "previous_score": previous,
            "new_score": scored["score"],
            "score_breakdown": scored["breakdown"],
        })

    db.session.flush()
    logger.info(f"Rescored {len(results)} prospect(s) for user {user.id}")
    return results


def score_history(prospect_id):
    """Past rescoring events for a prospect, newest first."""
    events = (
        AuditEvent.query
        .filter_by(action=RESCORED_ACTION, subject_id=prospect_id)
        .order_by(AuditEvent.created_at.desc())
        .all()
    )
    return [
        {
            "previous_score": (e.metadata_ or {}).get("previous_score"),
            "new_score": (e.metadata_ or {}).get("new_score"),
            "actor_user_id": e.actor_user_id,
            "scored_at": e.created_at.isoformat() if e.created_at else None,
        }
        for e in events
    ]


def rescore_all(user=None, dry_run=False):
    """Bulk rescoring for the CLI. Scopes to ``user`` when given.

    Returns:
        tuple: (prospects scored, prospects whose score changed)
    """
    query = Prospect.query.options(
        selectinload(Prospect.interactions),
        selectinload(Prospect.appointments),
    )
    if user is not None:
        query = query.filter(Prospect.user_id == user.id)

    scored = changed = 0
    now = datetime.now(timezone.utc)
    for prospect in query.all():
        new_score = score_prospect(prospect)["score"]
        scored += 1
        if new_score == (prospect.lead_score or 0):
            continue
        changed += 1
        if dry_run:
            continue
        db.session.add(AuditEvent(
            actor_user_id=user.id if user else None,
            action=RESCORED_ACTION,
            subject_id=prospect.id,
            metadata_={
                "previous_score": prospect.lead_score or 0,
                "new_score": new_score,
            },
        ))
        prospect.lead_score = new_score
        prospect.lead_scored_at = now

    if not dry_run:
        db.session.flush()
    return scored, changed
