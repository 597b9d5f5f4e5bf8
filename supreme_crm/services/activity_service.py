"""Activity service: the per-dealership touch log.

The log is append-only. Callers add calls, emails, meetings and notes;
status and stage changes are written by the dealership and deal services.
An activity hangs off a dealership, optionally narrowed to a contact or a
deal on that dealership. When only a deal or contact is given, the
dealership is taken from it.

Functions flush but do NOT commit; the caller commits.
"""

import logging
from datetime import datetime, timezone

from supreme_crm.extensions import db
from supreme_crm.models.activity import Activity
from supreme_crm.models.contact import Contact
from supreme_crm.models.deal import Deal
from supreme_crm.models.dealership import Dealership
from supreme_crm.models.enums import ActivityType
from supreme_crm.services.access import (
    ensure_active,
    ensure_can_view_contact,
    ensure_can_view_deal,
    ensure_can_view_dealership,
    visible_activities,
)
from supreme_crm.services.text import clean_or_none, sanitize

logger = logging.getLogger(__name__)

DEFAULT_SUBJECTS = {
    ActivityType.CALL: "Phone call",
    ActivityType.EMAIL: "Email sent",
    ActivityType.MEETING: "Meeting held",
    ActivityType.NOTE: "Note added",
    ActivityType.LINKEDIN_MESSAGE: "LinkedIn message",
}

# Written by the services on transitions, never by callers
SYSTEM_TYPES = (ActivityType.STATUS_CHANGE,)


def _parse_type(raw, allow_system=True):
    parsed = ActivityType.parse(raw)
    if parsed is None or (not allow_system and parsed in SYSTEM_TYPES):
        allowed = [
            t.value for t in ActivityType
            if allow_system or t not in SYSTEM_TYPES
        ]
        raise ValueError(
            f"Invalid activity type '{raw}'. Must be one of: {', '.join(allowed)}"
        )
    return parsed


def _completed_at(raw):
    if not raw:
        return datetime.now(timezone.utc)
    try:
        value = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        raise ValueError("completed_at must be an ISO 8601 timestamp.")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _load(model, record_id, label):
    record = db.session.get(model, record_id)
    if record is None:
        raise LookupError(f"{label} not found")
    return record


def list_activities(user, dealership_id=None, contact_id=None, deal_id=None,
                    activity_type=None, page=1, per_page=50):
    """Visible activities, newest first.

    Returns:
        tuple: (list of Activity, total count before pagination)
    """
    query = visible_activities(user)
    if dealership_id:
        query = query.filter(Activity.dealership_id == dealership_id)
    if contact_id:
        query = query.filter(Activity.contact_id == contact_id)
    if deal_id:
        query = query.filter(Activity.deal_id == deal_id)
    if activity_type:
        query = query.filter(Activity.activity_type == _parse_type(activity_type).value)

    query = query.order_by(Activity.created_at.desc())
    total = query.count()
    items = query.offset((page - 1) * per_page).limit(per_page).all()
    return items, total


def log_activity(user, data):
    """Append an activity.

    ``type`` is required, plus at least one of ``dealership_id``,
    ``contact_id`` or ``deal_id``. ``subject`` defaults per type.

    Raises:
        ValueError: Missing or invalid fields, or a contact / deal that
            belongs to a different dealership.
        LookupError: A referenced record does not exist.
        AccessDenied: A referenced record is outside the caller's scope.
    """
    ensure_active(user)
    if not data.get("type"):
        raise ValueError("Activity type is required.")
    activity_type = _parse_type(data["type"], allow_system=False)

    deal = contact = None
    if data.get("deal_id"):
        deal = _load(Deal, data["deal_id"], "Deal")
        ensure_can_view_deal(user, deal)
    if data.get("contact_id"):
        contact = _load(Contact, data["contact_id"], "Contact")
        ensure_can_view_contact(user, contact)

    dealership_id = data.get("dealership_id")
    if not dealership_id:
        source = deal or contact
        if source is None:
            raise ValueError("dealership_id, contact_id or deal_id is required.")
        dealership_id = source.dealership_id
    dealership = _load(Dealership, dealership_id, "Dealership")
    if deal is None:
        ensure_can_view_dealership(user, dealership)

    for record, label in ((deal, "Deal"), (contact, "Contact")):
        if record is not None and record.dealership_id != dealership.id:
            raise ValueError(f"{label} does not belong to this dealership.")

    activity = Activity(
        activity_type=activity_type.value,
        subject=sanitize(data.get("subject") or "")
        or DEFAULT_SUBJECTS.get(activity_type, "Activity logged"),
        description=clean_or_none(data.get("description")),
        dealership_id=dealership.id,
        contact_id=contact.id if contact else None,
        deal_id=deal.id if deal else None,
        user_id=user.id,
        completed_at=_completed_at(data.get("completed_at")),
    )
    db.session.add(activity)
    dealership.updated_at = datetime.now(timezone.utc)
    db.session.flush()
    logger.info(
        f"Activity {activity.activity_type} logged on dealership {dealership.id} "
        f"by {user.id}"
    )
    return activity
