"""Contact service: people at dealerships.

A dealership has at most one primary contact; marking a contact primary
demotes the others. A contact's lead_score feeds the hot-lead count on the
analytics dashboard, and changing it stamps lead_scored_at.

Functions flush but do NOT commit; the caller commits.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import or_

from supreme_crm.extensions import db
from supreme_crm.models.activity import Activity
from supreme_crm.models.contact import Contact
from supreme_crm.models.deal import Deal
from supreme_crm.models.dealership import Dealership
from supreme_crm.models.enums import ActivityType
from supreme_crm.models.task import Task
from supreme_crm.services.access import (
    ensure_active,
    ensure_can_view_dealership,
    visible_contacts,
)
from supreme_crm.services.text import clean_or_none, sanitize

logger = logging.getLogger(__name__)

TEXT_FIELDS = ("phone", "position")

SORTABLE = {
    "created_at": Contact.created_at,
    "last_name": Contact.last_name,
    "lead_score": Contact.lead_score,
}


def _lead_score(raw):
    if isinstance(raw, bool) or raw in (None, ""):
        raise ValueError("lead_score must be a whole number between 0 and 100.")
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValueError("lead_score must be a whole number between 0 and 100.")
    if not 0 <= value <= 100:
        raise ValueError("lead_score must be a whole number between 0 and 100.")
    return value


def _email(raw):
    email = clean_or_none(raw)
    return email.lower() if email else None


def _visible_dealership(user, dealership_id):
    if not dealership_id:
        raise ValueError("Dealership is required.")
    dealership = db.session.get(Dealership, dealership_id)
    if dealership is None:
        raise LookupError("Dealership not found")
    ensure_can_view_dealership(user, dealership)
    return dealership


def _demote_other_primaries(dealership_id, keep_id=None):
    query = Contact.query.filter_by(dealership_id=dealership_id, is_primary=True)
    if keep_id:
        query = query.filter(Contact.id != keep_id)
    query.update({"is_primary": False}, synchronize_session="fetch")


def list_contacts(user, dealership_id=None, search=None, is_primary=None,
                  sort="created_at", order="desc", page=1, per_page=50):
    """Contacts on dealerships the caller can see.

    Returns:
        tuple: (list of Contact, total count before pagination)
    """
    query = visible_contacts(user)
    if dealership_id:
        query = query.filter(Contact.dealership_id == dealership_id)
    if is_primary is not None:
        query = query.filter(Contact.is_primary.is_(is_primary))
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Contact.first_name.ilike(pattern),
            Contact.last_name.ilike(pattern),
            Contact.email.ilike(pattern),
            Contact.position.ilike(pattern),
        ))

    column = SORTABLE.get(sort)
    if column is None:
        raise ValueError(
            f"Invalid sort '{sort}'. Must be one of: {', '.join(SORTABLE)}"
        )
    query = query.order_by(column.asc() if order == "asc" else column.desc())

    total = query.count()
    items = query.offset((page - 1) * per_page).limit(per_page).all()
    return items, total


def create_contact(user, data):
    """Add a contact to a visible dealership and note it in the activity log.

    Raises:
        ValueError: Missing dealership or first name, or an invalid field.
        LookupError: The dealership does not exist.
        AccessDenied: The dealership is outside the caller's visibility.
    """
    ensure_active(user)
    dealership = _visible_dealership(user, data.get("dealership_id"))
    first_name = sanitize(data.get("first_name") or "")
    if not first_name:
        raise ValueError("First name is required.")

    contact = Contact(
        dealership_id=dealership.id,
        first_name=first_name,
        last_name=sanitize(data.get("last_name") or ""),
        email=_email(data.get("email")),
        is_primary=bool(data.get("is_primary")),
        lead_score=0,
    )
    for field in TEXT_FIELDS:
        setattr(contact, field, clean_or_none(data.get(field)))
    if data.get("lead_score") not in (None, ""):
        contact.lead_score = _lead_score(data["lead_score"])
        contact.lead_scored_at = datetime.now(timezone.utc)

    if contact.is_primary:
        _demote_other_primaries(dealership.id)
    db.session.add(contact)
    db.session.flush()

    db.session.add(Activity(
        activity_type=ActivityType.NOTE.value,
        subject="Contact Added",
        description=f'New contact "{contact.full_name}" was added',
        dealership_id=dealership.id,
        contact_id=contact.id,
        user_id=user.id,
        completed_at=datetime.now(timezone.utc),
    ))
    db.session.flush()
    return contact


def update_contact(user, contact, data):
    """Apply submitted fields only.

    Moving a contact to another dealership requires access to the target.

    Raises:
        ValueError: If a submitted field is invalid.
        LookupError: If the target dealership does not exist.
        AccessDenied: If the target dealership is not visible.
    """
    ensure_active(user)
    if "dealership_id" in data and data.get("dealership_id") != contact.dealership_id:
        dealership = _visible_dealership(user, data.get("dealership_id"))
        contact.dealership_id = dealership.id
        contact.dealership = dealership

    if "first_name" in data:
        first_name = sanitize(data.get("first_name") or "")
        if not first_name:
            raise ValueError("First name cannot be empty.")
        contact.first_name = first_name
    if "last_name" in data:
        contact.last_name = sanitize(data.get("last_name") or "")
    if "email" in data:
        contact.email = _email(data.get("email"))
    for field in TEXT_FIELDS:
        if field in data:
            setattr(contact, field, clean_or_none(data.get(field)))
    if "lead_score" in data:
        score = _lead_score(data.get("lead_score"))
        if score != contact.lead_score:
            contact.lead_score = score
            contact.lead_scored_at = datetime.now(timezone.utc)
    if "is_primary" in data:
        contact.is_primary = bool(data.get("is_primary"))

    if contact.is_primary:
        _demote_other_primaries(contact.dealership_id, keep_id=contact.id)
    db.session.flush()
    return contact


def delete_contact(contact, user=None):
    """Delete a contact with its activities and tasks.

    Deals keep existing and lose their contact reference.
    """
    contact_id = contact.id
    Activity.query.filter_by(contact_id=contact_id).delete()
    Task.query.filter_by(contact_id=contact_id).delete()
    Deal.query.filter_by(contact_id=contact_id).update(
        {"contact_id": None}, synchronize_session="fetch"
    )
    Contact.query.filter_by(id=contact_id).delete()
    db.session.flush()
    logger.info(f"Deleted contact {contact_id} by {user.id if user else 'system'}")
