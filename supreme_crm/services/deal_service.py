"""Deal service: CRUD and stage transitions.

Probability follows STAGE_PROBABILITIES unless the caller supplies one
explicitly (an explicit 0 counts). Entering a closed stage stamps
closed_at; entering CLOSED_WON activates the dealership as a customer.

Functions flush but do NOT commit; the caller commits.
"""

import logging
from datetime import datetime, timezone

from supreme_crm.extensions import db
from supreme_crm.models.activity import Activity
from supreme_crm.models.contact import Contact
from supreme_crm.models.deal import STAGE_PROBABILITIES, Deal
from supreme_crm.models.dealership import Dealership
from supreme_crm.models.enums import ActivityType, DealStage
from supreme_crm.models.task import Task
from supreme_crm.services.access import (
    AccessDenied,
    ensure_active,
    ensure_can_filter_by_owner,
    ensure_can_view_dealership,
    visible_deals,
)
from supreme_crm.services.dealership_service import activate_customer
from supreme_crm.services.text import clean_or_none, sanitize

logger = logging.getLogger(__name__)

SORTABLE = {
    "created_at": Deal.created_at,
    "updated_at": Deal.updated_at,
    "value": Deal.value,
    "expected_close_date": Deal.expected_close_date,
    "title": Deal.title,
}


def default_probability(stage):
    """Table probability for a stage (member or string)."""
    parsed = DealStage.parse(stage)
    if parsed is None:
        raise ValueError(
            f"Invalid stage '{stage}'. Must be one of: {', '.join(DealStage.values())}"
        )
    return STAGE_PROBABILITIES[parsed]


def _parse_stage(raw):
    stage = DealStage.parse(raw)
    if stage is None:
        raise ValueError(
            f"Invalid stage '{raw}'. Must be one of: {', '.join(DealStage.values())}"
        )
    return stage


def _probability(raw):
    if isinstance(raw, bool):
        raise ValueError("probability must be a whole number between 0 and 100.")
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValueError("probability must be a whole number between 0 and 100.")
    if not 0 <= value <= 100:
        raise ValueError("probability must be a whole number between 0 and 100.")
    return value


def _amount(raw, name, default=None):
    if raw is None or raw == "":
        return default
    if isinstance(raw, bool):
        raise ValueError(f"{name} must be a number.")
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number.")
    if value != value:
        raise ValueError(f"{name} must be a number.")
    if value < 0:
        raise ValueError(f"{name} cannot be negative.")
    return value


def _date(raw, name):
    if not raw:
        return None
    try:
        value = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        raise ValueError(f"{name} must be an ISO 8601 date.")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _explicit(data, key):
    return key in data and data[key] is not None and data[key] != ""


def _check_contact(contact_id, dealership_id):
    if not contact_id:
        return None
    contact = db.session.get(Contact, contact_id)
    if contact is None or contact.dealership_id != dealership_id:
        raise ValueError("Contact does not belong to this dealership.")
    return contact.id


def _check_owner(user, owner_id):
    if owner_id and not user.is_admin and owner_id != user.id:
        raise AccessDenied("Only admins can assign deals to other users.")


def _log_stage_activity(deal, user_id, subject, description):
    db.session.add(Activity(
        activity_type=ActivityType.STATUS_CHANGE.value,
        subject=subject,
        description=description,
        dealership_id=deal.dealership_id,
        deal_id=deal.id,
        contact_id=deal.contact_id,
        user_id=user_id,
        completed_at=datetime.now(timezone.utc),
    ))


def _enter_stage(deal, stage, now):
    """Side effects of moving ``deal`` into ``stage`` from a different one."""
    was_closed = deal.is_closed
    deal.stage = stage.value
    if stage.is_closed and not was_closed:
        deal.closed_at = now
    elif not stage.is_closed:
        deal.closed_at = None
    if stage is DealStage.CLOSED_WON:
        dealership = deal.dealership or db.session.get(Dealership, deal.dealership_id)
        if dealership is not None:
            activate_customer(dealership, now=now)


def list_deals(user, dealership_id=None, stage=None, owner_id=None,
               sort="created_at", order="desc", page=1, per_page=50):
    """Visible deals, filtered and paginated.

    Returns:
        tuple: (list of Deal, total count before pagination)
    """
    ensure_can_filter_by_owner(user, owner_id)
    query = visible_deals(user)
    if dealership_id:
        query = query.filter(Deal.dealership_id == dealership_id)
    if stage:
        query = query.filter(Deal.stage == _parse_stage(stage).value)
    if owner_id:
        query = query.filter(Deal.owner_id == owner_id)

    column = SORTABLE.get(sort)
    if column is None:
        raise ValueError(
            f"Invalid sort '{sort}'. Must be one of: {', '.join(SORTABLE)}"
        )
    query = query.order_by(column.asc() if order == "asc" else column.desc())

    total = query.count()
    items = query.offset((page - 1) * per_page).limit(per_page).all()
    return items, total


def create_deal(user, data):
    """Create a deal on a dealership the caller can see.

    Raises:
        ValueError: Missing dealership/title or an invalid field.
        LookupError: The dealership does not exist.
        AccessDenied: The dealership is outside the caller's visibility.
    """
    ensure_active(user)
    dealership_id = data.get("dealership_id")
    if not dealership_id:
        raise ValueError("Dealership is required.")
    dealership = db.session.get(Dealership, dealership_id)
    if dealership is None:
        raise LookupError("Dealership not found")
    ensure_can_view_dealership(user, dealership)

    title = sanitize(data.get("title") or "")
    if not title:
        raise ValueError("Title is required.")
    _check_owner(user, data.get("owner_id"))

    stage = _parse_stage(data["stage"]) if data.get("stage") else DealStage.LEAD
    if _explicit(data, "probability"):
        probability = _probability(data["probability"])
    else:
        probability = STAGE_PROBABILITIES[stage]

    deal = Deal(
        title=title,
        value=_amount(data.get("value"), "value", default=0.0),
        monthly_recurring=_amount(data.get("monthly_recurring"), "monthly_recurring"),
        stage=DealStage.LEAD.value,
        probability=probability,
        expected_close_date=_date(data.get("expected_close_date"), "expected_close_date"),
        notes=clean_or_none(data.get("notes")),
        dealership_id=dealership.id,
        contact_id=_check_contact(data.get("contact_id"), dealership.id),
        owner_id=data.get("owner_id") or user.id,
    )
    deal.dealership = dealership
    db.session.add(deal)
    db.session.flush()

    now = datetime.now(timezone.utc)
    if stage is not DealStage.LEAD:
        _enter_stage(deal, stage, now)
    if stage is DealStage.CLOSED_LOST:
        deal.lost_reason = clean_or_none(data.get("lost_reason"))

    _log_stage_activity(
        deal,
        user.id,
        "Deal Created",
        f'New deal "{deal.title}" was created with value ${deal.value:,.2f}',
    )
    db.session.flush()
    return deal


def update_deal(user, deal, data):
    """Apply submitted fields only.

    A stage change without an explicit probability resets the probability
    from the stage table.
    """
    ensure_active(user)
    _check_owner(user, data.get("owner_id"))

    if "title" in data:
        title = sanitize(data.get("title") or "")
        if not title:
            raise ValueError("Title cannot be empty.")
        deal.title = title
    if "value" in data:
        deal.value = _amount(data.get("value"), "value", default=0.0)
    if "monthly_recurring" in data:
        deal.monthly_recurring = _amount(data.get("monthly_recurring"), "monthly_recurring")
    if "expected_close_date" in data:
        deal.expected_close_date = _date(
            data.get("expected_close_date"), "expected_close_date"
        )
    if "notes" in data:
        deal.notes = clean_or_none(data.get("notes"))
    if "lost_reason" in data:
        deal.lost_reason = clean_or_none(data.get("lost_reason"))
    if "contact_id" in data:
        deal.contact_id = _check_contact(data.get("contact_id"), deal.dealership_id)
    if "owner_id" in data and data.get("owner_id"):
        deal.owner_id = data["owner_id"]

    if _explicit(data, "probability"):
        deal.probability = _probability(data["probability"])

    if data.get("stage"):
        new_stage = _parse_stage(data["stage"])
        old_stage = deal.stage
        if new_stage.value != old_stage:
            _enter_stage(deal, new_stage, datetime.now(timezone.utc))
            if not _explicit(data, "probability"):
                deal.probability = STAGE_PROBABILITIES[new_stage]
            _log_stage_activity(
                deal,
                user.id,
                "Deal Stage Changed",
                f"Deal moved from {old_stage} to {new_stage.value}",
            )

    db.session.flush()
    return deal


def change_stage(user, deal, stage, lost_reason=None):
    """Quick stage move; probability always comes from the stage table."""
    ensure_active(user)
    if not stage:
        raise ValueError("Stage is required.")
    new_stage = _parse_stage(stage)
    old_stage = deal.stage

    if new_stage.value != old_stage:
        _enter_stage(deal, new_stage, datetime.now(timezone.utc))
    deal.probability = STAGE_PROBABILITIES[new_stage]
    if new_stage is DealStage.CLOSED_LOST:
        deal.lost_reason = clean_or_none(lost_reason)

    _log_stage_activity(
        deal,
        user.id,
        "Deal Stage Changed",
        f"Deal moved from {old_stage} to {new_stage.value}",
    )
    db.session.flush()
    return deal


def delete_deal(deal, user=None):
    """Delete a deal with its activities and tasks."""
    deal_id = deal.id
    Activity.query.filter_by(deal_id=deal_id).delete()
    Task.query.filter_by(deal_id=deal_id).delete()
    Deal.query.filter_by(id=deal_id).delete()
    db.session.flush()
    logger.info(f"Deleted deal {deal_id} by {user.id if user else 'system'}")
