"""Dealership service: CRUD, go-live transition, cascading delete.

Status changes are logged as STATUS_CHANGE activities. Moving a dealership
to ACTIVE_CUSTOMER always goes through activate_customer(), which stamps
live_activated_at / customer_since only the first time.

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
from supreme_crm.models.enums import (
    CLOSED_DEAL_STAGES,
    ActivityType,
    DealershipStatus,
    DealStage,
)
from supreme_crm.models.task import Task
from supreme_crm.services.access import (
    AccessDenied,
    ensure_active,
    visible_dealerships,
)
from supreme_crm.services.text import clean_or_none, sanitize

logger = logging.getLogger(__name__)

TEXT_FIELDS = (
    "legal_name",
    "website",
    "phone",
    "email",
    "address",
    "city",
    "state",
    "zip_code",
    "dealer_group",
    "notes",
)

SORTABLE = {
    "name": Dealership.name,
    "created_at": Dealership.created_at,
    "updated_at": Dealership.updated_at,
    "monthly_value": Dealership.monthly_value,
    "status": Dealership.status,
}


def _parse_status(raw):
    status = DealershipStatus.parse(raw)
    if status is None:
        raise ValueError(
            f"Invalid status '{raw}'. "
            f"Must be one of: {', '.join(DealershipStatus.values())}"
        )
    return status


def _non_negative_float(raw, name):
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        raise ValueError(f"{name} must be a number.")
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number.")
    if value != value or value < 0:
        raise ValueError(f"{name} cannot be negative.")
    return value


def _non_negative_int(raw, name):
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        raise ValueError(f"{name} must be a whole number.")
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a whole number.")
    if value < 0:
        raise ValueError(f"{name} cannot be negative.")
    return value


def _brands(raw):
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.replace(";", ",").split(",")
    if not isinstance(raw, (list, tuple)):
        raise ValueError("brands must be a list of strings.")
    return [sanitize(str(b)) for b in raw if str(b).strip()]


def _log_status_change(dealership, user_id, subject, description):
    db.session.add(Activity(
        activity_type=ActivityType.STATUS_CHANGE.value,
        subject=subject,
        description=description,
        dealership_id=dealership.id,
        user_id=user_id,
        completed_at=datetime.now(timezone.utc),
    ))


def _check_assignment(user, data, dealership=None):
    """Only admins may assign records to other users or territories.

    A USER may leave a value as it is or point it at themselves. An empty
    value counts as a change, so clearing the assignee or territory of a
    dealership is admin-only as well.
    """
    if user.is_admin:
        return
    rules = (
        ("assigned_user_id", user.id, "other users"),
        ("territory_id", user.territory_id, "other territories"),
    )
    for key, own, target in rules:
        if key not in data:
            continue
        value = data.get(key) or None
        current = getattr(dealership, key) if dealership is not None else None
        if dealership is not None and value == current:
            continue
        if value is None and dealership is None:
            continue
        if value is None or value != own:
            raise AccessDenied(f"Only admins can assign dealerships to {target}.")


def list_dealerships(user, status=None, search=None, is_live=None,
                     sort="updated_at", order="desc", page=1, per_page=50):
    """Visible dealerships, filtered and paginated.

    Returns:
        tuple: (list of Dealership, total count before pagination)
    """
    query = visible_dealerships(user)
    if status:
        query = query.filter(Dealership.status == _parse_status(status).value)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Dealership.name.ilike(pattern),
            Dealership.city.ilike(pattern),
            Dealership.dealer_group.ilike(pattern),
        ))
    if is_live is not None:
        query = query.filter(Dealership.is_live.is_(is_live))

    column = SORTABLE.get(sort)
    if column is None:
        raise ValueError(
            f"Invalid sort '{sort}'. Must be one of: {', '.join(SORTABLE)}"
        )
    query = query.order_by(column.asc() if order == "asc" else column.desc())

    total = query.count()
    items = query.offset((page - 1) * per_page).limit(per_page).all()
    return items, total


def create_dealership(user, data):
    """Create a dealership assigned to the caller (or, for admins, anyone).

    Raises:
        ValueError: If name is missing or a field is invalid.
        AccessDenied: If a USER tries to assign it elsewhere.
    """
    ensure_active(user)
    name = sanitize(data.get("name") or "")
    if not name:
        raise ValueError("Name is required.")
    _check_assignment(user, data)

    status = DealershipStatus.PROSPECT
    if data.get("status"):
        status = _parse_status(data["status"])

    dealership = Dealership(
        name=name,
        status=DealershipStatus.PROSPECT.value,
        brands=_brands(data.get("brands")),
        employee_count=_non_negative_int(data.get("employee_count"), "employee_count"),
        monthly_value=_non_negative_float(data.get("monthly_value"), "monthly_value"),
        source=clean_or_none(data.get("source")) or "manual",
        assigned_user_id=data.get("assigned_user_id") or user.id,
        territory_id=data.get("territory_id") or user.territory_id,
    )
    for field in TEXT_FIELDS:
        setattr(dealership, field, clean_or_none(data.get(field)))
    db.session.add(dealership)
    db.session.flush()

    if status is DealershipStatus.ACTIVE_CUSTOMER:
        activate_customer(dealership)
    else:
        dealership.status = status.value

    _log_status_change(
        dealership,
        user.id,
        "Dealership Created",
        f"Dealership {dealership.name} created with status {dealership.status}",
    )
    db.session.flush()
    return dealership


def activate_customer(dealership, now=None):
    """Mark a dealership as a live customer.

    Idempotent: timestamps are only set when they are still empty, so
    re-activating an existing customer does not move live_activated_at.
    """
    now = now or datetime.now(timezone.utc)
    was_live = dealership.is_live
    dealership.status = DealershipStatus.ACTIVE_CUSTOMER.value
    dealership.is_live = True
    if dealership.live_activated_at is None:
        dealership.live_activated_at = now
    if dealership.customer_since is None:
        dealership.customer_since = now
    if not was_live:
        logger.info(f"Dealership {dealership.id} ({dealership.name}) went live")
    return dealership


def update_dealership(user, dealership, data):
    """Apply submitted fields only; log status transitions.

    Raises:
        ValueError: If a submitted field is invalid.
        AccessDenied: If a USER tries to reassign the dealership.
    """
    ensure_active(user)
    _check_assignment(user, data, dealership)

    if "name" in data:
        name = sanitize(data.get("name") or "")
        if not name:
            raise ValueError("Name cannot be empty.")
        dealership.name = name
    for field in TEXT_FIELDS:
        if field in data:
            setattr(dealership, field, clean_or_none(data.get(field)))
    if "brands" in data:
        dealership.brands = _brands(data.get("brands"))
    if "employee_count" in data:
        dealership.employee_count = _non_negative_int(
            data.get("employee_count"), "employee_count"
        )
    if "monthly_value" in data:
        dealership.monthly_value = _non_negative_float(
            data.get("monthly_value"), "monthly_value"
        )
    if "is_live" in data:
        dealership.is_live = bool(data.get("is_live"))
    if "assigned_user_id" in data:
        dealership.assigned_user_id = data.get("assigned_user_id") or None
    if "territory_id" in data:
        dealership.territory_id = data.get("territory_id") or None

    if data.get("status"):
        new_status = _parse_status(data["status"])
        old_status = dealership.status
        if new_status is DealershipStatus.ACTIVE_CUSTOMER:
            activate_customer(dealership)
        else:
            dealership.status = new_status.value
        if new_status.value != old_status:
            _log_status_change(
                dealership,
                user.id,
                "Status Changed",
                f"Dealership status changed from {old_status} to {new_status.value}",
            )

    db.session.flush()
    return dealership


def deal_metrics(dealership):
    """Counts and values of the dealership's deals by outcome."""
    deals = dealership.deals.all()
    won = [d for d in deals if DealStage.parse(d.stage) is DealStage.CLOSED_WON]
    lost = [d for d in deals if DealStage.parse(d.stage) is DealStage.CLOSED_LOST]
    open_ = [d for d in deals if not d.is_closed]
    return {
        "total_deals": len(deals),
        "open_deals": len(open_),
        "won_deals": len(won),
        "lost_deals": len(lost),
        "total_value": sum(d.value or 0 for d in deals),
        "won_value": sum(d.value or 0 for d in won),
        "pipeline_value": sum(d.value or 0 for d in open_),
    }


def delete_dealership(dealership, user=None):
    """Delete a dealership and everything hanging off it.

    Raises:
        ValueError: If the dealership still has open deals.
    """
    closed = [s.value for s in CLOSED_DEAL_STAGES]
    open_count = dealership.deals.filter(Deal.stage.notin_(closed)).count()
    if open_count:
        logger.info(
            f"Refused to delete dealership {dealership.id}: {open_count} open deal(s)"
        )
        raise ValueError(
            "Cannot delete dealership with open deals. Close or delete deals first."
        )

    dealership_id = dealership.id
    deal_ids = [d.id for d in dealership.deals.with_entities(Deal.id)]
    if deal_ids:
        Activity.query.filter(Activity.deal_id.in_(deal_ids)).delete()
        Task.query.filter(Task.deal_id.in_(deal_ids)).delete()
    Activity.query.filter_by(dealership_id=dealership_id).delete()
    Task.query.filter_by(dealership_id=dealership_id).delete()
    Deal.query.filter_by(dealership_id=dealership_id).delete()
    Contact.query.filter_by(dealership_id=dealership_id).delete()
    Dealership.query.filter_by(id=dealership_id).delete()
    db.session.flush()

    logger.info(
        f"Deleted dealership {dealership_id} "
        f"by {user.id if user else 'system'} ({len(deal_ids)} closed deal(s))"
    )
