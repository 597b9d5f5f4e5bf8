"""Pipeline / analytics aggregation over the caller's visible records.

Every query starts from access.visible_deals() / visible_dealerships(), so
the role filter is part of the SQL and the per-stage totals are computed
from already-scoped rows. Stage grouping always emits every canonical
stage; rows whose stored stage is outside the known set are counted as
``unbucketed`` instead of being dropped silently.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app
from sqlalchemy import func, or_, select

from supreme_crm.models.activity import Activity
from supreme_crm.models.contact import Contact
from supreme_crm.models.deal import Deal
from supreme_crm.models.dealership import Dealership
from supreme_crm.models.enums import (
    CLOSED_DEAL_STAGES,
    DEALERSHIP_BOARD_STAGES,
    DEALERSHIP_PIPELINE_STAGES,
    OPEN_DEAL_STAGES,
    OPEN_TASK_STATUSES,
    DealershipStatus,
    DealStage,
)
from supreme_crm.models.task import Task
from supreme_crm.models.user import User
from supreme_crm.services.access import (
    dealership_visibility_clause,
    ensure_active,
    ensure_can_filter_by_owner,
    visible_contacts,
    visible_dealerships,
    visible_deals,
)

logger = logging.getLogger(__name__)

CUSTOMER_STATUSES = (DealershipStatus.ACTIVE_CUSTOMER, DealershipStatus.CHURNED)
TOP_LIMIT = 5


def _parse_amount(raw, name):
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    try:
        amount = float(raw)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number.")
    if amount != amount or amount in (float("inf"), float("-inf")):
        raise ValueError(f"{name} must be a number.")
    if amount < 0:
        raise ValueError(f"{name} cannot be negative.")
    return amount


@dataclass(frozen=True)
class PipelineFilters:
    """Optional narrowing applied on top of the role filter."""

    search: str | None = None
    owner_id: str | None = None
    min_value: float | None = None
    max_value: float | None = None

    def __post_init__(self):
        if (
            self.min_value is not None
            and self.max_value is not None
            and self.min_value > self.max_value
        ):
            raise ValueError("min_value cannot be greater than max_value.")

    @classmethod
    def from_args(cls, args):
        """Build from request.args (or any mapping of query-string values)."""
        search = (args.get("search") or "").strip() or None
        owner_id = (
            args.get("owner_id") or args.get("assigned_user_id") or ""
        ).strip() or None
        return cls(
            search=search,
            owner_id=owner_id,
            min_value=_parse_amount(args.get("min_value"), "min_value"),
            max_value=_parse_amount(args.get("max_value"), "max_value"),
        )


def group_by_stage(records, stages, stage_of, value_of):
    """Bucket ``records`` by stage in the order of ``stages``.

    Args:
        records: iterable of rows.
        stages: ordered enum members; every one appears in the output.
        stage_of: callable returning a row's stored stage string.
        value_of: callable returning a row's monetary value (None counts as 0).

    Returns:
        tuple: ({stage_value: {"items", "count", "value"}}, unbucketed_count)
    """
    enum_cls = type(stages[0])
    groups = {s.value: {"items": [], "count": 0, "value": 0.0} for s in stages}
    unbucketed = 0
    for record in records:
        stage = enum_cls.parse(stage_of(record))
        bucket = groups.get(stage.value) if stage is not None else None
        if bucket is None:
            unbucketed += 1
            continue
        bucket["items"].append(record)
        bucket["count"] += 1
        bucket["value"] += value_of(record) or 0
    if unbucketed:
        logger.warning(
            f"{unbucketed} record(s) with an unknown {enum_cls.__name__} "
            f"left out of the stage buckets"
        )
    return groups, unbucketed


def weighted_value(deals):
    """Sum of value x probability / 100."""
    return sum(
        (d.value or 0) * (d.probability or 0) / 100 for d in deals
    )


def win_rate(won, lost):
    """Percentage of closed deals that were won, one decimal, half-up."""
    closed = won + lost
    if closed <= 0:
        return 0.0
    rate = Decimal(won * 100) / Decimal(closed)
    return float(rate.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def _closed_stage_values():
    return [s.value for s in CLOSED_DEAL_STAGES]


def deal_pipeline(user, filters=None):
    """Open deals grouped by stage, with portfolio totals."""
    filters = filters or PipelineFilters()
    ensure_active(user)
    ensure_can_filter_by_owner(user, filters.owner_id)

    query = visible_deals(user).filter(Deal.stage.notin_(_closed_stage_values()))
    if filters.search:
        pattern = f"%{filters.search}%"
        query = query.filter(
            or_(Deal.title.ilike(pattern), Dealership.name.ilike(pattern))
        )
    if filters.owner_id:
        query = query.filter(Deal.owner_id == filters.owner_id)
    if filters.min_value is not None:
        query = query.filter(Deal.value >= filters.min_value)
    if filters.max_value is not None:
        query = query.filter(Deal.value <= filters.max_value)

    deals = query.order_by(Deal.created_at.asc()).all()
    groups, unbucketed = group_by_stage(
        deals, OPEN_DEAL_STAGES, lambda d: d.stage, lambda d: d.value
    )
    return {
        "groups": groups,
        "summary": {
            "total_deals": len(deals),
            "total_pipeline_value": sum(g["value"] for g in groups.values()),
            "weighted_value": weighted_value(deals),
            "unbucketed": unbucketed,
        },
    }


def _filtered_dealerships(user, filters):
    ensure_can_filter_by_owner(user, filters.owner_id)
    query = visible_dealerships(user)
    if filters.search:
        query = query.filter(Dealership.name.ilike(f"%{filters.search}%"))
    if filters.owner_id:
        query = query.filter(Dealership.assigned_user_id == filters.owner_id)
    if filters.min_value is not None:
        query = query.filter(Dealership.monthly_value >= filters.min_value)
    if filters.max_value is not None:
        query = query.filter(Dealership.monthly_value <= filters.max_value)
    return query


def _dealership_grouping(dealerships, stages):
    groups, unbucketed = group_by_stage(
        dealerships, stages, lambda d: d.status, lambda d: d.monthly_value
    )
    return {
        "groups": groups,
        "summary": {
            "total_dealerships": len(dealerships),
            "total_pipeline_value": sum(g["value"] for g in groups.values()),
            "unbucketed": unbucketed,
        },
    }


def dealership_pipeline(user, filters=None):
    """Dealerships still in the sales funnel, grouped by status.

    Customers (ACTIVE_CUSTOMER / CHURNED) are excluded. Admins also get
    the user list for the owner filter.
    """
    filters = filters or PipelineFilters()
    ensure_active(user)
    query = _filtered_dealerships(user, filters).filter(
        Dealership.status.notin_([s.value for s in CUSTOMER_STATUSES])
    )
    dealerships = query.order_by(Dealership.updated_at.desc()).all()

    result = _dealership_grouping(dealerships, DEALERSHIP_PIPELINE_STAGES)
    result["users"] = []
    if user.is_admin:
        result["users"] = User.query.order_by(User.name.asc()).all()
    return result


def dealership_status_board(user, filters=None):
    """All dealerships grouped across the full status lifecycle."""
    filters = filters or PipelineFilters()
    ensure_active(user)
    dealerships = (
        _filtered_dealerships(user, filters)
        .order_by(Dealership.updated_at.desc())
        .all()
    )
    return _dealership_grouping(dealerships, DEALERSHIP_BOARD_STAGES)


def closed_dealerships(user, state=None):
    """Won customers, most recently activated first."""
    base = visible_dealerships(user).filter(
        Dealership.status == DealershipStatus.ACTIVE_CUSTOMER.value
    )
    query = base
    if state and state.upper() != "ALL":
        query = query.filter(Dealership.state == state)
    dealerships = query.order_by(Dealership.live_activated_at.desc()).all()

    states = sorted(
        row[0]
        for row in base.with_entities(Dealership.state)
        .filter(Dealership.state.isnot(None), Dealership.state != "")
        .distinct()
        .all()
    )
    return {
        "dealerships": dealerships,
        "states": states,
        "summary": {
            "total_count": len(dealerships),
            "total_monthly_value": sum(d.monthly_value or 0 for d in dealerships),
        },
    }


def _visible_dealership_ids(user):
    """Select of dealership ids the caller can see (None for admins)."""
    clause = dealership_visibility_clause(user)
    if clause is None:
        return None
    return select(Dealership.id).where(clause)


def _scoped(query, user, dealership_column, user_column):
    ids = _visible_dealership_ids(user)
    if ids is None:
        return query
    return query.filter(or_(dealership_column.in_(ids), user_column == user.id))


def crm_analytics(user, period_days=30, now=None):
    """Dashboard figures for the caller's scope over the last ``period_days``.

    Raises:
        ValueError: If period_days is not a positive whole number.
        AccessDenied: If the caller is inactive.
    """
    ensure_active(user)
    try:
        period_days = int(period_days)
    except (TypeError, ValueError):
        raise ValueError("period must be a whole number of days.")
    if period_days <= 0:
        raise ValueError("period must be a positive number of days.")

    now = now or datetime.now(timezone.utc)
    start = now - timedelta(days=period_days)
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    tomorrow = today + timedelta(days=1)

    # --- Dealerships ---
    dealerships_q = visible_dealerships(user)
    dealership_stats = {
        "total": dealerships_q.count(),
        "live": dealerships_q.filter(Dealership.is_live.is_(True)).count(),
        "prospects": dealerships_q.filter(
            Dealership.status == DealershipStatus.PROSPECT.value
        ).count(),
        "active": dealerships_q.filter(
            Dealership.status == DealershipStatus.ACTIVE_CUSTOMER.value
        ).count(),
        "churned": dealerships_q.filter(
            Dealership.status == DealershipStatus.CHURNED.value
        ).count(),
    }

    # --- Deals ---
    deals_q = visible_deals(user)
    deals = deals_q.all()
    open_deals, won_deals, lost_deals = [], [], []
    for deal in deals:
        stage = DealStage.parse(deal.stage)
        if stage is DealStage.CLOSED_WON:
            won_deals.append(deal)
        elif stage is DealStage.CLOSED_LOST:
            lost_deals.append(deal)
        else:
            open_deals.append(deal)

    recent_won_q = deals_q.filter(
        Deal.stage == DealStage.CLOSED_WON.value, Deal.closed_at >= start
    )
    recent_won = recent_won_q.order_by(Deal.closed_at.desc()).all()

    breakdown, _ = group_by_stage(
        open_deals, OPEN_DEAL_STAGES, lambda d: d.stage, lambda d: d.value
    )
    mrr = sum(d.monthly_recurring or 0 for d in won_deals)

    # --- Contacts ---
    hot_score = current_app.config.get("HOT_LEAD_SCORE", 70)
    contacts_q = visible_contacts(user)

    # --- Tasks ---
    tasks_q = _scoped(Task.query, user, Task.dealership_id, Task.assigned_to_id)
    open_statuses = [s.value for s in OPEN_TASK_STATUSES]

    # --- Activities ---
    activities_q = _scoped(
        Activity.query, user, Activity.dealership_id, Activity.user_id
    )
    by_type_rows = (
        activities_q.filter(Activity.created_at >= start)
        .with_entities(Activity.activity_type, func.count(Activity.id))
        .group_by(Activity.activity_type)
        .all()
    )

    top_dealerships = (
        dealerships_q.filter(Dealership.is_live.is_(True))
        .order_by(func.coalesce(Dealership.monthly_value, 0).desc())
        .limit(TOP_LIMIT)
        .all()
    )

    return {
        "dealerships": dealership_stats,
        "deals": {
            "total": len(deals),
            "open": len(open_deals),
            "won": len(won_deals),
            "lost": len(lost_deals),
            "recent_won": len(recent_won),
            "win_rate": win_rate(len(won_deals), len(lost_deals)),
        },
        "revenue": {
            "pipeline_value": sum(d.value or 0 for d in open_deals),
            "weighted_pipeline_value": weighted_value(open_deals),
            "won_value": sum(d.value or 0 for d in won_deals),
            "recent_won_value": sum(d.value or 0 for d in recent_won),
            "mrr": mrr,
            "arr": mrr * 12,
        },
        "pipeline": {
            stage: {"count": g["count"], "value": g["value"]}
            for stage, g in breakdown.items()
        },
        "contacts": {
            "total": contacts_q.count(),
            "hot_leads": contacts_q.filter(Contact.lead_score >= hot_score).count(),
        },
        "tasks": {
            "due_today": tasks_q.filter(
                Task.due_date >= today,
                Task.due_date < tomorrow,
                Task.status.in_(open_statuses),
            ).count(),
            "overdue": tasks_q.filter(
                Task.due_date < today, Task.status.in_(open_statuses)
            ).count(),
            "completed_recently": tasks_q.filter(
                Task.completed_at >= start
            ).count(),
        },
        "activities": {
            "total": activities_q.count(),
            "recent": activities_q.filter(Activity.created_at >= start).count(),
            "by_type": {activity_type: count for activity_type, count in by_type_rows},
        },
        "top_dealerships": top_dealerships,
        "recent_wins": recent_won[:TOP_LIMIT],
        "period": period_days,
    }