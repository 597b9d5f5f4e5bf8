"""Role / territory visibility.

ADMIN sees everything. USER sees a dealership when they are its assignee or
it sits in their territory, and a deal when they own it or can see its
dealership. Contacts follow their dealership. An activity is visible to the
user who logged it and to anyone who can see its dealership. Prospects are
visible to their owner only (admins see all).

The ``visible_*`` helpers return queries with the filter already applied,
so aggregations run over the caller's scope only. ``ensure_can_view_*``
raise AccessDenied for single-record access.
"""

import logging

from sqlalchemy import or_

from supreme_crm.extensions import db
from supreme_crm.models.activity import Activity
from supreme_crm.models.contact import Contact
from supreme_crm.models.deal import Deal
from supreme_crm.models.dealership import Dealership
from supreme_crm.models.prospect import Prospect

logger = logging.getLogger(__name__)


class AccessDenied(Exception):
    """Caller is authenticated but not allowed to see the requested data."""


def ensure_active(user):
    if user is None or not getattr(user, "is_active", False):
        raise AccessDenied("Account is inactive.")


def dealership_visibility_clause(user):
    """SQL clause restricting Dealership rows to the caller's scope, or None."""
    if user.is_admin:
        return None
    clauses = [Dealership.assigned_user_id == user.id]
    if user.territory_id:
        clauses.append(Dealership.territory_id == user.territory_id)
    return or_(*clauses)


def visible_dealerships(user):
    ensure_active(user)
    query = Dealership.query
    clause = dealership_visibility_clause(user)
    if clause is not None:
        query = query.filter(clause)
    return query


def visible_deals(user):
    """Deals joined to their dealership and restricted to the caller's scope."""
    ensure_active(user)
    query = Deal.query.join(Dealership, Deal.dealership_id == Dealership.id)
    if user.is_admin:
        return query
    clauses = [Deal.owner_id == user.id, Dealership.assigned_user_id == user.id]
    if user.territory_id:
        clauses.append(Dealership.territory_id == user.territory_id)
    return query.filter(or_(*clauses))


def visible_contacts(user):
    ensure_active(user)
    query = Contact.query.join(Dealership, Contact.dealership_id == Dealership.id)
    clause = dealership_visibility_clause(user)
    if clause is not None:
        query = query.filter(clause)
    return query


def visible_activities(user):
    ensure_active(user)
    query = Activity.query.outerjoin(Dealership, Activity.dealership_id == Dealership.id)
    clause = dealership_visibility_clause(user)
    if clause is not None:
        query = query.filter(or_(Activity.user_id == user.id, clause))
    return query


def visible_prospects(user):
    ensure_active(user)
    query = Prospect.query
    if not user.is_admin:
        query = query.filter(Prospect.user_id == user.id)
    return query


def can_view_dealership(user, dealership):
    if user.is_admin:
        return True
    if dealership.assigned_user_id == user.id:
        return True
    return bool(user.territory_id) and dealership.territory_id == user.territory_id


def can_view_deal(user, deal):
    if user.is_admin or deal.owner_id == user.id:
        return True
    dealership = deal.dealership or db.session.get(Dealership, deal.dealership_id)
    return dealership is not None and can_view_dealership(user, dealership)


def can_view_prospect(user, prospect):
    return user.is_admin or prospect.user_id == user.id


def ensure_can_view_dealership(user, dealership):
    ensure_active(user)
    if not can_view_dealership(user, dealership):
        logger.info(f"Denied dealership {dealership.id} to user {user.id}")
        raise AccessDenied("You do not have access to this dealership.")


def ensure_can_view_deal(user, deal):
    ensure_active(user)
    if not can_view_deal(user, deal):
        logger.info(f"Denied deal {deal.id} to user {user.id}")
        raise AccessDenied("You do not have access to this deal.")


def ensure_can_view_prospect(user, prospect):
    ensure_active(user)
    if not can_view_prospect(user, prospect):
        logger.info(f"Denied prospect {prospect.id} to user {user.id}")
        raise AccessDenied("You do not have access to this prospect.")


def ensure_can_filter_by_owner(user, owner_id):
    """USER callers may only narrow to themselves; other owners are forbidden."""
    if owner_id and not user.is_admin and owner_id != user.id:
        logger.info(f"Denied owner filter {owner_id} to user {user.id}")
        raise AccessDenied("You can only filter by your own records.")



def ensure_can_view_contact(user, contact):
    ensure_active(user)
    dealership = contact.dealership or db.session.get(Dealership, contact.dealership_id)
    if dealership is None or not can_view_dealership(user, dealership):
        logger.info(f"Denied contact {contact.id} to user {user.id}")
        raise AccessDenied("You do not have access to this contact.")
