"""Contacts blueprint: /api/contacts/*

Route Map:
  GET    /api/contacts              List (dealership_id, search, is_primary, sort, page)
  POST   /api/contacts              Create on a visible dealership
  GET    /api/contacts/<id>         Detail + recent activities and deals
  PUT    /api/contacts/<id>         Update submitted fields (incl. lead_score)
  DELETE /api/contacts/<id>         Delete with activities / tasks
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from supreme_crm.blueprints.common import bool_arg, json_body, page_args, pagination
from supreme_crm.extensions import db
from supreme_crm.models.activity import Activity
from supreme_crm.models.contact import Contact
from supreme_crm.models.deal import Deal
from supreme_crm.serializers import activity_dict, contact_dict, deal_dict
from supreme_crm.services import contact_service
from supreme_crm.services.access import ensure_can_view_contact

contacts_bp = Blueprint("contacts", __name__, url_prefix="/api/contacts")

RECENT_ACTIVITY_LIMIT = 50


def _load(contact_id):
    contact = db.session.get(Contact, contact_id)
    if contact is not None:
        ensure_can_view_contact(current_user, contact)
    return contact


@contacts_bp.route("", methods=["GET"])
@login_required
def list_contacts():
    try:
        page, per_page = page_args()
        items, total = contact_service.list_contacts(
            current_user,
            dealership_id=request.args.get("dealership_id"),
            search=(request.args.get("search") or "").strip() or None,
            is_primary=bool_arg("is_primary"),
            sort=request.args.get("sort", "created_at"),
            order=request.args.get("order", "desc"),
            page=page,
            per_page=per_page,
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({
        "contacts": [contact_dict(c) for c in items],
        "pagination": pagination(total, page, per_page),
    })


@contacts_bp.route("", methods=["POST"])
@login_required
def create_contact():
    try:
        contact = contact_service.create_contact(current_user, json_body())
    except ValueError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    db.session.commit()
    return jsonify({"contact": contact_dict(contact)}), 201


@contacts_bp.route("/<contact_id>", methods=["GET"])
@login_required
def get_contact(contact_id):
    contact = _load(contact_id)
    if contact is None:
        return jsonify({"error": "Contact not found"}), 404
    activities = (
        Activity.query.filter_by(contact_id=contact.id)
        .order_by(Activity.created_at.desc())
        .limit(RECENT_ACTIVITY_LIMIT)
        .all()
    )
    deals = (
        Deal.query.filter_by(contact_id=contact.id)
        .order_by(Deal.created_at.desc())
        .all()
    )
    return jsonify({
        "contact": contact_dict(contact),
        "activities": [activity_dict(a) for a in activities],
        "deals": [deal_dict(d) for d in deals],
    })


@contacts_bp.route("/<contact_id>", methods=["PUT"])
@login_required
def update_contact(contact_id):
    contact = _load(contact_id)
    if contact is None:
        return jsonify({"error": "Contact not found"}), 404
    try:
        contact_service.update_contact(current_user, contact, json_body())
    except ValueError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except LookupError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    db.session.commit()
    return jsonify({"contact": contact_dict(contact)})


@contacts_bp.route("/<contact_id>", methods=["DELETE"])
@login_required
def delete_contact(contact_id):
    contact = _load(contact_id)
    if contact is None:
        return jsonify({"error": "Contact not found"}), 404
    contact_service.delete_contact(contact, user=current_user)
    db.session.commit()
    return jsonify({"success": True})
