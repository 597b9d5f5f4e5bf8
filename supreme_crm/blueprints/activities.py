"""Activities blueprint: /api/activities/*

Route Map:
  GET  /api/activities    List (dealership_id, contact_id, deal_id, type, page)
  POST /api/activities    Append to the log (type + dealership, contact or deal)

The log is append-only: there are no update or delete routes.
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from supreme_crm.blueprints.common import json_body, page_args, pagination
from supreme_crm.extensions import db
from supreme_crm.serializers import activity_dict
from supreme_crm.services import activity_service

activities_bp = Blueprint("activities", __name__, url_prefix="/api/activities")


@activities_bp.route("", methods=["GET"])
@login_required
def list_activities():
    try:
        page, per_page = page_args()
        items, total = activity_service.list_activities(
            current_user,
            dealership_id=request.args.get("dealership_id"),
            contact_id=request.args.get("contact_id"),
            deal_id=request.args.get("deal_id"),
            activity_type=request.args.get("type"),
            page=page,
            per_page=per_page,
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({
        "activities": [activity_dict(a) for a in items],
        "pagination": pagination(total, page, per_page),
    })


@activities_bp.route("", methods=["POST"])
@login_required
def log_activity():
    try:
        activity = activity_service.log_activity(current_user, json_body())
    except ValueError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    db.session.commit()
    return jsonify({"activity": activity_dict(activity)}), 201
