"""Dealerships blueprint: /api/dealerships/*

Route Map:
  GET    /api/dealerships                List (status, search, is_live, sort, page)
  POST   /api/dealerships                Create
  GET    /api/dealerships/pipeline       Funnel grouped by status
  GET    /api/dealerships/board          All statuses grouped
  GET    /api/dealerships/closed         Active customers (?state=)
  GET    /api/dealerships/<id>           Detail + deal metrics
  PUT    /api/dealerships/<id>           Update submitted fields
  DELETE /api/dealerships/<id>           Delete (refused with open deals)

All routes require login. Records outside the caller's visibility are 403.
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from supreme_crm.blueprints.common import bool_arg, json_body, page_args, pagination
from supreme_crm.extensions import db
from supreme_crm.models.dealership import Dealership
from supreme_crm.serializers import (
    activity_dict,
    dealership_dict,
    grouped_dict,
    user_ref,
)
from supreme_crm.services import dealership_service, pipeline_service
from supreme_crm.services.access import ensure_can_view_dealership

dealerships_bp = Blueprint("dealerships", __name__, url_prefix="/api/dealerships")

RECENT_ACTIVITY_LIMIT = 20


def _load(dealership_id):
    """Visible dealership or None (AccessDenied propagates as 403)."""
    dealership = db.session.get(Dealership, dealership_id)
    if dealership is not None:
        ensure_can_view_dealership(current_user, dealership)
    return dealership


# ─── Collection ──────────────────────────────────────────────────

@dealerships_bp.route("", methods=["GET"])
@login_required
def list_dealerships():
    try:
        page, per_page = page_args()
        items, total = dealership_service.list_dealerships(
            current_user,
            status=request.args.get("status"),
            search=(request.args.get("search") or "").strip() or None,
            is_live=bool_arg("is_live"),
            sort=request.args.get("sort", "updated_at"),
            order=request.args.get("order", "desc"),
            page=page,
            per_page=per_page,
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({
        "dealerships": [dealership_dict(d) for d in items],
        "pagination": pagination(total, page, per_page),
    })


@dealerships_bp.route("", methods=["POST"])
@login_required
def create_dealership():
    try:
        dealership = dealership_service.create_dealership(current_user, json_body())
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    db.session.commit()
    return jsonify({"dealership": dealership_dict(dealership, detail=True)}), 201


# ─── Aggregated views ────────────────────────────────────────────

@dealerships_bp.route("/pipeline")
@login_required
def pipeline():
    try:
        filters = pipeline_service.PipelineFilters.from_args(request.args)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    result = pipeline_service.dealership_pipeline(current_user, filters)
    return jsonify({
        "pipeline": grouped_dict(result["groups"], dealership_dict),
        "summary": result["summary"],
        "users": [user_ref(u) for u in result["users"]],
    })


@dealerships_bp.route("/board")
@login_required
def status_board():
    try:
        filters = pipeline_service.PipelineFilters.from_args(request.args)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    result = pipeline_service.dealership_status_board(current_user, filters)
    return jsonify({
        "board": grouped_dict(result["groups"], dealership_dict),
        "summary": result["summary"],
    })


@dealerships_bp.route("/closed")
@login_required
def closed():
    result = pipeline_service.closed_dealerships(
        current_user, state=request.args.get("state")
    )
    return jsonify({
        "dealerships": [dealership_dict(d, detail=True) for d in result["dealerships"]],
        "states": result["states"],
        "summary": result["summary"],
    })


# ─── Single record ───────────────────────────────────────────────

@dealerships_bp.route("/<dealership_id>", methods=["GET"])
@login_required
def get_dealership(dealership_id):
    dealership = _load(dealership_id)
    if dealership is None:
        return jsonify({"error": "Dealership not found"}), 404
    activities = dealership.activities.limit(RECENT_ACTIVITY_LIMIT).all()
    return jsonify({
        "dealership": dealership_dict(dealership, detail=True),
        "deal_metrics": dealership_service.deal_metrics(dealership),
        "activities": [activity_dict(a) for a in activities],
    })


@dealerships_bp.route("/<dealership_id>", methods=["PUT"])
@login_required
def update_dealership(dealership_id):
    dealership = _load(dealership_id)
    if dealership is None:
        return jsonify({"error": "Dealership not found"}), 404
    try:
        dealership_service.update_dealership(current_user, dealership, json_body())
    except ValueError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    db.session.commit()
    return jsonify({"dealership": dealership_dict(dealership, detail=True)})


@dealerships_bp.route("/<dealership_id>", methods=["DELETE"])
@login_required
def delete_dealership(dealership_id):
    dealership = _load(dealership_id)
    if dealership is None:
        return jsonify({"error": "Dealership not found"}), 404
    try:
        dealership_service.delete_dealership(dealership, user=current_user)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    db.session.commit()
    return jsonify({"success": True})
