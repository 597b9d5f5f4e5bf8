"""Deals blueprint: /api/deals/*

Route Map:
  GET    /api/deals                   List (dealership_id, stage, owner_id, page)
  GET    /api/deals?view=pipeline     Open deals grouped by stage
  POST   /api/deals                   Create
  GET    /api/deals/<id>              Detail
  PUT    /api/deals/<id>              Update submitted fields
  PATCH  /api/deals/<id>              Quick stage change
  DELETE /api/deals/<id>              Delete with activities / tasks
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from supreme_crm.blueprints.common import json_body, page_args, pagination
from supreme_crm.extensions import db
from supreme_crm.models.deal import Deal
from supreme_crm.serializers import deal_dict, grouped_dict
from supreme_crm.services import deal_service, pipeline_service
from supreme_crm.services.access import ensure_can_view_deal

deals_bp = Blueprint("deals", __name__, url_prefix="/api/deals")


def _load(deal_id):
    deal = db.session.get(Deal, deal_id)
    if deal is not None:
        ensure_can_view_deal(current_user, deal)
    return deal


def _pipeline_view():
    try:
        filters = pipeline_service.PipelineFilters.from_args(request.args)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    result = pipeline_service.deal_pipeline(current_user, filters)
    return jsonify({
        "pipeline": grouped_dict(result["groups"], deal_dict),
        "summary": result["summary"],
    })


@deals_bp.route("", methods=["GET"])
@login_required
def list_deals():
    if request.args.get("view") == "pipeline":
        return _pipeline_view()
    try:
        page, per_page = page_args()
        items, total = deal_service.list_deals(
            current_user,
            dealership_id=request.args.get("dealership_id"),
            stage=request.args.get("stage"),
            owner_id=request.args.get("owner_id"),
            sort=request.args.get("sort", "created_at"),
            order=request.args.get("order", "desc"),
            page=page,
            per_page=per_page,
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({
        "deals": [deal_dict(d) for d in items],
        "pagination": pagination(total, page, per_page),
    })


@deals_bp.route("", methods=["POST"])
@login_required
def create_deal():
    try:
        deal = deal_service.create_deal(current_user, json_body())
    except ValueError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    db.session.commit()
    return jsonify({"deal": deal_dict(deal)}), 201


@deals_bp.route("/<deal_id>", methods=["GET"])
@login_required
def get_deal(deal_id):
    deal = _load(deal_id)
    if deal is None:
        return jsonify({"error": "Deal not found"}), 404
    return jsonify({"deal": deal_dict(deal)})


@deals_bp.route("/<deal_id>", methods=["PUT"])
@login_required
def update_deal(deal_id):
    deal = _load(deal_id)
    if deal is None:
        return jsonify({"error": "Deal not found"}), 404
    try:
        deal_service.update_deal(current_user, deal, json_body())
    except ValueError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    db.session.commit()
    return jsonify({"deal": deal_dict(deal)})


@deals_bp.route("/<deal_id>", methods=["PATCH"])
@login_required
def change_stage(deal_id):
    deal = _load(deal_id)
    if deal is None:
        return jsonify({"error": "Deal not found"}), 404
    try:
        data = json_body()
        deal_service.change_stage(
            current_user, deal, data.get("stage"), lost_reason=data.get("lost_reason")
        )
    except ValueError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    db.session.commit()
    return jsonify({"deal": deal_dict(deal)})


@deals_bp.route("/<deal_id>", methods=["DELETE"])
@login_required
def delete_deal(deal_id):
    deal = _load(deal_id)
    if deal is None:
        return jsonify({"error": "Deal not found"}), 404
    deal_service.delete_deal(deal, user=current_user)
    db.session.commit()
    return jsonify({"success": True})
