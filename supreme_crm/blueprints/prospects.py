"""Prospects blueprint: /api/prospects/*

Route Map:
  GET  /api/prospects                          List the caller's prospects
  POST /api/prospects                          Create
  POST /api/prospects/score                    Rescore (prospect_id | prospect_ids)
  GET  /api/prospects/<id>/score-history       Previous scores, newest first
  POST /api/prospects/<id>/interactions        Log an interaction
  GET  /api/prospects/<id>/appointments        Appointments, soonest first
  POST /api/prospects/<id>/appointments        Book an appointment
  POST /api/prospects/import                   CSV import (multipart "file")
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from supreme_crm.blueprints.common import json_body, page_args, pagination
from supreme_crm.blueprints.leads import read_upload
from supreme_crm.extensions import db
from supreme_crm.models.enums import ProspectStatus
from supreme_crm.models.prospect import Prospect
from supreme_crm.serializers import appointment_dict, interaction_dict, prospect_dict
from supreme_crm.services import lead_import, prospect_service
from supreme_crm.services.access import ensure_can_view_prospect

logger = logging.getLogger(__name__)

prospects_bp = Blueprint("prospects", __name__, url_prefix="/api/prospects")


def _load(prospect_id):
    prospect = db.session.get(Prospect, prospect_id)
    if prospect is not None:
        ensure_can_view_prospect(current_user, prospect)
    return prospect


@prospects_bp.route("", methods=["GET"])
@login_required
def list_prospects():
    try:
        page, per_page = page_args()
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    query = prospect_service.visible_prospects(current_user)
    status = request.args.get("status")
    if status:
        parsed = ProspectStatus.parse(status)
        if parsed is None:
            return jsonify({"error": f"Invalid status '{status}'"}), 400
        query = query.filter(Prospect.status == parsed.value)
    search = (request.args.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(db.or_(
            Prospect.first_name.ilike(pattern),
            Prospect.last_name.ilike(pattern),
            Prospect.company.ilike(pattern),
            Prospect.email.ilike(pattern),
        ))

    total = query.count()
    items = (
        query.order_by(Prospect.lead_score.desc(), Prospect.created_at.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return jsonify({
        "prospects": [prospect_dict(p) for p in items],
        "pagination": pagination(total, page, per_page),
    })


@prospects_bp.route("", methods=["POST"])
@login_required
def create_prospect():
    try:
        prospect = prospect_service.create_prospect(current_user, json_body())
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    db.session.commit()
    return jsonify({"prospect": prospect_dict(prospect)}), 201


@prospects_bp.route("/score", methods=["POST"])
@login_required
def score():
    """Recompute lead scores for one or many prospects."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    if data.get("prospect_id"):
        ids = [data["prospect_id"]]
    else:
        ids = data.get("prospect_ids") or []
    if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
        return jsonify({"error": "prospect_ids must be a list of ids"}), 400

    try:
        results = prospect_service.rescore_prospects(current_user, ids)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    db.session.commit()
    return jsonify({"success": True, "prospects": results})


@prospects_bp.route("/<prospect_id>/score-history")
@login_required
def score_history(prospect_id):
    prospect = _load(prospect_id)
    if prospect is None:
        return jsonify({"error": "Prospect not found"}), 404
    return jsonify({
        "prospect_id": prospect.id,
        "lead_score": prospect.lead_score,
        "history": prospect_service.score_history(prospect.id),
    })


@prospects_bp.route("/<prospect_id>/interactions", methods=["POST"])
@login_required
def add_interaction(prospect_id):
    prospect = _load(prospect_id)
    if prospect is None:
        return jsonify({"error": "Prospect not found"}), 404
    try:
        data = json_body()
        interaction = prospect_service.log_interaction(
            current_user, prospect, data.get("type"), note=data.get("note")
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    db.session.commit()
    return jsonify({"interaction": interaction_dict(interaction)}), 201


@prospects_bp.route("/<prospect_id>/appointments", methods=["GET"])
@login_required
def list_appointments(prospect_id):
    prospect = _load(prospect_id)
    if prospect is None:
        return jsonify({"error": "Prospect not found"}), 404
    appointments = prospect_service.list_appointments(prospect)
    return jsonify({"appointments": [appointment_dict(a) for a in appointments]})


@prospects_bp.route("/<prospect_id>/appointments", methods=["POST"])
@login_required
def book_appointment(prospect_id):
    prospect = _load(prospect_id)
    if prospect is None:
        return jsonify({"error": "Prospect not found"}), 404
    try:
        appointment = prospect_service.schedule_appointment(
            current_user, prospect, json_body()
        )
    except ValueError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    db.session.commit()
    return jsonify({
        "appointment": appointment_dict(appointment),
        "prospect_status": prospect.status,
    }), 201


@prospects_bp.route("/import", methods=["POST"])
@login_required
def import_prospects():
    try:
        text = read_upload()
        results = lead_import.import_prospects(text, current_user)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    logger.info(
        f"Prospect CSV import by {current_user.id}: "
        f"{results['imported']} imported, {results['skipped']} skipped"
    )
    return jsonify({"success": True, "results": results})
