"""Analytics blueprint: /api/analytics

  GET /api/analytics?period=30   dashboard figures for the caller's scope
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from supreme_crm.serializers import dealership_dict, deal_dict
from supreme_crm.services import pipeline_service

analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/analytics")


@analytics_bp.route("", methods=["GET"])
@login_required
def analytics():
    try:
        result = pipeline_service.crm_analytics(
            current_user, period_days=request.args.get("period", 30)
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    result["top_dealerships"] = [dealership_dict(d) for d in result["top_dealerships"]]
    result["recent_wins"] = [deal_dict(d) for d in result["recent_wins"]]
    return jsonify(result)
