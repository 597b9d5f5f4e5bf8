"""Leads blueprint: /api/leads/*

  POST /api/leads/upload   CSV lead import (multipart "file",
                           optional assign_to_territory=true)
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from supreme_crm.services import lead_import

leads_bp = Blueprint("leads", __name__, url_prefix="/api/leads")


def read_upload(field="file"):
    """Decoded text of the uploaded CSV.

    Raises:
        ValueError: No file, an empty file, or bytes that are not UTF-8 / Latin-1.
    """
    upload = request.files.get(field)
    if upload is None or not upload.filename:
        raise ValueError("No file provided")
    raw = upload.read()
    if not raw.strip():
        raise ValueError("The uploaded file is empty")
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


@leads_bp.route("/upload", methods=["POST"])
@login_required
def upload():
    assign = (request.form.get("assign_to_territory") or "").lower() == "true"
    try:
        text = read_upload()
        results = lead_import.import_leads(
            text, current_user, assign_to_territory=assign
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({
        "success": True,
        "message": (
            f"Imported {results['created']} leads. "
            f"{results['duplicates']} duplicates skipped."
        ),
        "results": results,
    })
