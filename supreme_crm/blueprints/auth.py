"""Auth blueprint: /auth/*

Session login for the JSON API. Accepts a form post or a JSON body.
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf
from werkzeug.security import check_password_hash

from supreme_crm.extensions import db, limiter
from supreme_crm.models.audit import AuditEvent
from supreme_crm.models.user import User
from supreme_crm.serializers import user_dict

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _credentials():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = request.form
    email = (data.get("email") or "").lower().strip()
    password = data.get("password") or ""
    remember = bool(data.get("remember"))
    return email, password, remember


# ──────────────────────────────────────────────
# GET /auth/csrf-token
# ──────────────────────────────────────────────

@auth_bp.route("/csrf-token")
def csrf_token():
    """Token for the X-CSRFToken header on login / logout."""
    return jsonify({"csrf_token": generate_csrf()})


# ──────────────────────────────────────────────
# POST /auth/login
# ──────────────────────────────────────────────

@auth_bp.route("/login", methods=["POST"])
@limiter.limit("10 per minute", methods=["POST"])
def login():
    """Email + password login. Returns the user on success."""
    if current_user.is_authenticated:
        return jsonify({"user": user_dict(current_user)})

    email, password, remember = _credentials()
    if not email or not password:
        return jsonify({"error": "Email and password are required."}), 400

    user = User.query.filter_by(email=email).first()
    if user is None or not check_password_hash(user.password_hash, password):
        return jsonify({"error": "Invalid email or password."}), 401

    if not user.is_active:
        return jsonify({"error": "Your account has been deactivated."}), 403

    login_user(user, remember=remember)
    db.session.add(AuditEvent(
        actor_user_id=user.id,
        action="user.logged_in",
        subject_id=user.id,
        metadata_={"ip": request.remote_addr},
    ))
    db.session.commit()
    return jsonify({"user": user_dict(user)})


# ──────────────────────────────────────────────
# POST /auth/logout
# ──────────────────────────────────────────────

@auth_bp.route("/logout", methods=["POST"])
def logout():
    logout_user()
    return jsonify({"success": True})


# ──────────────────────────────────────────────
# GET /auth/me
# ──────────────────────────────────────────────

@auth_bp.route("/me")
@login_required
def me():
    return jsonify({"user": user_dict(current_user)})
