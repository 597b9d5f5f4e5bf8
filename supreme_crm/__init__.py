import os
import logging

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from werkzeug.security import generate_password_hash

from supreme_crm.config import config_by_name
from supreme_crm.extensions import db, migrate, login_manager, csrf, limiter


def create_app(config_name=None):
    """Build the app for "development", "testing" or "production".

    Defaults to $FLASK_ENV, then "development".
    """
    config_name = config_name or os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    if not app.testing:
        try:
            config_by_name[config_name].validate()
        except RuntimeError as exc:
            app.logger.warning("Configuration incomplete: %s", exc)

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    # Alembic autogenerate needs every model imported
    with app.app_context():
        from supreme_crm import models  # noqa: F401

    from supreme_crm.blueprints.auth import auth_bp
    from supreme_crm.blueprints.dealerships import dealerships_bp
    from supreme_crm.blueprints.deals import deals_bp
    from supreme_crm.blueprints.prospects import prospects_bp
    from supreme_crm.blueprints.leads import leads_bp
    from supreme_crm.blueprints.contacts import contacts_bp
    from supreme_crm.blueprints.activities import activities_bp
    from supreme_crm.blueprints.analytics import analytics_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(dealerships_bp)
    app.register_blueprint(deals_bp)
    app.register_blueprint(prospects_bp)
    app.register_blueprint(leads_bp)
    app.register_blueprint(contacts_bp)
    app.register_blueprint(activities_bp)
    app.register_blueprint(analytics_bp)

    # The JSON API is CSRF-exempt: the session cookie is SameSite=Lax and
    # clients send JSON / multipart, not browser forms
    api_blueprints = (
        dealerships_bp, deals_bp, contacts_bp, activities_bp,
        prospects_bp, leads_bp, analytics_bp,
    )
    for bp in api_blueprints:
        csrf.exempt(bp)

    @app.route("/")
    def index():
        return jsonify({"name": "Supreme One CRM", "status": "ok"})

    register_error_handlers(app)

    register_cli(app)

    @app.after_request
    def add_security_headers(response):
        headers = response.headers
        headers["X-Content-Type-Options"] = "nosniff"
        headers["X-Frame-Options"] = "DENY"
        headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        headers["X-XSS-Protection"] = "1; mode=block"
        headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=()"
        # JSON only: nothing to load, nothing to frame
        headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none'; base-uri 'none';"
        )
        if not app.debug:
            headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_error_handlers(app):
    """JSON bodies for every error the API can return."""
    from supreme_crm.services.access import AccessDenied

    @app.errorhandler(AccessDenied)
    def access_denied(e):
        db.session.rollback()
        return jsonify({"error": str(e) or "Forbidden"}), 403

    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({"error": e.description or e.name}), e.code

    @app.errorhandler(413)
    def too_large(e):
        limit_mb = app.config.get("LEAD_UPLOAD_MAX_MB")
        return jsonify({"error": f"Upload exceeds the {limit_mb} MB limit."}), 413

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({"error": "Too many requests. Try again shortly."}), 429

    @app.errorhandler(500)
    def server_error(e):
        db.session.rollback()
        app.logger.exception("Unhandled error")
        return jsonify({"error": "Internal server error"}), 500


def register_cli(app):
    """flask seed-admin | create-user | rescore-prospects"""

    @app.cli.command("seed-admin")
    @click.option("--email", default="admin@supremeone.local", help="Admin email")
    @click.option("--password", default="change-me-now", help="Admin password")
    def seed_admin(email, password):
        """Create the admin user and a demo territory.

        Usage:
            flask seed-admin
            flask seed-admin --email admin@example.com --password s3cret
        """
        from supreme_crm.models.enums import Role
        from supreme_crm.models.territory import Territory
        from supreme_crm.models.user import User

        territory = Territory.query.filter_by(name="Demo Territory").first()
        if territory is None:
            territory = Territory(name="Demo Territory")
            db.session.add(territory)
            db.session.flush()
            click.echo(f"Created territory: {territory.name}")

        if User.query.filter_by(email=email.lower()).first():
            click.echo(f"{email} exists, left unchanged")
        else:
            db.session.add(User(
                email=email.lower(),
                password_hash=generate_password_hash(password),
                name="Admin",
                role=Role.ADMIN.value,
                territory_id=territory.id,
            ))
            click.echo(f"Created ADMIN {email}")

        db.session.commit()

        click.echo(
            f"Sign in with POST {app.config['APP_BASE_URL']}/auth/login "
            f"as {email} (territory {territory.name}, id {territory.id})"
        )

    @app.cli.command("create-user")
    @click.option("--email", required=True, help="User email")
    @click.option("--password", required=True, help="User password")
    @click.option(
        "--role",
        type=click.Choice(["ADMIN", "USER"], case_sensitive=False),
        default="USER",
        help="Role",
    )
    @click.option("--territory", default=None, help="Territory name (created if missing)")
    def create_user(email, password, role, territory):
        """Create a CRM user, optionally in a territory."""
        from supreme_crm.models.territory import Territory
        from supreme_crm.models.user import User

        email = email.lower().strip()
        if User.query.filter_by(email=email).first():
            raise click.ClickException(f"User already exists: {email}")
        if len(password) < 8:
            raise click.ClickException("Password must be at least 8 characters.")

        territory_obj = None
        if territory:
            territory_obj = Territory.query.filter_by(name=territory).first()
            if territory_obj is None:
                territory_obj = Territory(name=territory)
                db.session.add(territory_obj)
                db.session.flush()
                click.echo(f"Created territory: {territory}")

        user = User(
            email=email,
            password_hash=generate_password_hash(password),
            name=email.split("@")[0],
            role=role.upper(),
            territory_id=territory_obj.id if territory_obj else None,
        )
        db.session.add(user)
        db.session.commit()
        click.echo(f"Created {user.role} user: {email} (id: {user.id})")

    @app.cli.command("rescore-prospects")
    @click.option("--user", "user_email", default=None, help="Only this user's prospects.")
    @click.option("--dry-run", is_flag=True, help="Show how many scores would change without saving.")
    def rescore_prospects(user_email, dry_run):
        """Recompute lead scores for all prospects.

        Usage:
            flask rescore-prospects
            flask rescore-prospects --user rep@example.com --dry-run
        """
        from supreme_crm.models.user import User
        from supreme_crm.services.prospect_service import rescore_all

        user = None
        if user_email:
            user = User.query.filter_by(email=user_email.lower()).first()
            if user is None:
                raise click.ClickException(f"No user with email {user_email}")

        if dry_run:
            click.echo("[DRY RUN] No scores will be saved.\n")
        scored, changed = rescore_all(user=user, dry_run=dry_run)
        if not dry_run:
            db.session.commit()
        click.echo(
            f"{'[DRY RUN] ' if dry_run else ''}Done: {scored} prospect(s) scored, "
            f"{changed} score(s) {'would change' if dry_run else 'changed'}."
        )
