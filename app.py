import logging
import time

from flask import Flask, request, g, jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
from config import Config
from routes import health_bp, enrollment_actions_bp, consultations_bp, audit_bp

from models import db
from flask_migrate import Migrate
from utils.seed import seed_roles
from utils.auth_context import load_current_user
from utils.audit import log_error
from utils.errors import DomainError, RateLimitError
from utils.log_config import configure_logging

logger = logging.getLogger(__name__)


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    configure_logging(app)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(enrollment_actions_bp)
    app.register_blueprint(consultations_bp)
    app.register_blueprint(audit_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Seed default roles at startup (safe & idempotent)
    if app.config.get("SEED_ROLES_ON_STARTUP", True):
        with app.app_context():
            try:
                seed_roles()
            except SQLAlchemyError:
                db.session.rollback()
                logger.warning("Skipping role seeding, schema not ready (run `flask db upgrade`)")

    @app.before_request
    def _load_user():
        g.request_started_at = time.monotonic()
        load_current_user()

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_error_handlers(app)
    register_cli(app)

    return app

#-------------------------

def register_error_handlers(app):
    @app.errorhandler(DomainError)
    def _domain_error(exc):
        resp = jsonify(error=exc.message)
        resp.status_code = exc.status_code
        if isinstance(exc, RateLimitError):
            resp.headers["Retry-After"] = str(exc.retry_after)
        if exc.status_code == 401:
            resp.headers["WWW-Authenticate"] = "Bearer"
        return resp

    @app.errorhandler(Exception)
    def _unexpected(exc):
        if isinstance(exc, HTTPException):
            return jsonify(error=exc.description), exc.code

        db.session.rollback()
        logger.exception("Unhandled error in %s %s", request.method, request.path)
        user = getattr(g, "user", None)
        log_error(
            user.id if user else None,
            request.endpoint or request.path,
            exc,
            {"method": request.method, "path": request.path, "body": request.get_json(silent=True)},
        )
        return jsonify(error="An unexpected error occurred"), 500

#-------------------------
import click
from models.user import User, Role
from security.rate_limit import purge_expired_counters
from security.rbac import ADMIN, SPECIALIST, STUDENT
from security.session import create_session

def register_cli(app):
    @app.cli.command("create-user")
    @click.argument("email")
    @click.option("--full-name", default=None)
    @click.option("--role", type=click.Choice([STUDENT, SPECIALIST, ADMIN]), default=STUDENT)
    def create_user(email, full_name, role):
        """Create a user with one role (development identity stand-in)."""
        email = email.strip().lower()
        if User.query.filter_by(email=email).first():
            click.echo("User already exists")
            return

        user = User(email=email, full_name=full_name)
        user.roles.append(Role.query.filter_by(name=role).one())
        db.session.add(user)
        db.session.commit()
        click.echo(f"{user.email} created as {role} ({user.id})")

    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Promote a user to ADMIN by email (bootstrap)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return

        admin_role = Role.query.filter_by(name=ADMIN).first()
        if not admin_role:
            admin_role = Role(name=ADMIN)
            db.session.add(admin_role)
            db.session.commit()

        if admin_role not in user.roles:
            user.roles.append(admin_role)
            db.session.commit()

        click.echo(f"{user.email} promoted to ADMIN")

    @app.cli.command("issue-token")
    @click.argument("email")
    def issue_token(email):
        """Print a fresh bearer token for a user (development identity stand-in)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return
        click.echo(create_session(user.id))

    @app.cli.command("purge-rate-limits")
    def purge_rate_limits():
        """Delete rate limit counters for windows past the retention period."""
        n = purge_expired_counters()
        click.echo(f"Deleted {n} rate limit counter(s)")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
