"""
Solar Structure Workflow CRM
Flask Application Factory.

Usage:
    from workflow_crm import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from workflow_crm.config import config
from workflow_crm.models import db
from workflow_crm.middleware.logging_config import configure_logging
from workflow_crm.middleware.timing import init_request_timing
from workflow_crm.middleware.rate_limiter import init_rate_limits
from workflow_crm.middleware.jwt_auth import init_jwt_middleware
from workflow_crm.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def create_app(config_name=None, overrides=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
        overrides: Optional mapping applied on top of the config class
                   (tests use it for file-backed databases and switches).

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    config_cls = config[config_name]
    app.config.from_object(config_cls() if config_name == "production" else config_cls)
    if overrides:
        app.config.update(overrides)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── JWT auth middleware (sets g.actor) ───────────────────────────────
    init_jwt_middleware(app)

    # ── Request guards (input length) ────────────────────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    # ── Import all models so Alembic can detect them ─────────────────────
    from workflow_crm.models import auth as _auth_models                 # noqa: F401
    from workflow_crm.models import client as _client_models             # noqa: F401
    from workflow_crm.models import enquiry as _enquiry_models           # noqa: F401
    from workflow_crm.models import workflow as _workflow_models         # noqa: F401
    from workflow_crm.models import finance as _finance_models           # noqa: F401
    from workflow_crm.models import communication as _communication_models  # noqa: F401
    from workflow_crm.models import notification as _notification_models   # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if config_name != "production":
        with app.app_context():
            db.create_all()
            app.logger.info("db.create_all() completed successfully")

    # ── Notifications (durable store + realtime channel) ─────────────────
    from workflow_crm.services.notification import init_notifications
    init_notifications(app)

    # ── Blueprints ───────────────────────────────────────────────────────
    from workflow_crm.blueprints import register_error_handlers
    from workflow_crm.blueprints.enquiry_bp import enquiry_bp
    from workflow_crm.blueprints.design_bp import design_bp
    from workflow_crm.blueprints.production_bp import production_bp
    from workflow_crm.blueprints.dispatch_bp import dispatch_bp
    from workflow_crm.blueprints.notification_bp import notification_bp
    from workflow_crm.blueprints.dashboard_bp import dashboard_bp
    from workflow_crm.blueprints.reports_bp import reports_bp
    from workflow_crm.blueprints.user_bp import user_bp
    from workflow_crm.blueprints.client_bp import client_bp
    from workflow_crm.blueprints.finance_bp import finance_bp
    from workflow_crm.blueprints.communication_bp import communication_bp
    from workflow_crm.blueprints.health_bp import health_bp

    app.register_blueprint(enquiry_bp)
    app.register_blueprint(design_bp)
    app.register_blueprint(production_bp)
    app.register_blueprint(dispatch_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(user_bp)
    app.register_blueprint(client_bp)
    app.register_blueprint(finance_bp)
    app.register_blueprint(communication_bp)
    app.register_blueprint(health_bp)

    register_error_handlers(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-demo")
    @click.option("--password", default="password123", show_default=True)
    def seed_demo_cmd(password):
        """Seed one demo account per role plus two clients."""
        from workflow_crm.services.seed_service import seed_demo_data
        created = seed_demo_data(password)
        click.echo(f"Seeded {created['users']} users, {created['clients']} clients.")

    @app.cli.command("issue-token")
    @click.argument("email")
    def issue_token_cmd(email):
        """Print a bearer token for an existing user (local tooling only)."""
        from workflow_crm.models.auth import User
        from workflow_crm.services.jwt_service import generate_access_token
        user = User.query.filter_by(email=email).first()
        if user is None:
            raise click.ClickException(f"No user with email {email}")
        click.echo(generate_access_token(user.id, user.role))

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, f"Not found: {request.path}")

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(413)
    def too_large(e):
        return api_error(E.VALIDATION_INVALID, "Request body too large", status=413)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.VALIDATION_INVALID, f"Too many requests: {e.description}", status=429)

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
