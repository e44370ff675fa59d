"""
Solar Structure Workflow CRM
Blueprint registry: shared request helpers and the domain error handlers.
"""

import logging

from flask import request
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from workflow_crm.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from workflow_crm.models import db
from workflow_crm.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def pagination_args(default_limit=200, max_limit=1000):
    """Read limit/offset query params.

    Query params:
        limit  max items (default 200, capped at max_limit)
        offset starting position (default 0)

    Returns:
        (limit, offset)
    """
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return max(limit, 1), offset


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def register_error_handlers(app):
    """Map the service exception hierarchy onto the standard error triad."""

    @app.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @app.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        code = E.VALIDATION_REQUIRED if "required" in error.details.values() else E.VALIDATION_INVALID
        return api_error(code, str(error), details=error.details)

    @app.errorhandler(AuthorizationError)
    def _handle_forbidden(error: AuthorizationError):
        logger.info("Forbidden: %s", error, extra={"actor_id": error.actor_id})
        return api_error(E.FORBIDDEN, str(error))

    @app.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error), details={error.field: error.value})

    @app.errorhandler(IntegrityError)
    def _handle_integrity(error: IntegrityError):
        db.session.rollback()
        logger.warning("Integrity error: %s", error.orig, extra={"event_type": "integrity_error"})
        return api_error(E.CONFLICT_STATE, "The change conflicts with existing data")

    @app.errorhandler(SQLAlchemyError)
    def _handle_database(error: SQLAlchemyError):
        db.session.rollback()
        logger.exception("Database error on %s", request.path)
        return api_error(E.DATABASE, "Database error")
