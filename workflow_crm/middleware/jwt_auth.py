"""
JWT Auth Middleware: parses the Bearer token and loads ``g.actor``.

Every workflow operation is performed on behalf of a verified (user id,
role) pair.  The role is always re-read from the ``users`` row so a role
change takes effect without waiting for the token to expire.
"""

import logging

import jwt as pyjwt
from flask import g, request

from workflow_crm.models import db
from workflow_crm.models.auth import User
from workflow_crm.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.actor = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return  # require_actor decides

        token = auth_header[7:]
        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired access token", extra={"path": path})
            return
        except pyjwt.InvalidTokenError:
            logger.info("Invalid access token", extra={"path": path})
            return

        try:
            user_id = int(payload.get("sub"))
        except (TypeError, ValueError):
            return
        user = db.session.get(User, user_id)
        if user is None or not user.is_active:
            return
        g.actor = user
