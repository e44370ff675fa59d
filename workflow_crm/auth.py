"""
Solar Structure Workflow CRM
Request-level authorization decorators.

Provides:
    - require_actor: the route needs a verified actor (``g.actor``)
    - require_roles: the verified actor must hold one of the given roles

``g.actor`` is populated by ``workflow_crm.middleware.jwt_auth``.  Record-level
rules (who may see a given enquiry, who may complete a given design) live in
the service layer, not here.
"""

import functools
import logging

from flask import g, request

from workflow_crm.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def current_actor():
    return getattr(g, "actor", None)


def require_actor(f):
    """Decorator: reject the request with 401 unless an actor is verified."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if current_actor() is None:
            return api_error(E.UNAUTHORIZED, "Authentication required")
        return f(*args, **kwargs)
    return decorated


def require_roles(*roles: str):
    """
    Decorator: require one of ``roles``.

    Usage:
        @require_actor
        @require_roles("superadmin")
        def delete_user(user_id): ...
    """
    allowed = frozenset(roles)

    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            actor = current_actor()
            if actor is None:
                return api_error(E.UNAUTHORIZED, "Authentication required")
            if actor.role not in allowed:
                logger.warning(
                    "Access denied: role '%s' tried to access %s",
                    actor.role, request.path,
                    extra={"actor_id": actor.id},
                )
                return api_error(E.FORBIDDEN, "Insufficient permissions")
            return f(*args, **kwargs)
        return decorated
    return decorator
