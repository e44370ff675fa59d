"""
User Service: staff accounts, roles and workflow-status routing.
"""

import logging

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import or_

from workflow_crm.core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from workflow_crm.models import db
from workflow_crm.models.auth import ROLES, User
from workflow_crm.models.enquiry import ENQUIRY_STATUSES, Enquiry
from workflow_crm.services.permission import can_manage_user, check_capability, is_admin
from workflow_crm.utils.crypto import hash_password
from workflow_crm.utils.helpers import require_fields

logger = logging.getLogger(__name__)


def _normalize_email(email: str) -> str:
    try:
        return validate_email(email, check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": str(email)})


def _validate_role(role: str) -> str:
    if role not in ROLES:
        raise ValidationError(f"Unknown role: {role!r}", details={"role": f"must be one of {', '.join(ROLES)}"})
    return role


def _validate_workflow_status(value) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ValidationError("workflow_status must be a list", details={"workflow_status": str(value)})
    unknown = [s for s in value if s not in ENQUIRY_STATUSES]
    if unknown:
        raise ValidationError(f"Unknown workflow status(es): {', '.join(map(str, unknown))}",
                              details={"workflow_status": unknown})
    return list(dict.fromkeys(value))


def get_user_or_404(user_id) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError(resource="User", resource_id=user_id)
    return user


# ═══════════════════════════════════════════════════════════════
# User CRUD
# ═══════════════════════════════════════════════════════════════
def create_user(data: dict, actor) -> User:
    """Create a staff account. superadmin/director only, within their hierarchy."""
    check_capability(actor, "users", "create")
    require_fields(data, "name", "email", "password")
    role = _validate_role(data.get("role") or "salesman")
    if not can_manage_user(actor.role, role):
        raise AuthorizationError(f"Role '{actor.role}' may not create '{role}' users", actor_id=actor.id)

    email = _normalize_email(data["email"])
    if User.query.filter(db.func.lower(User.email) == email.lower()).first():
        raise ConflictError("User", "email", email)

    user = User(
        name=data["name"].strip(),
        email=email,
        password_hash=hash_password(data["password"]),
        role=role,
        workflow_status=_validate_workflow_status(data.get("workflow_status")),
        avatar_url=data.get("avatar_url"),
    )
    db.session.add(user)
    db.session.commit()
    logger.info("User %s created with role %s", user.email, role, extra={"actor_id": actor.id})
    return user


def get_user(user_id) -> User:
    return get_user_or_404(user_id)


def list_users(include_inactive: bool = False) -> list[User]:
    q = User.query
    if not include_inactive:
        q = q.filter_by(is_active=True)
    return q.order_by(User.created_at.desc(), User.id.desc()).all()


def list_users_by_role(role: str) -> list[User]:
    _validate_role(role)
    return User.query.filter_by(role=role, is_active=True).order_by(User.name.asc()).all()


def list_users_by_status(status: str) -> list[User]:
    """Active users whose workflow_status includes ``status``."""
    if status not in ENQUIRY_STATUSES:
        raise ValidationError(f"Unknown status: {status!r}", details={"status": status})
    users = User.query.filter_by(is_active=True).order_by(User.name.asc()).all()
    return [u for u in users if u.handles_status(status)]


def update_user(user_id, data: dict, actor) -> User:
    """
    Self-service or admin edit.

    Only superadmin/director may change a role, and never to or from a role
    above their own place in the hierarchy.
    """
    user = get_user_or_404(user_id)
    if user.id != actor.id and not is_admin(actor):
        raise AuthorizationError("You do not have permission to update this user", actor_id=actor.id)

    if data.get("role") and data["role"] != user.role:
        new_role = _validate_role(data["role"])
        if not is_admin(actor):
            raise AuthorizationError("You do not have permission to change user role", actor_id=actor.id)
        if not (can_manage_user(actor.role, user.role) and can_manage_user(actor.role, new_role)):
            raise AuthorizationError(f"Role '{actor.role}' may not assign '{new_role}'", actor_id=actor.id)
        user.role = new_role

    if data.get("name"):
        user.name = data["name"].strip()
    if data.get("email"):
        email = _normalize_email(data["email"])
        clash = User.query.filter(db.func.lower(User.email) == email.lower(), User.id != user.id).first()
        if clash:
            raise ConflictError("User", "email", email)
        user.email = email
    if "avatar_url" in data:
        user.avatar_url = data["avatar_url"]
    if "workflow_status" in data:
        user.workflow_status = _validate_workflow_status(data["workflow_status"])
    if data.get("password"):
        user.password_hash = hash_password(data["password"])
    if "is_active" in data and is_admin(actor) and user.id != actor.id:
        user.is_active = bool(data["is_active"])

    db.session.commit()
    return user


def delete_user(user_id, actor) -> None:
    """Hard delete; superadmin only, never yourself, never while enquiries reference the user."""
    check_capability(actor, "users", "delete")
    user = get_user_or_404(user_id)
    if user.id == actor.id:
        raise ValidationError("You cannot delete your own account", details={"user_id": user.id})
    referenced = Enquiry.query.filter(or_(
        Enquiry.enquiry_by_id == user.id,
        Enquiry.current_assigned_person_id == user.id,
    )).count()
    if referenced:
        raise ValidationError(
            "User owns or is assigned enquiries; reassign them or deactivate the user instead",
            details={"enquiries": referenced},
        )
    db.session.delete(user)
    db.session.commit()
    logger.info("User %s deleted", user.email, extra={"actor_id": actor.id})
