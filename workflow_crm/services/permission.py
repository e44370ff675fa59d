"""
Role-Based Access Control (RBAC) Service

Static role → resource → action table.  Record-level visibility (which
enquiries an actor can see) lives in ``enquiry_access``; this module only
answers "may this role perform this action on this kind of resource".

Usage:
    from workflow_crm.services.permission import check_capability, has_capability

    # Raises AuthorizationError if not allowed
    check_capability(actor, "quotations", "create")

    # Boolean check
    if has_capability("designer", "clients", "view"):
        ...
"""

from workflow_crm.core.exceptions import AuthorizationError
from workflow_crm.models.auth import ADMIN_ROLES, ROLES

RESOURCES = (
    "dashboard", "enquiries", "quotations", "invoices", "clients",
    "reports", "kanban", "tasks", "users",
)
ACTIONS = ("view", "create", "edit", "delete")

_ALL = frozenset(ACTIONS)
_VCE = frozenset({"view", "create", "edit"})
_VE = frozenset({"view", "edit"})
_V = frozenset({"view"})
_NONE = frozenset()

PERMISSION_MATRIX: dict[str, dict[str, frozenset]] = {
    "superadmin": {resource: _ALL for resource in RESOURCES},
    "director": {
        "dashboard": _VCE, "enquiries": _VCE, "quotations": _VCE,
        "invoices": _VCE, "clients": _VCE, "reports": _V,
        "kanban": _VCE, "tasks": _VE, "users": _VCE,
    },
    "salesman": {
        "dashboard": _VCE, "enquiries": _VCE, "quotations": _VCE,
        "invoices": _VCE, "clients": _VCE, "reports": _V,
        "kanban": _VCE, "tasks": _VE, "users": _NONE,
    },
    "designer": {
        "dashboard": _V, "enquiries": _VE, "quotations": _NONE,
        "invoices": _NONE, "clients": _V, "reports": _NONE,
        "kanban": _VE, "tasks": _VE, "users": _NONE,
    },
    "production": {
        "dashboard": _V, "enquiries": _VE, "quotations": _NONE,
        "invoices": _NONE, "clients": _NONE, "reports": _V,
        "kanban": _VE, "tasks": _VE, "users": _NONE,
    },
    "purchase": {
        "dashboard": _V, "enquiries": _VE, "quotations": _NONE,
        "invoices": _NONE, "clients": _NONE, "reports": _NONE,
        "kanban": _VE, "tasks": _VE, "users": _NONE,
    },
}

# Which target roles a manager role may create/edit/re-role
ROLE_HIERARCHY: dict[str, frozenset] = {
    "superadmin": frozenset(ROLES),
    "director": frozenset(ROLES) - {"superadmin"},
    "salesman": _NONE,
    "designer": _NONE,
    "production": _NONE,
    "purchase": _NONE,
}


def is_admin(actor) -> bool:
    return actor is not None and actor.role in ADMIN_ROLES


def has_capability(role: str, resource: str, action: str) -> bool:
    """True if ``role`` may perform ``action`` on ``resource``."""
    return action in PERMISSION_MATRIX.get(role, {}).get(resource, _NONE)


def check_capability(actor, resource: str, action: str) -> None:
    """
    Assert the actor's role grants ``action`` on ``resource``.

    Raises:
        AuthorizationError: If the role lacks the capability.
    """
    if not has_capability(actor.role, resource, action):
        raise AuthorizationError(
            f"Role '{actor.role}' may not {action} {resource}", actor_id=actor.id,
        )


def can_manage_user(manager_role: str, target_role: str) -> bool:
    return target_role in ROLE_HIERARCHY.get(manager_role, _NONE)


def get_role_permissions(role: str) -> dict[str, list[str]]:
    """Serialisable view of one role's row (sorted actions per resource)."""
    row = PERMISSION_MATRIX.get(role, {})
    return {resource: sorted(row.get(resource, _NONE)) for resource in RESOURCES}
