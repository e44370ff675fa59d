"""
Solar Structure Workflow CRM
User Blueprint: staff accounts and role lookups.
"""

from flask import Blueprint, request

from workflow_crm.auth import current_actor, require_actor, require_roles
from workflow_crm.blueprints import json_body
from workflow_crm.services import user_service
from workflow_crm.services.permission import get_role_permissions
from workflow_crm.utils.helpers import parse_bool
from workflow_crm.utils.errors import api_success

user_bp = Blueprint("user_bp", __name__, url_prefix="/api/v1/users")


@user_bp.route("", methods=["GET"])
@require_actor
def list_users():
    rows = user_service.list_users(include_inactive=parse_bool(request.args.get("include_inactive")))
    return api_success([u.to_dict() for u in rows], "Users retrieved")


@user_bp.route("/me", methods=["GET"])
@require_actor
def me():
    actor = current_actor()
    return api_success({**actor.to_dict(), "permissions": get_role_permissions(actor.role)}, "Profile retrieved")


@user_bp.route("/role/<role>", methods=["GET"])
@require_actor
def by_role(role):
    rows = user_service.list_users_by_role(role)
    return api_success([u.to_dict() for u in rows], "Users retrieved")


@user_bp.route("/by-status/<status>", methods=["GET"])
@require_actor
def by_status(status):
    rows = user_service.list_users_by_status(status)
    return api_success([u.to_dict() for u in rows], "Users retrieved")


@user_bp.route("/<int:user_id>", methods=["GET"])
@require_actor
def get_user(user_id):
    return api_success(user_service.get_user(user_id).to_dict(), "User retrieved")


@user_bp.route("", methods=["POST"])
@require_roles("superadmin", "director")
def create_user():
    user = user_service.create_user(json_body(), current_actor())
    return api_success(user.to_dict(), "User created successfully", status=201)


@user_bp.route("/<int:user_id>", methods=["PUT"])
@require_actor
def update_user(user_id):
    user = user_service.update_user(user_id, json_body(), current_actor())
    return api_success(user.to_dict(), "User updated successfully")


@user_bp.route("/<int:user_id>", methods=["DELETE"])
@require_roles("superadmin")
def delete_user(user_id):
    user_service.delete_user(user_id, current_actor())
    return api_success({"id": user_id}, "User deleted successfully")
