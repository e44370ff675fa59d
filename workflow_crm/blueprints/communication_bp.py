"""
Solar Structure Workflow CRM
Communication Log Blueprint.
"""

from flask import Blueprint

from workflow_crm.auth import current_actor, require_actor
from workflow_crm.blueprints import json_body
from workflow_crm.services import communication_service
from workflow_crm.utils.errors import api_success

communication_bp = Blueprint("communication_bp", __name__, url_prefix="/api/v1/communications")


@communication_bp.route("/enquiry/<int:enquiry_id>", methods=["GET"])
@require_actor
def list_for_enquiry(enquiry_id):
    rows = communication_service.list_logs(enquiry_id, current_actor())
    return api_success([log.to_dict() for log in rows], "Communication logs retrieved")


@communication_bp.route("", methods=["POST"])
@require_actor
def create():
    log = communication_service.create_log(json_body(), current_actor())
    return api_success(log.to_dict(), "Communication log created successfully", status=201)


@communication_bp.route("/<int:log_id>", methods=["PUT"])
@require_actor
def update(log_id):
    log = communication_service.update_log(log_id, json_body(), current_actor())
    return api_success(log.to_dict(), "Communication log updated successfully")


@communication_bp.route("/<int:log_id>", methods=["DELETE"])
@require_actor
def delete(log_id):
    communication_service.delete_log(log_id, current_actor())
    return api_success({"id": log_id}, "Communication log deleted successfully")
