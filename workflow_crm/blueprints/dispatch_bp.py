"""
Solar Structure Workflow CRM
Dispatch Blueprint.
"""

from flask import Blueprint

from workflow_crm.auth import current_actor, require_actor
from workflow_crm.blueprints import json_body
from workflow_crm.services import dispatch_service
from workflow_crm.utils.errors import api_success

dispatch_bp = Blueprint("dispatch_bp", __name__, url_prefix="/api/v1/dispatch")


@dispatch_bp.route("/enquiry/<int:enquiry_id>", methods=["GET"])
@require_actor
def get_for_enquiry(enquiry_id):
    work = dispatch_service.get_dispatch_for_enquiry(enquiry_id, current_actor())
    return api_success(work.to_dict() if work else None,
                       "Dispatch work retrieved" if work else "No dispatch work found for this enquiry")


@dispatch_bp.route("/assign", methods=["POST"])
@require_actor
def assign():
    data = json_body()
    work = dispatch_service.assign_dispatch(
        data.get("enquiry_id"), data.get("dispatch_assigned_to"), current_actor(),
        tracking_number=data.get("tracking_number"),
        dispatch_date=data.get("dispatch_date"),
        estimated_delivery_date=data.get("estimated_delivery_date"),
    )
    return api_success(work.to_dict(), "Assigned for dispatch successfully")


@dispatch_bp.route("/<int:dispatch_id>", methods=["PUT"])
@require_actor
def update(dispatch_id):
    work = dispatch_service.update_dispatch(dispatch_id, json_body(), current_actor())
    return api_success(work.to_dict(), "Dispatch work updated successfully")
