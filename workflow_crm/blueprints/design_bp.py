"""
Solar Structure Workflow CRM
Design Blueprint: designer assignment, progress, completion and attachments.
"""

import logging

from flask import Blueprint, request

from workflow_crm.auth import current_actor, require_actor
from workflow_crm.blueprints import json_body
from workflow_crm.services import design_service
from workflow_crm.utils.errors import api_success

logger = logging.getLogger(__name__)

design_bp = Blueprint("design_bp", __name__, url_prefix="/api/v1/design")


@design_bp.route("/enquiry/<int:enquiry_id>", methods=["GET"])
@require_actor
def get_for_enquiry(enquiry_id):
    work = design_service.get_design_work_for_enquiry(enquiry_id, current_actor())
    return api_success(work.to_dict() if work else None,
                       "Design work retrieved" if work else "No design work found for this enquiry")


@design_bp.route("/assign", methods=["POST"])
@require_actor
def assign_designer():
    data = json_body()
    work = design_service.assign_designer(
        data.get("enquiry_id"), data.get("designer_id"), current_actor(),
        client_requirements=data.get("client_requirements"),
    )
    return api_success(work.to_dict(), "Design assigned successfully")


@design_bp.route("/tasks", methods=["GET"])
@require_actor
def designer_tasks():
    rows = design_service.list_designer_tasks(current_actor(), status=request.args.get("status"))
    return api_success([w.to_dict() for w in rows], "Design tasks retrieved")


@design_bp.route("/completed", methods=["GET"])
@require_actor
def completed_designs():
    rows = design_service.list_completed_designs(current_actor())
    return api_success([w.to_dict() for w in rows], "Completed designs retrieved")


@design_bp.route("/<int:design_work_id>", methods=["PUT"])
@require_actor
def update_design_work(design_work_id):
    work = design_service.update_design_work(design_work_id, json_body(), current_actor())
    return api_success(work.to_dict(), "Design work updated successfully")


@design_bp.route("/<int:design_work_id>/progress", methods=["PUT"])
@require_actor
def save_progress(design_work_id):
    data = json_body()
    work = design_service.save_design_progress(
        design_work_id, current_actor(),
        designer_notes=data.get("designer_notes"),
        client_requirements=data.get("client_requirements"),
    )
    return api_success(work.to_dict(), "Design progress saved")


@design_bp.route("/<int:design_work_id>/complete", methods=["POST"])
@require_actor
def complete(design_work_id):
    work = design_service.complete_design_and_return(
        design_work_id, current_actor(), note=json_body().get("note"),
    )
    return api_success(work.to_dict(), "Design completed and returned to salesperson")


@design_bp.route("/enquiry/<int:enquiry_id>/attachments", methods=["GET"])
@require_actor
def list_attachments(enquiry_id):
    rows = design_service.list_attachments(enquiry_id, current_actor())
    return api_success([a.to_dict() for a in rows], "Attachments retrieved")


@design_bp.route("/enquiry/<int:enquiry_id>/attachments", methods=["POST"])
@require_actor
def add_attachment(enquiry_id):
    attachment = design_service.add_attachment(enquiry_id, json_body(), current_actor())
    return api_success(attachment.to_dict(), "Attachment uploaded successfully", status=201)


@design_bp.route("/attachments/<int:attachment_id>", methods=["DELETE"])
@require_actor
def delete_attachment(attachment_id):
    design_service.delete_attachment(attachment_id, current_actor())
    return api_success({"id": attachment_id}, "Attachment deleted successfully")
