"""
Solar Structure Workflow CRM
Production Blueprint: workflow lifecycle and shop-floor tasks.
"""

import logging

from flask import Blueprint

from workflow_crm.auth import current_actor, require_actor
from workflow_crm.blueprints import json_body
from workflow_crm.services import production_service
from workflow_crm.utils.errors import api_success

logger = logging.getLogger(__name__)

production_bp = Blueprint("production_bp", __name__, url_prefix="/api/v1/production")


@production_bp.route("/enquiry/<int:enquiry_id>", methods=["GET"])
@require_actor
def get_for_enquiry(enquiry_id):
    workflow = production_service.get_workflow_for_enquiry(enquiry_id, current_actor())
    return api_success(workflow.to_dict(include_tasks=True) if workflow else None,
                       "Production workflow retrieved" if workflow else "No production workflow found")


@production_bp.route("/assign", methods=["POST"])
@require_actor
def assign():
    data = json_body()
    workflow = production_service.assign_production(
        data.get("enquiry_id"), data.get("production_lead_id"), current_actor(),
    )
    return api_success(workflow.to_dict(include_tasks=True), "Assigned to production successfully")


@production_bp.route("/<int:workflow_id>/start", methods=["POST"])
@require_actor
def start(workflow_id):
    workflow = production_service.start_production_workflow(workflow_id, current_actor())
    return api_success(workflow.to_dict(include_tasks=True), "Production started")


@production_bp.route("/<int:workflow_id>/notes", methods=["PUT"])
@require_actor
def update_notes(workflow_id):
    workflow = production_service.update_workflow_notes(workflow_id, json_body().get("notes"), current_actor())
    return api_success(workflow.to_dict(), "Production notes updated")


@production_bp.route("/<int:workflow_id>/complete", methods=["POST"])
@require_actor
def complete(workflow_id):
    workflow = production_service.complete_production_workflow(
        workflow_id, current_actor(), note=json_body().get("note"),
    )
    return api_success(workflow.to_dict(include_tasks=True), "Production completed")


@production_bp.route("/<int:workflow_id>/tasks", methods=["POST"])
@require_actor
def create_task(workflow_id):
    task = production_service.create_task(workflow_id, json_body(), current_actor())
    return api_success(task.to_dict(), "Task created successfully", status=201)


@production_bp.route("/tasks/<int:task_id>", methods=["PUT"])
@require_actor
def update_task(task_id):
    task = production_service.update_task(task_id, json_body(), current_actor())
    return api_success(task.to_dict(), "Task updated successfully")
