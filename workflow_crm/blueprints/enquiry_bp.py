"""
Solar Structure Workflow CRM
Enquiry Blueprint: CRUD plus the workflow transitions.

Endpoints (under /api/v1):
    GET    /enquiries                       role-filtered list (search, status, ...)
    POST   /enquiries                       create (status Enquiry)
    GET    /enquiries/worked                enquiries the actor raised or handled
    GET    /enquiries/my-tasks              assigned work grouped by status
    GET    /enquiries/<id>                  detail (direct access or history grant)
    PUT    /enquiries/<id>                  edit descriptive fields
    DELETE /enquiries/<id>                  superadmin only
    PUT    /enquiries/<id>/status           set_status
    PUT    /enquiries/<id>/assign           reassign without status change
    POST   /enquiries/<id>/confirm-order    BOQ → ReadyForProduction
    GET    /enquiries/<id>/transitions      strict-table neighbours
    GET    /enquiries/<id>/history          status history, newest first
    GET    /enquiries/<id>/notes            notes, newest first
    POST   /enquiries/<id>/notes            append a note
"""

import logging

from flask import Blueprint, current_app, request

from workflow_crm.auth import current_actor, require_actor
from workflow_crm.blueprints import json_body, pagination_args
from workflow_crm.services import enquiry_workflow as wf
from workflow_crm.utils.errors import api_success

logger = logging.getLogger(__name__)

enquiry_bp = Blueprint("enquiry_bp", __name__, url_prefix="/api/v1")


@enquiry_bp.route("/enquiries", methods=["GET"])
@require_actor
def list_enquiries():
    limit, offset = pagination_args()
    items, total = wf.list_enquiries(
        current_actor(),
        search=request.args.get("search"),
        status=request.args.get("status"),
        material_type=request.args.get("material_type"),
        client_id=request.args.get("client_id"),
        limit=limit,
        offset=offset,
    )
    return api_success([e.to_dict() for e in items], "Enquiries retrieved",
                       total=total, limit=limit, offset=offset)


@enquiry_bp.route("/enquiries", methods=["POST"])
@require_actor
def create_enquiry():
    enquiry = wf.create_enquiry(json_body(), current_actor())
    return api_success(enquiry.to_dict(), "Enquiry created successfully", status=201)


@enquiry_bp.route("/enquiries/worked", methods=["GET"])
@require_actor
def list_worked_enquiries():
    limit, offset = pagination_args()
    items, total = wf.list_worked_enquiries(
        current_actor(),
        search=request.args.get("search"),
        status=request.args.get("status"),
        limit=limit,
        offset=offset,
    )
    return api_success([e.to_dict() for e in items], "Worked enquiries retrieved",
                       total=total, limit=limit, offset=offset)


@enquiry_bp.route("/enquiries/my-tasks", methods=["GET"])
@require_actor
def my_tasks():
    grouped = wf.my_tasks(current_actor())
    data = {status: [e.to_dict() for e in rows] for status, rows in grouped.items()}
    return api_success(data, "Tasks retrieved")


@enquiry_bp.route("/enquiries/<int:enquiry_id>", methods=["GET"])
@require_actor
def get_enquiry(enquiry_id):
    enquiry = wf.get_enquiry(enquiry_id, current_actor())
    return api_success(enquiry.to_dict(include_history=True), "Enquiry retrieved")


@enquiry_bp.route("/enquiries/<int:enquiry_id>", methods=["PUT"])
@require_actor
def update_enquiry(enquiry_id):
    enquiry = wf.update_enquiry(enquiry_id, json_body(), current_actor())
    return api_success(enquiry.to_dict(), "Enquiry updated successfully")


@enquiry_bp.route("/enquiries/<int:enquiry_id>", methods=["DELETE"])
@require_actor
def delete_enquiry(enquiry_id):
    wf.delete_enquiry(enquiry_id, current_actor())
    return api_success({"id": enquiry_id}, "Enquiry deleted successfully")


@enquiry_bp.route("/enquiries/<int:enquiry_id>/status", methods=["PUT", "PATCH"])
@require_actor
def set_status(enquiry_id):
    data = json_body()
    enquiry = wf.set_status(
        enquiry_id, data.get("status"), current_actor(),
        assigned_person_id=data.get("assigned_person_id"),
        note=data.get("note"),
    )
    return api_success(enquiry.to_dict(), "Status updated successfully")


@enquiry_bp.route("/enquiries/<int:enquiry_id>/assign", methods=["PUT", "POST"])
@require_actor
def assign(enquiry_id):
    data = json_body()
    enquiry = wf.assign(enquiry_id, data.get("assigned_person_id"), current_actor(), note=data.get("note"))
    return api_success(enquiry.to_dict(), "Enquiry assigned successfully")


@enquiry_bp.route("/enquiries/<int:enquiry_id>/confirm-order", methods=["POST"])
@require_actor
def confirm_order(enquiry_id):
    data = json_body()
    enquiry = wf.confirm_order(
        enquiry_id, current_actor(),
        order_number=data.get("order_number"),
        production_user_id=data.get("production_user_id"),
        note=data.get("note"),
    )
    return api_success(enquiry.to_dict(), "Order confirmed successfully")


@enquiry_bp.route("/enquiries/<int:enquiry_id>/transitions", methods=["GET"])
@require_actor
def available_transitions(enquiry_id):
    enquiry = wf.get_enquiry(enquiry_id, current_actor())
    return api_success({
        "status": enquiry.status,
        "strict": bool(current_app.config.get("WORKFLOW_STRICT_TRANSITIONS")),
        "transitions": wf.get_available_transitions(enquiry),
    }, "Transitions retrieved")


@enquiry_bp.route("/enquiries/<int:enquiry_id>/history", methods=["GET"])
@require_actor
def history(enquiry_id):
    rows = wf.get_history(enquiry_id, current_actor())
    return api_success([h.to_dict() for h in rows], "History retrieved")


@enquiry_bp.route("/enquiries/<int:enquiry_id>/notes", methods=["GET"])
@require_actor
def list_notes(enquiry_id):
    rows = wf.list_notes(enquiry_id, current_actor())
    return api_success([n.to_dict() for n in rows], "Notes retrieved")


@enquiry_bp.route("/enquiries/<int:enquiry_id>/notes", methods=["POST"])
@require_actor
def add_note(enquiry_id):
    note = wf.add_note(enquiry_id, json_body().get("note"), current_actor())
    return api_success(note.to_dict(), "Note added successfully", status=201)
