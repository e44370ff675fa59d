"""
Solar Structure Workflow CRM
Client Blueprint.
"""

from flask import Blueprint, request

from workflow_crm.auth import current_actor, require_actor
from workflow_crm.blueprints import json_body, pagination_args
from workflow_crm.services import client_service
from workflow_crm.utils.errors import api_success

client_bp = Blueprint("client_bp", __name__, url_prefix="/api/v1/clients")


@client_bp.route("", methods=["GET"])
@require_actor
def list_clients():
    limit, offset = pagination_args()
    items, total = client_service.list_clients(
        current_actor(), search=request.args.get("search"), limit=limit, offset=offset,
    )
    return api_success([c.to_dict(include_counts=True) for c in items], "Clients retrieved",
                       total=total, limit=limit, offset=offset)


@client_bp.route("", methods=["POST"])
@require_actor
def create_client():
    client = client_service.create_client(json_body(), current_actor())
    return api_success(client.to_dict(), "Client created successfully", status=201)


@client_bp.route("/<int:client_id>", methods=["GET"])
@require_actor
def get_client(client_id):
    client = client_service.get_client(client_id, current_actor())
    return api_success(client.to_dict(include_counts=True), "Client retrieved")


@client_bp.route("/<int:client_id>", methods=["PUT"])
@require_actor
def update_client(client_id):
    client = client_service.update_client(client_id, json_body(), current_actor())
    return api_success(client.to_dict(), "Client updated successfully")


@client_bp.route("/<int:client_id>", methods=["DELETE"])
@require_actor
def delete_client(client_id):
    client_service.delete_client(client_id, current_actor())
    return api_success({"id": client_id}, "Client deleted successfully")
