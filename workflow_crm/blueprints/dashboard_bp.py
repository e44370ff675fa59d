"""
Solar Structure Workflow CRM
Dashboard Blueprint.

Endpoints:
    GET /api/v1/dashboard/stats?start_date=&end_date=
    GET /api/v1/dashboard/kanban
"""

from flask import Blueprint, request

from workflow_crm.auth import current_actor, require_actor
from workflow_crm.services import dashboard_service
from workflow_crm.utils.errors import api_success

dashboard_bp = Blueprint("dashboard_bp", __name__, url_prefix="/api/v1/dashboard")


@dashboard_bp.route("/stats", methods=["GET"])
@require_actor
def stats():
    data = dashboard_service.get_stats(
        current_actor(),
        start=request.args.get("start_date"),
        end=request.args.get("end_date"),
    )
    return api_success(data, "Dashboard stats retrieved")


@dashboard_bp.route("/kanban", methods=["GET"])
@require_actor
def kanban():
    return api_success(dashboard_service.get_kanban(current_actor()), "Kanban board retrieved")
