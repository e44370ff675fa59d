"""
Reports Blueprint.

Endpoints:
    GET /api/v1/reports?start_date=&end_date=
"""

from flask import Blueprint, request

from workflow_crm.auth import current_actor, require_actor
from workflow_crm.services import dashboard_service
from workflow_crm.utils.errors import api_success

reports_bp = Blueprint("reports_bp", __name__, url_prefix="/api/v1/reports")


@reports_bp.route("", methods=["GET"])
@require_actor
def reports():
    data = dashboard_service.get_reports(
        current_actor(),
        start=request.args.get("start_date"),
        end=request.args.get("end_date"),
    )
    return api_success(data, "Reports retrieved")
