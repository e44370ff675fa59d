"""
Solar Structure Workflow CRM
Finance Blueprint: quotations and invoices.

Endpoints (under /api/v1):
    GET/POST        /quotations            ?enquiry_id=&status=
    GET/PUT/DELETE  /quotations/<id>
    GET/POST        /invoices              ?enquiry_id=&status=
    GET/PUT/DELETE  /invoices/<id>
"""

from flask import Blueprint, request

from workflow_crm.auth import current_actor, require_actor
from workflow_crm.blueprints import json_body
from workflow_crm.services import finance_service
from workflow_crm.utils.errors import api_success

finance_bp = Blueprint("finance_bp", __name__, url_prefix="/api/v1")


# ── Quotations ──────────────────────────────────────────────────────────────

@finance_bp.route("/quotations", methods=["GET"])
@require_actor
def list_quotations():
    rows = finance_service.list_quotations(
        current_actor(), enquiry_id=request.args.get("enquiry_id"), status=request.args.get("status"),
    )
    return api_success([q.to_dict() for q in rows], "Quotations retrieved")


@finance_bp.route("/quotations", methods=["POST"])
@require_actor
def create_quotation():
    quotation = finance_service.create_quotation(json_body(), current_actor())
    return api_success(quotation.to_dict(), "Quotation created successfully", status=201)


@finance_bp.route("/quotations/<int:quotation_id>", methods=["GET"])
@require_actor
def get_quotation(quotation_id):
    return api_success(finance_service.get_quotation(quotation_id, current_actor()).to_dict(),
                       "Quotation retrieved")


@finance_bp.route("/quotations/<int:quotation_id>", methods=["PUT"])
@require_actor
def update_quotation(quotation_id):
    quotation = finance_service.update_quotation(quotation_id, json_body(), current_actor())
    return api_success(quotation.to_dict(), "Quotation updated successfully")


@finance_bp.route("/quotations/<int:quotation_id>", methods=["DELETE"])
@require_actor
def delete_quotation(quotation_id):
    finance_service.delete_quotation(quotation_id, current_actor())
    return api_success({"id": quotation_id}, "Quotation deleted successfully")


# ── Invoices ────────────────────────────────────────────────────────────────

@finance_bp.route("/invoices", methods=["GET"])
@require_actor
def list_invoices():
    rows = finance_service.list_invoices(
        current_actor(), enquiry_id=request.args.get("enquiry_id"), status=request.args.get("status"),
    )
    return api_success([i.to_dict() for i in rows], "Invoices retrieved")


@finance_bp.route("/invoices", methods=["POST"])
@require_actor
def create_invoice():
    invoice = finance_service.create_invoice(json_body(), current_actor())
    return api_success(invoice.to_dict(), "Invoice created successfully", status=201)


@finance_bp.route("/invoices/<int:invoice_id>", methods=["GET"])
@require_actor
def get_invoice(invoice_id):
    return api_success(finance_service.get_invoice(invoice_id, current_actor()).to_dict(),
                       "Invoice retrieved")


@finance_bp.route("/invoices/<int:invoice_id>", methods=["PUT"])
@require_actor
def update_invoice(invoice_id):
    invoice = finance_service.update_invoice(invoice_id, json_body(), current_actor())
    return api_success(invoice.to_dict(), "Invoice updated successfully")


@finance_bp.route("/invoices/<int:invoice_id>", methods=["DELETE"])
@require_actor
def delete_invoice(invoice_id):
    finance_service.delete_invoice(invoice_id, current_actor())
    return api_success({"id": invoice_id}, "Invoice deleted successfully")
