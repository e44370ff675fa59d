"""
Finance Service: quotations and invoices raised against an enquiry.

Totals (subtotal, discount, tax_amount, grand_total) and line amounts are
stored exactly as the caller supplies them.  A quotation always carries its
enquiry's order number in ``order_no`` when the enquiry has one.
"""

import logging
from datetime import date

from workflow_crm.core.exceptions import ConflictError, NotFoundError, ValidationError
from workflow_crm.models import db
from workflow_crm.models.finance import (
    INVOICE_STATUSES,
    QUOTATION_STATUSES,
    Invoice,
    InvoiceLineItem,
    Quotation,
    QuotationLineItem,
)
from workflow_crm.services.code_generator import generate_document_number
from workflow_crm.services.enquiry_workflow import load_enquiry_for_actor
from workflow_crm.services.notification import build_payload, get_dispatcher
from workflow_crm.services.permission import check_capability
from workflow_crm.utils.helpers import parse_amount, parse_date

logger = logging.getLogger(__name__)

_TOTAL_FIELDS = ("subtotal", "discount", "tax_amount", "grand_total")


# ── Shared helpers ───────────────────────────────────────────────────────────

def _optional_amount(data: dict, field: str):
    value = data.get(field)
    if value in (None, ""):
        return parse_amount(0, field)
    return parse_amount(value, field)


def _apply_totals(document, data: dict, partial: bool = False) -> None:
    for field in _TOTAL_FIELDS:
        if partial and field not in data:
            continue
        setattr(document, field, _optional_amount(data, field))


def _build_line_items(model, raw_items) -> list:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("At least one line item is required", details={"line_items": "required"})
    items = []
    for idx, raw in enumerate(raw_items):
        description = (raw.get("description") or "").strip() if isinstance(raw, dict) else ""
        if not description:
            raise ValidationError(f"line_items[{idx}].description is required",
                                  details={f"line_items[{idx}]": "description required"})
        items.append(model(
            description=description,
            quantity=parse_amount(raw.get("quantity", 1), f"line_items[{idx}].quantity"),
            unit=raw.get("unit") or "Nos",
            rate=_optional_amount(raw, "rate"),
            amount=_optional_amount(raw, "amount"),
        ))
    return items


def _validate_status(value, allowed, field="status") -> str:
    if value not in allowed:
        raise ValidationError(f"Invalid {field}: {value!r}",
                              details={field: f"must be one of {', '.join(allowed)}"})
    return value


def _document_number(model, column, supplied, prefix) -> str:
    number = str(supplied or "").strip() or generate_document_number(prefix)
    if model.query.filter(column == number).first():
        raise ConflictError(model.__name__, column.key, number)
    return number


def _notify_created(type_, title, message, document, enquiry, actor, event, **fields):
    dispatcher = get_dispatcher()
    dispatcher.notify_user(actor.id, build_payload(
        type_, title, message, enquiry,
        created_by=actor.name, created_by_id=actor.id, **fields,
    ))
    dispatcher.emit_to_enquiry(enquiry.id, event, {
        "document": document.to_dict(include_items=False),
        "created_by": actor.to_summary(),
    })


# ═══════════════════════════════════════════════════════════════
# Quotations
# ═══════════════════════════════════════════════════════════════
def get_quotation_or_404(quotation_id) -> Quotation:
    quotation = db.session.get(Quotation, quotation_id)
    if quotation is None:
        raise NotFoundError(resource="Quotation", resource_id=quotation_id)
    return quotation


def create_quotation(data: dict, actor) -> Quotation:
    check_capability(actor, "quotations", "create")
    enquiry = load_enquiry_for_actor(data.get("enquiry_id"), actor)
    status = _validate_status(data.get("status") or "draft", QUOTATION_STATUSES)
    line_items = _build_line_items(QuotationLineItem, data.get("line_items"))
    number = _document_number(Quotation, Quotation.quotation_number, data.get("quotation_number"), "QUO")

    quotation = Quotation(
        quotation_number=number,
        enquiry_id=enquiry.id,
        client_id=data.get("client_id") or enquiry.client_id,
        order_no=enquiry.order_number or data.get("order_no"),
        quotation_date=parse_date(data.get("quotation_date")) or date.today(),
        valid_until=parse_date(data.get("valid_until")),
        terms=data.get("terms"),
        status=status,
        created_by_id=actor.id,
        line_items=line_items,
    )
    _apply_totals(quotation, data)
    db.session.add(quotation)
    db.session.commit()

    logger.info("Quotation %s created", number, extra={"enquiry_id": enquiry.id, "actor_id": actor.id})
    _notify_created(
        "quotation_created", "Quotation Created", f"Quotation {number} has been created",
        quotation, enquiry, actor, "quotation_created",
        quotation_id=quotation.id, quotation_number=number,
    )
    return quotation


def get_quotation(quotation_id, actor) -> Quotation:
    check_capability(actor, "quotations", "view")
    return get_quotation_or_404(quotation_id)


def list_quotations(actor, enquiry_id=None, status=None) -> list[Quotation]:
    check_capability(actor, "quotations", "view")
    q = Quotation.query
    if enquiry_id:
        enquiry = load_enquiry_for_actor(enquiry_id, actor)
        q = q.filter_by(enquiry_id=enquiry.id)
    if status:
        q = q.filter_by(status=_validate_status(status, QUOTATION_STATUSES))
    return q.order_by(Quotation.created_at.desc(), Quotation.id.desc()).all()


def update_quotation(quotation_id, data: dict, actor) -> Quotation:
    check_capability(actor, "quotations", "edit")
    quotation = get_quotation_or_404(quotation_id)
    if data.get("status"):
        quotation.status = _validate_status(data["status"], QUOTATION_STATUSES)
    if "valid_until" in data:
        quotation.valid_until = parse_date(data["valid_until"])
    if "terms" in data:
        quotation.terms = data["terms"]
    if "line_items" in data:
        quotation.line_items = _build_line_items(QuotationLineItem, data["line_items"])
    _apply_totals(quotation, data, partial=True)
    enquiry_order = quotation.enquiry.order_number if quotation.enquiry else None
    if enquiry_order:
        quotation.order_no = enquiry_order
    db.session.commit()
    return quotation


def delete_quotation(quotation_id, actor) -> None:
    check_capability(actor, "quotations", "delete")
    quotation = get_quotation_or_404(quotation_id)
    db.session.delete(quotation)
    db.session.commit()


# ═══════════════════════════════════════════════════════════════
# Invoices
# ═══════════════════════════════════════════════════════════════
def get_invoice_or_404(invoice_id) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFoundError(resource="Invoice", resource_id=invoice_id)
    return invoice


def create_invoice(data: dict, actor) -> Invoice:
    check_capability(actor, "invoices", "create")
    enquiry = load_enquiry_for_actor(data.get("enquiry_id"), actor)
    status = _validate_status(data.get("status") or "draft", INVOICE_STATUSES)
    line_items = _build_line_items(InvoiceLineItem, data.get("line_items"))
    quotation_id = data.get("quotation_id")
    if quotation_id:
        quotation = get_quotation_or_404(quotation_id)
        if quotation.enquiry_id != enquiry.id:
            raise ValidationError("Quotation belongs to a different enquiry",
                                  details={"quotation_id": quotation_id})
    number = _document_number(Invoice, Invoice.invoice_number, data.get("invoice_number"), "INV")

    invoice = Invoice(
        invoice_number=number,
        enquiry_id=enquiry.id,
        client_id=data.get("client_id") or enquiry.client_id,
        quotation_id=quotation_id or None,
        invoice_date=parse_date(data.get("invoice_date")) or date.today(),
        due_date=parse_date(data.get("due_date")),
        status=status,
        created_by_id=actor.id,
        line_items=line_items,
    )
    _apply_totals(invoice, data)
    db.session.add(invoice)
    db.session.commit()

    logger.info("Invoice %s created", number, extra={"enquiry_id": enquiry.id, "actor_id": actor.id})
    _notify_created(
        "invoice_created", "Invoice Created", f"Invoice {number} has been created",
        invoice, enquiry, actor, "invoice_created",
        invoice_id=invoice.id, invoice_number=number,
    )
    return invoice


def get_invoice(invoice_id, actor) -> Invoice:
    check_capability(actor, "invoices", "view")
    return get_invoice_or_404(invoice_id)


def list_invoices(actor, enquiry_id=None, status=None) -> list[Invoice]:
    check_capability(actor, "invoices", "view")
    q = Invoice.query
    if enquiry_id:
        enquiry = load_enquiry_for_actor(enquiry_id, actor)
        q = q.filter_by(enquiry_id=enquiry.id)
    if status:
        q = q.filter_by(status=_validate_status(status, INVOICE_STATUSES))
    return q.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()


def update_invoice(invoice_id, data: dict, actor) -> Invoice:
    check_capability(actor, "invoices", "edit")
    invoice = get_invoice_or_404(invoice_id)
    if data.get("status"):
        invoice.status = _validate_status(data["status"], INVOICE_STATUSES)
    if "due_date" in data:
        invoice.due_date = parse_date(data["due_date"])
    if "line_items" in data:
        invoice.line_items = _build_line_items(InvoiceLineItem, data["line_items"])
    _apply_totals(invoice, data, partial=True)
    db.session.commit()
    return invoice


def delete_invoice(invoice_id, actor) -> None:
    check_capability(actor, "invoices", "delete")
    invoice = get_invoice_or_404(invoice_id)
    db.session.delete(invoice)
    db.session.commit()
