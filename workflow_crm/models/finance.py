"""
Solar Structure Workflow CRM
Financial documents tied to an enquiry and its client.

Models:
    - Quotation / QuotationLineItem
    - Invoice / InvoiceLineItem

Totals are persisted exactly as supplied by the caller; nothing here
recomputes them.
"""

from datetime import datetime, timezone

from workflow_crm.models import db


# ── Constants ────────────────────────────────────────────────────────────────

QUOTATION_STATUSES = ("draft", "sent", "accepted")
INVOICE_STATUSES = ("draft", "sent", "accepted")
REVENUE_INVOICE_STATUSES = ("sent", "accepted")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _money(value):
    return float(value) if value is not None else 0.0


class _DocumentTotalsMixin:
    subtotal = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    discount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    grand_total = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    def totals_dict(self):
        return {
            "subtotal": _money(self.subtotal),
            "discount": _money(self.discount),
            "tax_amount": _money(self.tax_amount),
            "grand_total": _money(self.grand_total),
        }


class Quotation(_DocumentTotalsMixin, db.Model):
    __tablename__ = "quotations"
    __table_args__ = (
        db.UniqueConstraint("quotation_number", name="uq_quotations_number"),
    )

    id = db.Column(db.Integer, primary_key=True)
    quotation_number = db.Column(db.String(50), nullable=False)
    enquiry_id = db.Column(
        db.Integer, db.ForeignKey("enquiries.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    client_id = db.Column(
        db.Integer, db.ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    order_no = db.Column(db.String(30), comment="Copied from the enquiry's order number")
    quotation_date = db.Column(db.Date)
    valid_until = db.Column(db.Date)
    terms = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default="draft")
    created_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    enquiry = db.relationship("Enquiry")
    line_items = db.relationship(
        "QuotationLineItem", back_populates="quotation", cascade="all, delete-orphan",
        order_by="QuotationLineItem.id",
    )

    def to_dict(self, include_items=True):
        d = {
            "id": self.id,
            "quotation_number": self.quotation_number,
            "enquiry_id": self.enquiry_id,
            "client_id": self.client_id,
            "order_no": self.order_no,
            "quotation_date": self.quotation_date.isoformat() if self.quotation_date else None,
            "valid_until": self.valid_until.isoformat() if self.valid_until else None,
            "terms": self.terms,
            "status": self.status,
            "created_by_id": self.created_by_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            **self.totals_dict(),
        }
        if include_items:
            d["line_items"] = [li.to_dict() for li in self.line_items]
        return d


class QuotationLineItem(db.Model):
    __tablename__ = "quotation_line_items"

    id = db.Column(db.Integer, primary_key=True)
    quotation_id = db.Column(
        db.Integer, db.ForeignKey("quotations.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    description = db.Column(db.Text, nullable=False)
    quantity = db.Column(db.Numeric(14, 3), nullable=False, default=1)
    unit = db.Column(db.String(20), default="Nos")
    rate = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    quotation = db.relationship("Quotation", back_populates="line_items")

    def to_dict(self):
        return {
            "id": self.id,
            "description": self.description,
            "quantity": _money(self.quantity),
            "unit": self.unit,
            "rate": _money(self.rate),
            "amount": _money(self.amount),
        }


class Invoice(_DocumentTotalsMixin, db.Model):
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("invoice_number", name="uq_invoices_number"),
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(50), nullable=False)
    enquiry_id = db.Column(
        db.Integer, db.ForeignKey("enquiries.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    client_id = db.Column(
        db.Integer, db.ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    quotation_id = db.Column(
        db.Integer, db.ForeignKey("quotations.id", ondelete="SET NULL"), nullable=True,
    )
    invoice_date = db.Column(db.Date)
    due_date = db.Column(db.Date)
    status = db.Column(db.String(20), nullable=False, default="draft")
    created_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    line_items = db.relationship(
        "InvoiceLineItem", back_populates="invoice", cascade="all, delete-orphan",
        order_by="InvoiceLineItem.id",
    )

    def to_dict(self, include_items=True):
        d = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "enquiry_id": self.enquiry_id,
            "client_id": self.client_id,
            "quotation_id": self.quotation_id,
            "invoice_date": self.invoice_date.isoformat() if self.invoice_date else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "status": self.status,
            "created_by_id": self.created_by_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            **self.totals_dict(),
        }
        if include_items:
            d["line_items"] = [li.to_dict() for li in self.line_items]
        return d


class InvoiceLineItem(db.Model):
    __tablename__ = "invoice_line_items"

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(
        db.Integer, db.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    description = db.Column(db.Text, nullable=False)
    quantity = db.Column(db.Numeric(14, 3), nullable=False, default=1)
    unit = db.Column(db.String(20), default="Nos")
    rate = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    invoice = db.relationship("Invoice", back_populates="line_items")

    def to_dict(self):
        return {
            "id": self.id,
            "description": self.description,
            "quantity": _money(self.quantity),
            "unit": self.unit,
            "rate": _money(self.rate),
            "amount": _money(self.amount),
        }
