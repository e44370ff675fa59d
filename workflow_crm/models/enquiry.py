"""
Solar Structure Workflow CRM
Enquiry domain models: the hub every workflow record hangs off.

Models:
    - Enquiry: customer request moving through the departmental stages
    - EnquiryStatusHistory: append-only audit row per transition/assignment
    - EnquiryNote: append-only free-text commentary
    - OrderSequence: counter row that serialises order-number allocation

Status path (conventional, not enforced unless strict mode is on):
    Enquiry → Design → BOQ → ReadyForProduction → PurchaseWaiting →
    InProduction → ProductionComplete → Hotdip → ReadyForDispatch → Dispatched
"""

from datetime import datetime, timezone

from workflow_crm.models import db


# ── Constants ────────────────────────────────────────────────────────────────

ENQUIRY_STATUSES = (
    "Enquiry",
    "Design",
    "BOQ",
    "ReadyForProduction",
    "PurchaseWaiting",
    "InProduction",
    "ProductionComplete",
    "Hotdip",
    "ReadyForDispatch",
    "Dispatched",
)

MATERIAL_TYPES = ("Aluminium", "GI", "GP", "BOS")

# Optional strict-mode table: current status → statuses it may move to.
# Staying on the same status (pure reassignment) is always allowed.
STATUS_TRANSITIONS = {
    "Enquiry": {"Design", "BOQ"},
    "Design": {"Enquiry", "BOQ"},
    "BOQ": {"Enquiry", "Design", "ReadyForProduction"},
    "ReadyForProduction": {"BOQ", "PurchaseWaiting", "InProduction"},
    "PurchaseWaiting": {"ReadyForProduction", "InProduction"},
    "InProduction": {"PurchaseWaiting", "ProductionComplete", "ReadyForDispatch"},
    "ProductionComplete": {"InProduction", "Hotdip", "ReadyForDispatch"},
    "Hotdip": {"ProductionComplete", "ReadyForDispatch"},
    "ReadyForDispatch": {"Hotdip", "Dispatched"},
    "Dispatched": set(),
}

# Dashboard buckets
STAGE_GROUPS = {
    "new": ("Enquiry", "Design", "BOQ"),
    "production": ("ReadyForProduction", "PurchaseWaiting", "InProduction"),
    "finishing": ("ProductionComplete", "Hotdip"),
    "ready": ("ReadyForDispatch", "Dispatched"),
}

ORDER_NUMBER_PREFIX = "ORD"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class Enquiry(db.Model):
    """
    Central workflow record.

    Exactly one ``current_assigned_person_id`` owns the enquiry at any
    time; ``enquiry_by_id`` is the salesperson who raised it and receives
    the work back after design and production.  ``order_number`` is set
    once and never rewritten.
    """

    __tablename__ = "enquiries"
    __table_args__ = (
        db.UniqueConstraint("enquiry_num", name="uq_enquiries_enquiry_num"),
        db.UniqueConstraint("order_number", name="uq_enquiries_order_number"),
        db.Index("idx_enquiries_status", "status"),
        db.Index("idx_enquiries_assigned", "current_assigned_person_id"),
        db.Index("idx_enquiries_enquiry_by", "enquiry_by_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    enquiry_num = db.Column(db.String(50), nullable=False)
    client_id = db.Column(
        db.Integer, db.ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    material_type = db.Column(db.String(20), nullable=False, comment="Aluminium | GI | GP | BOS")
    enquiry_detail = db.Column(db.Text, nullable=False)
    enquiry_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    purchase_detail = db.Column(db.Text)
    expected_dispatch_date = db.Column(db.Date)
    delivery_address = db.Column(db.Text)

    status = db.Column(db.String(30), nullable=False, default="Enquiry")
    enquiry_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False,
    )
    current_assigned_person_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False,
    )
    work_assigned_date = db.Column(db.DateTime(timezone=True), default=_utcnow)
    order_number = db.Column(db.String(30), nullable=True)
    order_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    client = db.relationship("Client", back_populates="enquiries")
    enquiry_by = db.relationship("User", foreign_keys=[enquiry_by_id])
    assigned_user = db.relationship("User", foreign_keys=[current_assigned_person_id])
    status_history = db.relationship(
        "EnquiryStatusHistory", back_populates="enquiry", lazy="dynamic",
        cascade="all, delete-orphan", order_by="EnquiryStatusHistory.id",
    )
    notes = db.relationship(
        "EnquiryNote", back_populates="enquiry", lazy="dynamic", cascade="all, delete-orphan",
    )
    design_work = db.relationship(
        "DesignWork", back_populates="enquiry", uselist=False, cascade="all, delete-orphan",
    )
    production_workflow = db.relationship(
        "ProductionWorkflow", back_populates="enquiry", uselist=False, cascade="all, delete-orphan",
    )
    dispatch_work = db.relationship(
        "DispatchWork", back_populates="enquiry", uselist=False, cascade="all, delete-orphan",
    )

    def to_dict(self, include_history=False):
        d = {
            "id": self.id,
            "enquiry_num": self.enquiry_num,
            "client_id": self.client_id,
            "client": {"id": self.client.id, "client_name": self.client.client_name}
            if self.client else None,
            "material_type": self.material_type,
            "enquiry_detail": self.enquiry_detail,
            "enquiry_amount": float(self.enquiry_amount or 0),
            "purchase_detail": self.purchase_detail,
            "expected_dispatch_date": _iso(self.expected_dispatch_date),
            "delivery_address": self.delivery_address,
            "status": self.status,
            "enquiry_by_id": self.enquiry_by_id,
            "enquiry_by": self.enquiry_by.to_summary() if self.enquiry_by else None,
            "current_assigned_person_id": self.current_assigned_person_id,
            "assigned_user": self.assigned_user.to_summary() if self.assigned_user else None,
            "work_assigned_date": _iso(self.work_assigned_date),
            "order_number": self.order_number,
            "order_date": _iso(self.order_date),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_history:
            d["status_history"] = [
                h.to_dict() for h in self.status_history.order_by(EnquiryStatusHistory.id.desc())
            ]
        return d

    def __repr__(self):
        return f"<Enquiry {self.id}: {self.enquiry_num} [{self.status}]>"


class EnquiryStatusHistory(db.Model):
    """Append-only. One row per transition or reassignment; never updated."""

    __tablename__ = "enquiry_status_history"
    __table_args__ = (
        db.Index("idx_esh_enquiry", "enquiry_id"),
        db.Index("idx_esh_assigned", "assigned_person_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    enquiry_id = db.Column(
        db.Integer, db.ForeignKey("enquiries.id", ondelete="CASCADE"), nullable=False,
    )
    status = db.Column(db.String(30), nullable=False, comment="Status transitioned to")
    assigned_person_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False,
    )
    changed_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    note = db.Column(db.Text, default="")
    status_changed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    enquiry = db.relationship("Enquiry", back_populates="status_history")
    assigned_person = db.relationship("User", foreign_keys=[assigned_person_id])

    def to_dict(self):
        return {
            "id": self.id,
            "enquiry_id": self.enquiry_id,
            "status": self.status,
            "assigned_person_id": self.assigned_person_id,
            "assigned_person": self.assigned_person.to_summary() if self.assigned_person else None,
            "changed_by_id": self.changed_by_id,
            "note": self.note,
            "status_changed_at": _iso(self.status_changed_at),
        }


class EnquiryNote(db.Model):
    __tablename__ = "enquiry_notes"

    id = db.Column(db.Integer, primary_key=True)
    enquiry_id = db.Column(
        db.Integer, db.ForeignKey("enquiries.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    note = db.Column(db.Text, nullable=False)
    created_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    enquiry = db.relationship("Enquiry", back_populates="notes")
    creator = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "enquiry_id": self.enquiry_id,
            "note": self.note,
            "created_by_id": self.created_by_id,
            "creator": self.creator.to_summary() if self.creator else None,
            "created_at": _iso(self.created_at),
        }


class OrderSequence(db.Model):
    """Single counter row per sequence name; updated under a write lock."""

    __tablename__ = "order_sequences"

    name = db.Column(db.String(30), primary_key=True)
    last_value = db.Column(db.Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<OrderSequence {self.name}={self.last_value}>"
