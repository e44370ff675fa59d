"""
Solar Structure Workflow CRM
Stage work records provisioned off an Enquiry.

Models:
    - DesignWork: one per enquiry, owned by a designer
    - DesignAttachment: files uploaded against an enquiry's design
    - ProductionWorkflow: one per enquiry, led by a production user
    - ProductionTask: unordered shop-floor steps under a workflow
    - DispatchWork: one per enquiry, shipping details
"""

from datetime import datetime, timezone

from workflow_crm.models import db


# ── Constants ────────────────────────────────────────────────────────────────

DESIGN_STATUSES = ("pending", "in_progress", "completed")
PRODUCTION_STATUSES = ("not_started", "in_progress", "completed")
PRODUCTION_STEPS = ("cutting", "welding", "fabrication", "assembly", "quality_check", "packaging")
DEFAULT_PRODUCTION_STEP = "cutting"
TASK_STATUSES = ("pending", "in_progress", "completed")
DISPATCH_STATUSES = ("pending", "dispatched", "delivered")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class DesignWork(db.Model):
    __tablename__ = "design_works"
    __table_args__ = (
        db.UniqueConstraint("enquiry_id", name="uq_design_works_enquiry"),
    )

    id = db.Column(db.Integer, primary_key=True)
    enquiry_id = db.Column(
        db.Integer, db.ForeignKey("enquiries.id", ondelete="CASCADE"), nullable=False,
    )
    designer_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    client_requirements = db.Column(db.Text, default="")
    designer_notes = db.Column(db.Text, default="")
    design_status = db.Column(db.String(20), nullable=False, default="pending",
                              comment="pending | in_progress | completed")
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    enquiry = db.relationship("Enquiry", back_populates="design_work")
    designer = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "enquiry_id": self.enquiry_id,
            "enquiry_num": self.enquiry.enquiry_num if self.enquiry else None,
            "designer_id": self.designer_id,
            "designer": self.designer.to_summary() if self.designer else None,
            "client_requirements": self.client_requirements,
            "designer_notes": self.designer_notes,
            "design_status": self.design_status,
            "completed_at": _iso(self.completed_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class DesignAttachment(db.Model):
    __tablename__ = "design_attachments"

    id = db.Column(db.Integer, primary_key=True)
    enquiry_id = db.Column(
        db.Integer, db.ForeignKey("enquiries.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    file_name = db.Column(db.String(255), nullable=False)
    file_url = db.Column(db.Text, nullable=False, comment="URL or data URI of the stored file")
    file_type = db.Column(db.String(100), default="application/octet-stream")
    uploaded_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    uploaded_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    uploader = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "enquiry_id": self.enquiry_id,
            "file_name": self.file_name,
            "file_url": self.file_url,
            "file_type": self.file_type,
            "uploaded_by_id": self.uploaded_by_id,
            "uploader": self.uploader.to_summary() if self.uploader else None,
            "uploaded_at": _iso(self.uploaded_at),
        }


class ProductionWorkflow(db.Model):
    """Complete only when every task under it is completed."""

    __tablename__ = "production_workflows"
    __table_args__ = (
        db.UniqueConstraint("enquiry_id", name="uq_production_workflows_enquiry"),
    )

    id = db.Column(db.Integer, primary_key=True)
    enquiry_id = db.Column(
        db.Integer, db.ForeignKey("enquiries.id", ondelete="CASCADE"), nullable=False,
    )
    production_lead_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    status = db.Column(db.String(20), nullable=False, default="not_started",
                       comment="not_started | in_progress | completed")
    current_step = db.Column(db.String(30), nullable=True)
    notes = db.Column(db.Text, default="")
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    enquiry = db.relationship("Enquiry", back_populates="production_workflow")
    lead = db.relationship("User")
    tasks = db.relationship(
        "ProductionTask", back_populates="workflow", lazy="dynamic",
        cascade="all, delete-orphan", order_by="ProductionTask.id",
    )

    def open_tasks(self):
        return self.tasks.filter(ProductionTask.status != "completed").all()

    def to_dict(self, include_tasks=False):
        d = {
            "id": self.id,
            "enquiry_id": self.enquiry_id,
            "production_lead_id": self.production_lead_id,
            "lead": self.lead.to_summary() if self.lead else None,
            "status": self.status,
            "current_step": self.current_step,
            "notes": self.notes,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "created_at": _iso(self.created_at),
        }
        if include_tasks:
            d["tasks"] = [t.to_dict() for t in self.tasks]
        return d


class ProductionTask(db.Model):
    __tablename__ = "production_tasks"

    id = db.Column(db.Integer, primary_key=True)
    workflow_id = db.Column(
        db.Integer, db.ForeignKey("production_workflows.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    step = db.Column(db.String(30), nullable=False,
                     comment="cutting | welding | fabrication | assembly | quality_check | packaging")
    assigned_to_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    status = db.Column(db.String(20), nullable=False, default="pending")
    notes = db.Column(db.Text, default="")
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    workflow = db.relationship("ProductionWorkflow", back_populates="tasks")
    assignee = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "step": self.step,
            "assigned_to_id": self.assigned_to_id,
            "assignee": self.assignee.to_summary() if self.assignee else None,
            "status": self.status,
            "notes": self.notes,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "created_at": _iso(self.created_at),
        }


class DispatchWork(db.Model):
    __tablename__ = "dispatch_works"
    __table_args__ = (
        db.UniqueConstraint("enquiry_id", name="uq_dispatch_works_enquiry"),
    )

    id = db.Column(db.Integer, primary_key=True)
    enquiry_id = db.Column(
        db.Integer, db.ForeignKey("enquiries.id", ondelete="CASCADE"), nullable=False,
    )
    dispatch_assigned_to_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    tracking_number = db.Column(db.String(100))
    dispatch_date = db.Column(db.DateTime(timezone=True))
    estimated_delivery_date = db.Column(db.DateTime(timezone=True))
    status = db.Column(db.String(20), nullable=False, default="pending",
                       comment="pending | dispatched | delivered")
    notes = db.Column(db.Text, default="")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    enquiry = db.relationship("Enquiry", back_populates="dispatch_work")
    assignee = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "enquiry_id": self.enquiry_id,
            "dispatch_assigned_to_id": self.dispatch_assigned_to_id,
            "assignee": self.assignee.to_summary() if self.assignee else None,
            "tracking_number": self.tracking_number,
            "dispatch_date": _iso(self.dispatch_date),
            "estimated_delivery_date": _iso(self.estimated_delivery_date),
            "status": self.status,
            "notes": self.notes,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
