"""
Solar Structure Workflow CRM
Notification domain model.

Models:
    - Notification: durable per-user notification entry with read tracking
"""

from datetime import datetime, timezone

from workflow_crm.models import db


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_TYPES = {
    "assignment",
    "status_change",
    "enquiry_created",
    "design_assigned",
    "design_completed",
    "production_assigned",
    "production_completed",
    "dispatch_assigned",
    "enquiry_dispatched",
    "order_confirmed",
    "communication_logged",
    "quotation_created",
    "invoice_created",
}


class Notification(db.Model):
    """
    Durable notification entity.

    One record per recipient per event; the full tagged payload is kept
    in ``payload`` so type-specific fields survive the round trip.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("idx_notifications_user_created", "user_id", "id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    type = db.Column(db.String(40), nullable=False, default="assignment")
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    enquiry_id = db.Column(db.Integer, nullable=True, comment="Source enquiry, if any")
    payload = db.Column(db.JSON, default=dict)

    # Read tracking
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            **(self.payload or {}),
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "enquiry_id": self.enquiry_id,
            "read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"
