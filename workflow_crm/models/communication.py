"""
Solar Structure Workflow CRM
Client communication log.
"""

from datetime import datetime, timezone

from workflow_crm.models import db


COMMUNICATION_TYPES = ("call", "email", "meeting", "whatsapp", "site_visit", "other")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CommunicationLog(db.Model):
    __tablename__ = "communication_logs"

    id = db.Column(db.Integer, primary_key=True)
    enquiry_id = db.Column(
        db.Integer, db.ForeignKey("enquiries.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    communication_type = db.Column(db.String(30), nullable=False, default="call")
    subject = db.Column(db.String(300), default="")
    message = db.Column(db.Text, nullable=False)
    communication_date = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    client_response = db.Column(db.Text)
    created_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    creator = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "enquiry_id": self.enquiry_id,
            "communication_type": self.communication_type,
            "subject": self.subject,
            "message": self.message,
            "communication_date": self.communication_date.isoformat() if self.communication_date else None,
            "client_response": self.client_response,
            "created_by_id": self.created_by_id,
            "creator": self.creator.to_summary() if self.creator else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
