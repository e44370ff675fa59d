"""
Solar Structure Workflow CRM
Client domain model.

Models:
    - Client: customer record; one client has many enquiries.
"""

from datetime import datetime, timezone

from workflow_crm.models import db


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Client(db.Model):
    __tablename__ = "clients"

    id = db.Column(db.Integer, primary_key=True)
    client_name = db.Column(db.String(200), nullable=False, index=True)
    contact_person = db.Column(db.String(150))
    contact_no = db.Column(db.String(30))
    email = db.Column(db.String(200))
    address = db.Column(db.Text)
    city = db.Column(db.String(100))
    state = db.Column(db.String(100))
    gst_number = db.Column(db.String(30))
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    enquiries = db.relationship("Enquiry", back_populates="client", lazy="dynamic")

    def to_dict(self, include_counts=False):
        d = {
            "id": self.id,
            "client_name": self.client_name,
            "contact_person": self.contact_person,
            "contact_no": self.contact_no,
            "email": self.email,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "gst_number": self.gst_number,
            "created_by_id": self.created_by_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_counts:
            d["enquiry_count"] = self.enquiries.count()
        return d

    def __repr__(self):
        return f"<Client {self.id}: {self.client_name}>"
