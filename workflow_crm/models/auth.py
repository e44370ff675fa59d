"""
Solar Structure Workflow CRM
Identity model: users and their roles.

Models:
    - User: staff identity carrying one role and the set of workflow
      statuses the user is configured to handle.
"""

from datetime import datetime, timezone

from workflow_crm.models import db


# ── Constants ────────────────────────────────────────────────────────────────

ROLES = ("superadmin", "director", "salesman", "designer", "production", "purchase")
ADMIN_ROLES = frozenset({"superadmin", "director"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(db.Model):
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_users_email"),
        db.Index("ix_users_role", "role"),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(200), nullable=False)
    password_hash = db.Column(db.String(256))
    role = db.Column(db.String(20), nullable=False, default="salesman",
                     comment="superadmin | director | salesman | designer | production | purchase")
    workflow_status = db.Column(db.JSON, default=list,
                                comment="Enquiry statuses this user is configured to act on")
    avatar_url = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    def handles_status(self, status: str) -> bool:
        return status in (self.workflow_status or [])

    def to_summary(self):
        return {"id": self.id, "name": self.name, "email": self.email,
                "role": self.role, "avatar_url": self.avatar_url}

    def to_dict(self):
        return {
            **self.to_summary(),
            "workflow_status": list(self.workflow_status or []),
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email} ({self.role})>"
