"""User model.

Stores authentication credentials, role and territory.
Flask-Login integration via UserMixin.
"""

import uuid

from flask_login import UserMixin

from supreme_crm.extensions import db
from supreme_crm.models.enums import Role


class User(UserMixin, db.Model):
    __tablename__ = "users"

    ROLES = Role.values()

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(255))
    role = db.Column(db.String(20), default=Role.USER.value, nullable=False)
    territory_id = db.Column(
        db.String(36), db.ForeignKey("territories.id"), nullable=True
    )
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    territory = db.relationship("Territory", back_populates="users")
    audit_events = db.relationship(
        "AuditEvent", back_populates="actor", lazy="dynamic"
    )

    @property
    def is_admin(self):
        return Role.parse(self.role) is Role.ADMIN

    def __repr__(self):
        return f"<User {self.email} ({self.role})>"
