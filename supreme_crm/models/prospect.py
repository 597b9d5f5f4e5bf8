"""Prospect model: a not-yet-converted lead owned by one user.

lead_score is derived (0-100) and recomputed on demand; previous values
live in the audit log as "prospect.rescored" events.
"""

import uuid

from supreme_crm.extensions import db
from supreme_crm.models.enums import ProspectStatus


class Prospect(db.Model):
    __tablename__ = "prospects"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    first_name = db.Column(db.String(120), nullable=False)
    last_name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    company = db.Column(db.String(255), nullable=True)
    position = db.Column(db.String(255), nullable=True)
    industry = db.Column(db.String(120), nullable=True)
    employee_count = db.Column(db.Integer, nullable=True)
    linkedin_url = db.Column(db.String(500), nullable=True)
    linkedin_data = db.Column(db.JSON, nullable=True)  # {"connections": int, ...}
    status = db.Column(
        db.String(50), default=ProspectStatus.COLD.value, nullable=False
    )
    source = db.Column(db.String(50), nullable=True)  # manual | csv_import
    notes = db.Column(db.Text, nullable=True)

    lead_score = db.Column(db.Integer, default=0, nullable=False)
    lead_scored_at = db.Column(db.DateTime(timezone=True), nullable=True)
    enriched = db.Column(db.Boolean, default=False, nullable=False)
    enriched_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    owner = db.relationship("User", foreign_keys=[user_id])
    interactions = db.relationship(
        "Interaction",
        back_populates="prospect",
        lazy="select",
        cascade="all, delete-orphan",
    )
    appointments = db.relationship(
        "Appointment",
        back_populates="prospect",
        lazy="select",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Prospect {self.first_name} {self.last_name} ({self.status})>"
