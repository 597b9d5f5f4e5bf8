"""Interaction and Appointment models: the engagement history of a prospect.

Both are read by the lead scorer; neither is modified once written.
"""

import uuid

from supreme_crm.extensions import db


class Interaction(db.Model):
    __tablename__ = "interactions"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    prospect_id = db.Column(
        db.String(36),
        db.ForeignKey("prospects.id"),
        nullable=False,
        index=True,
    )
    type = db.Column(db.String(50), nullable=False)  # InteractionType value
    note = db.Column(db.Text, nullable=True)
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=True
    )
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    prospect = db.relationship("Prospect", back_populates="interactions")

    def __repr__(self):
        return f"<Interaction {self.type} on {self.prospect_id}>"


class Appointment(db.Model):
    __tablename__ = "appointments"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    prospect_id = db.Column(
        db.String(36),
        db.ForeignKey("prospects.id"),
        nullable=False,
        index=True,
    )
    title = db.Column(db.String(255), nullable=False)
    start_time = db.Column(db.DateTime(timezone=True), nullable=False)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)
    location = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=True
    )
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    prospect = db.relationship("Prospect", back_populates="appointments")

    def __repr__(self):
        return f"<Appointment {self.title} on {self.prospect_id}>"
