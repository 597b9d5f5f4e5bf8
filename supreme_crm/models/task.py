"""Task model: follow-ups tied to a dealership and/or deal."""

import uuid

from supreme_crm.extensions import db
from supreme_crm.models.enums import TaskStatus


class Task(db.Model):
    __tablename__ = "tasks"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.String(20), default=TaskStatus.PENDING.value, nullable=False
    )
    priority = db.Column(db.String(20), default="MEDIUM", nullable=False)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    dealership_id = db.Column(
        db.String(36), db.ForeignKey("dealerships.id"), nullable=True, index=True
    )
    deal_id = db.Column(
        db.String(36), db.ForeignKey("deals.id"), nullable=True, index=True
    )
    contact_id = db.Column(
        db.String(36), db.ForeignKey("contacts.id"), nullable=True
    )
    assigned_to_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=True
    )
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    dealership = db.relationship("Dealership", back_populates="tasks")
    deal = db.relationship("Deal", back_populates="tasks")

    def __repr__(self):
        return f"<Task {self.title} ({self.status})>"
