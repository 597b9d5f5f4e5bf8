"""Activity model: append-only log of touches and status changes.

Rows are written by the services (creation, stage/status changes, imports)
and by callers through the activities API. They are never edited afterwards.
"""

import uuid
from datetime import datetime, timezone

from supreme_crm.extensions import db


class Activity(db.Model):
    __tablename__ = "activities"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    activity_type = db.Column(
        db.String(50), nullable=False
    )  # ActivityType value
    subject = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    dealership_id = db.Column(
        db.String(36), db.ForeignKey("dealerships.id"), nullable=True, index=True
    )
    contact_id = db.Column(
        db.String(36), db.ForeignKey("contacts.id"), nullable=True
    )
    deal_id = db.Column(
        db.String(36), db.ForeignKey("deals.id"), nullable=True, index=True
    )
    user_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id"),
        nullable=True,
    )
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=db.func.now(),
    )

    # --- Relationships ---
    dealership = db.relationship("Dealership", back_populates="activities")
    deal = db.relationship("Deal", back_populates="activities")
    user = db.relationship("User", lazy="joined")

    def __repr__(self):
        return f"<Activity {self.activity_type} on {self.dealership_id}>"
