"""Deal model: an opportunity moving through the sales pipeline.

Stage probabilities default from STAGE_PROBABILITIES whenever the stage is
set without an explicit probability.
"""

import uuid

from supreme_crm.extensions import db
from supreme_crm.models.enums import DealStage


STAGE_PROBABILITIES = {
    DealStage.LEAD: 10,
    DealStage.QUALIFIED: 25,
    DealStage.MEETING_SCHEDULED: 40,
    DealStage.PROPOSAL_SENT: 60,
    DealStage.NEGOTIATION: 80,
    DealStage.CLOSED_WON: 100,
    DealStage.CLOSED_LOST: 0,
}


class Deal(db.Model):
    __tablename__ = "deals"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    title = db.Column(db.String(255), nullable=False)
    value = db.Column(db.Float, default=0.0, nullable=False)
    monthly_recurring = db.Column(db.Float, nullable=True)
    stage = db.Column(
        db.String(50), default=DealStage.LEAD.value, nullable=False, index=True
    )
    probability = db.Column(db.Integer, default=10, nullable=False)
    expected_close_date = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    lost_reason = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    dealership_id = db.Column(
        db.String(36),
        db.ForeignKey("dealerships.id"),
        nullable=False,
        index=True,
    )
    contact_id = db.Column(
        db.String(36), db.ForeignKey("contacts.id"), nullable=True
    )
    owner_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=True, index=True
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
    dealership = db.relationship("Dealership", back_populates="deals")
    contact = db.relationship("Contact")
    owner = db.relationship("User", foreign_keys=[owner_id])
    tasks = db.relationship("Task", back_populates="deal", lazy="dynamic")
    activities = db.relationship(
        "Activity", back_populates="deal", lazy="dynamic"
    )

    @property
    def is_closed(self):
        stage = DealStage.parse(self.stage)
        return stage is not None and stage.is_closed

    def __repr__(self):
        return f"<Deal {self.title} ({self.stage})>"
