"""Dealership model: the account-level entity.

Owns contacts, deals, tasks and activities.
Pipeline: PROSPECT -> QUALIFIED -> MEETING_SCHEDULED -> PROPOSAL_SENT
          -> NEGOTIATION -> ACTIVE_CUSTOMER (-> CHURNED)
"""

import uuid

from supreme_crm.extensions import db
from supreme_crm.models.enums import DealershipStatus


class Dealership(db.Model):
    __tablename__ = "dealerships"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name = db.Column(db.String(255), nullable=False, index=True)
    legal_name = db.Column(db.String(255), nullable=True)
    status = db.Column(
        db.String(50), default=DealershipStatus.PROSPECT.value, nullable=False
    )
    website = db.Column(db.String(500), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    state = db.Column(db.String(50), nullable=True)
    zip_code = db.Column(db.String(20), nullable=True)
    dealer_group = db.Column(db.String(255), nullable=True)
    brands = db.Column(db.JSON, default=list)
    employee_count = db.Column(db.Integer, nullable=True)
    monthly_value = db.Column(db.Float, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    source = db.Column(db.String(50), nullable=True)  # manual | csv_import

    is_live = db.Column(db.Boolean, default=False, nullable=False)
    live_activated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    customer_since = db.Column(db.DateTime(timezone=True), nullable=True)

    assigned_user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=True, index=True
    )
    territory_id = db.Column(
        db.String(36), db.ForeignKey("territories.id"), nullable=True, index=True
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
    assigned_user = db.relationship("User", foreign_keys=[assigned_user_id])
    territory = db.relationship("Territory", back_populates="dealerships")
    contacts = db.relationship(
        "Contact", back_populates="dealership", lazy="dynamic"
    )
    deals = db.relationship("Deal", back_populates="dealership", lazy="dynamic")
    tasks = db.relationship("Task", back_populates="dealership", lazy="dynamic")
    activities = db.relationship(
        "Activity",
        back_populates="dealership",
        lazy="dynamic",
        order_by="Activity.created_at.desc()",
    )

    def __repr__(self):
        return f"<Dealership {self.name} ({self.status})>"
