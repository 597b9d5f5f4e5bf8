"""Contact model: a person at an existing dealership."""

import uuid

from supreme_crm.extensions import db


class Contact(db.Model):
    __tablename__ = "contacts"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    dealership_id = db.Column(
        db.String(36),
        db.ForeignKey("dealerships.id"),
        nullable=False,
        index=True,
    )
    first_name = db.Column(db.String(120), nullable=False)
    last_name = db.Column(db.String(120), nullable=False, default="")
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    position = db.Column(db.String(255), nullable=True)
    is_primary = db.Column(db.Boolean, default=False, nullable=False)
    lead_score = db.Column(db.Integer, default=0, nullable=False)
    lead_scored_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    dealership = db.relationship("Dealership", back_populates="contacts")

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self):
        return f"<Contact {self.full_name}>"
