"""Territory model: the visibility partition for non-admin users."""

import uuid

from supreme_crm.extensions import db


class Territory(db.Model):
    __tablename__ = "territories"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name = db.Column(db.String(255), unique=True, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    users = db.relationship("User", back_populates="territory", lazy="dynamic")
    dealerships = db.relationship(
        "Dealership", back_populates="territory", lazy="dynamic"
    )

    def __repr__(self):
        return f"<Territory {self.name}>"
