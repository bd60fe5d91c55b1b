from datetime import datetime
import uuid

import sqlalchemy as sa

from propertipro.extensions import db


def _new_listing_id() -> str:
    # Hex form has no "-", so it survives the premium-<propertyId>-<stamp> order id split.
    return uuid.uuid4().hex


class Listing(db.Model):
    __tablename__ = "listings"

    id = db.Column(db.String(36), primary_key=True, default=_new_listing_id)

    # Owning agent/user id
    user_id = db.Column(db.Integer, nullable=True, index=True)

    title = db.Column(db.String(160), nullable=False)
    description = db.Column(db.Text, nullable=True)

    property_type = db.Column(db.String(24), nullable=True, index=True)
    city = db.Column(db.String(64), nullable=True, index=True)
    state = db.Column(db.String(64), nullable=True)

    price = db.Column(db.Float, nullable=False, default=0.0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    # Flipped by the payment webhook when a premium upgrade is confirmed.
    is_promoted = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"), index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": int(self.user_id) if self.user_id is not None else None,
            "title": self.title or "",
            "description": self.description or "",
            "property_type": self.property_type or "",
            "city": self.city or "",
            "state": self.state or "",
            "price": float(self.price or 0.0),
            "is_active": bool(self.is_active),
            "is_promoted": bool(self.is_promoted),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
