from datetime import datetime
import json

from propertipro.extensions import db


class PremiumListing(db.Model):
    __tablename__ = "premium_listings"

    id = db.Column(db.Integer, primary_key=True)

    property_id = db.Column(db.String(36), db.ForeignKey("listings.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)
    plan_id = db.Column(db.String(64), nullable=False, default="premium-monthly")
    payment_id = db.Column(db.Integer, db.ForeignKey("ad_payments.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default="pending", server_default="pending", index=True)
    start_date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    end_date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    views = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    inquiries = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    favorites = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    conversion_rate = db.Column(db.Float, nullable=False, default=0.0, server_default="0")
    daily_views_json = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def effective_status(self, now: datetime | None = None) -> str:
        """Stored status, except an active row past its end date reads as expired."""
        status = (self.status or "pending").strip().lower()
        now = now or datetime.utcnow()
        if status == "active" and self.end_date is not None and self.end_date <= now:
            return "expired"
        return status

    def daily_views(self) -> dict:
        raw = self.daily_views_json
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, dict):
                return {str(k): int(v or 0) for k, v in parsed.items()}
        except Exception:
            pass
        return {}

    def to_dict(self, now: datetime | None = None):
        daily = self.daily_views()
        return {
            "id": int(self.id),
            "property_id": self.property_id,
            "user_id": int(self.user_id) if self.user_id is not None else None,
            "plan_id": self.plan_id or "",
            "payment_id": int(self.payment_id) if self.payment_id is not None else None,
            "status": self.effective_status(now),
            "stored_status": self.status or "",
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "analytics": {
                "views": int(self.views or 0),
                "inquiries": int(self.inquiries or 0),
                "favorites": int(self.favorites or 0),
                "conversion_rate": float(self.conversion_rate or 0.0),
                "daily_views": [{"date": d, "views": daily[d]} for d in sorted(daily.keys())],
            },
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
