from datetime import datetime
import json

from propertipro.extensions import db


class AdPayment(db.Model):
    __tablename__ = "ad_payments"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)

    # Order id we hand to the gateway as external_id at checkout.
    external_order_id = db.Column(db.String(160), nullable=True, unique=True, index=True)
    # Gateway id, unknown until the first callback. Older rows may carry a
    # provisional value that embeds the order id.
    transaction_id = db.Column(db.String(160), nullable=True, index=True)

    amount = db.Column(db.Float, nullable=False, default=0.0)
    currency = db.Column(db.String(8), nullable=False, default="IDR", server_default="IDR")
    status = db.Column(db.String(16), nullable=False, default="pending", server_default="pending", index=True)
    payment_method = db.Column(db.String(64), nullable=True)
    payment_date = db.Column(db.DateTime, nullable=True)

    invoice_url = db.Column(db.String(512), nullable=True)
    billing_json = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def billing_dict(self) -> dict:
        raw = self.billing_json
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, dict):
                return parsed
        except Exception:
            pass
        return {}

    def to_dict(self):
        return {
            "id": int(self.id),
            "user_id": int(self.user_id) if self.user_id is not None else None,
            "external_order_id": self.external_order_id or "",
            "transaction_id": self.transaction_id or "",
            "amount": float(self.amount or 0.0),
            "currency": self.currency or "",
            "status": self.status or "",
            "payment_method": self.payment_method or "",
            "payment_date": self.payment_date.isoformat() if self.payment_date else None,
            "invoice_url": self.invoice_url or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
