from datetime import datetime

from propertipro.extensions import db


class WebhookEvent(db.Model):
    __tablename__ = "webhook_events"

    id = db.Column(db.Integer, primary_key=True)
    provider = db.Column(db.String(32), nullable=False, default="xendit")
    event_id = db.Column(db.String(200), nullable=False, unique=True)
    reference = db.Column(db.String(160), nullable=True)
    status = db.Column(db.String(32), nullable=False, default="processed")
    processed_at = db.Column(db.DateTime, nullable=True)
    request_id = db.Column(db.String(80), nullable=True)
    payload_hash = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "provider": self.provider,
            "event_id": self.event_id,
            "reference": self.reference or "",
            "status": self.status or "",
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "request_id": self.request_id or "",
            "payload_hash": self.payload_hash or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
