from datetime import datetime

from propertipro.extensions import db


class ActivityLog(db.Model):
    __tablename__ = "activity_logs"

    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(64), nullable=False, index=True)
    resource = db.Column(db.String(64), nullable=False, index=True)
    resource_id = db.Column(db.String(160), nullable=True, index=True)
    details = db.Column(db.Text, nullable=True)
    request_id = db.Column(db.String(80), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    def to_dict(self):
        return {
            "id": int(self.id),
            "action": self.action or "",
            "resource": self.resource or "",
            "resource_id": self.resource_id or "",
            "details": self.details or "",
            "request_id": self.request_id or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
