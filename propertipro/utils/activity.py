from __future__ import annotations

from datetime import datetime

from propertipro.extensions import db
from propertipro.models import ActivityLog
from propertipro.utils.observability import get_request_id


PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
PAYMENT_EXPIRED = "PAYMENT_EXPIRED"
PAYMENT_FAILED = "PAYMENT_FAILED"
PREMIUM_ACTIVATED = "PREMIUM_ACTIVATED"
PREMIUM_EXPIRED = "PREMIUM_EXPIRED"
PREMIUM_CANCELLED = "PREMIUM_CANCELLED"
PREMIUM_RECONCILED = "PREMIUM_RECONCILED"


def log_activity(
    action: str,
    *,
    resource: str,
    resource_id: int | str | None = None,
    details: str = "",
    request_id: str | None = None,
    commit: bool = False,
) -> ActivityLog:
    """Append an audit row to the current session.

    The row rides along with whatever state change the caller is about to
    commit, so a rolled back change never leaves an orphan entry behind.
    Pass ``commit=True`` for standalone entries.
    """
    entry = ActivityLog(
        action=(action or "UNKNOWN").strip().upper()[:64],
        resource=(resource or "").strip()[:64],
        resource_id=str(resource_id)[:160] if resource_id is not None else None,
        details=details or "",
        request_id=(request_id or get_request_id() or "").strip()[:80] or None,
        created_at=datetime.utcnow(),
    )
    db.session.add(entry)
    if commit:
        db.session.commit()
    return entry


def recent_activity(limit: int = 50, *, resource: str | None = None) -> list[ActivityLog]:
    q = ActivityLog.query
    if resource:
        q = q.filter_by(resource=resource)
    return q.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(max(1, min(int(limit), 500))).all()
