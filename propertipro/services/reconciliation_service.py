from __future__ import annotations

import json
from datetime import datetime

from flask import current_app

from propertipro.extensions import db
from propertipro.models import AdPayment, Listing, PremiumListing, ReconciliationReport
from propertipro.services.listing_service import has_live_premium, set_promoted
from propertipro.services.payment_service import PaymentStatus
from propertipro.services.premium_service import (
    PremiumError,
    PremiumStatus,
    activate_premium_listing,
    expire_premium_listings,
)
from propertipro.utils.activity import PREMIUM_RECONCILED, log_activity


def _paid_pending_premiums() -> list[PremiumListing]:
    return (
        PremiumListing.query.join(AdPayment, AdPayment.id == PremiumListing.payment_id)
        .filter(
            PremiumListing.status == PremiumStatus.PENDING,
            AdPayment.status == PaymentStatus.PAID,
        )
        .order_by(PremiumListing.id.asc())
        .all()
    )


def reconcile_premium_listings(*, now: datetime | None = None, apply: bool = True) -> dict:
    """Converge premium rows and promotion flags with payment state.

    Covers writes that happened outside the webhook's unit of work: paid
    payments whose premium row never activated, windows that ran out, and
    promoted properties with nothing live behind them.
    """
    now = now or datetime.utcnow()

    activated = []
    activation_errors = []
    for premium in _paid_pending_premiums():
        item = {
            "premium_id": int(premium.id),
            "property_id": premium.property_id,
            "payment_id": int(premium.payment_id),
        }
        if apply:
            try:
                activate_premium_listing(premium, now)
            except PremiumError as e:
                current_app.logger.warning("premium_reconcile_activation_failed premium_id=%s err=%s", premium.id, e)
                item["error"] = str(e)
                activation_errors.append(item)
                continue
            log_activity(
                PREMIUM_RECONCILED,
                resource="premium_listings",
                resource_id=premium.id,
                details=f"Activated by reconciliation sweep for payment {premium.payment_id}",
            )
        activated.append(item)

    if apply:
        db.session.flush()
        expiry = expire_premium_listings(now, commit=False)
    else:
        overdue = PremiumListing.query.filter(
            PremiumListing.status == PremiumStatus.ACTIVE,
            PremiumListing.end_date <= now,
        ).all()
        expiry = {"expired": len(overdue), "expired_ids": [int(r.id) for r in overdue], "unpromoted": []}

    drift_items = []
    for listing in Listing.query.filter(Listing.is_promoted.is_(True)).order_by(Listing.id.asc()).all():
        if has_live_premium(listing.id, now):
            continue
        drift_items.append({"property_id": listing.id, "is_promoted": True, "live_premium": False})
        if apply:
            set_promoted(listing.id, False)

    if apply:
        db.session.commit()

    summary = {
        "ok": True,
        "scope": "premium_listings",
        "applied": bool(apply),
        "activated_count": len(activated),
        "activated": activated,
        "activation_error_count": len(activation_errors),
        "activation_errors": activation_errors,
        "expired_count": int(expiry.get("expired") or 0),
        "expired_ids": expiry.get("expired_ids") or [],
        "drift_count": len(drift_items),
        "drift_items": drift_items,
        "generated_at": now.isoformat(),
    }
    current_app.logger.info(
        "premium_reconcile_done applied=%s activated=%s errors=%s expired=%s drift=%s",
        bool(apply),
        summary["activated_count"],
        summary["activation_error_count"],
        summary["expired_count"],
        summary["drift_count"],
    )
    return summary


def unresolved_count(summary: dict) -> int:
    """Number of rows a sweep found out of line, whether or not it could repair them."""
    return (
        int(summary.get("drift_count") or 0)
        + int(summary.get("activated_count") or 0)
        + int(summary.get("activation_error_count") or 0)
    )


def persist_report(summary: dict, *, created_by: int | None = None) -> ReconciliationReport:
    report = ReconciliationReport(
        scope=(summary.get("scope") or "premium_listings")[:64],
        summary_json=json.dumps(summary)[:200000],
        drift_count=unresolved_count(summary),
        created_by=int(created_by) if created_by is not None else None,
        created_at=datetime.utcnow(),
    )
    db.session.add(report)
    db.session.commit()
    return report
