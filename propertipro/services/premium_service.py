from __future__ import annotations

import json
import os
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import or_

from propertipro.extensions import db
from propertipro.integrations.payments.base import PaymentsProvider
from propertipro.integrations.payments.callbacks import PREMIUM_ORDER_PREFIX
from propertipro.models import AdPayment, Listing, PremiumListing
from propertipro.services.listing_service import get_listing, has_live_premium, set_promoted
from propertipro.services.payment_service import PaymentStatus, transition_payment
from propertipro.utils.activity import (
    PREMIUM_ACTIVATED,
    PREMIUM_CANCELLED,
    PREMIUM_EXPIRED,
    log_activity,
)


class PremiumStatus:
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class PremiumError(ValueError):
    pass


DEFAULT_PLAN_ID = "premium-monthly"
DEFAULT_DURATION_DAYS = 30
ANALYTICS_KINDS = ("view", "inquiry", "favorite")


def _plan_currency() -> str:
    return (os.getenv("PREMIUM_CURRENCY") or "USD").strip().upper() or "USD"


def get_premium_plans() -> list[dict]:
    return [
        {
            "id": DEFAULT_PLAN_ID,
            "name": "Premium Listing",
            "price": 29.99,
            "currency": _plan_currency(),
            "duration_days": DEFAULT_DURATION_DAYS,
            "description": "Boost your property visibility with premium features",
            "features": [
                "Featured placement at top of search results",
                "Golden highlighted border",
                "Larger photo gallery (up to 20 images)",
                "Extended listing duration (30 days)",
                "Virtual tour integration",
                "Detailed analytics dashboard",
                "Priority customer support",
                "Social media promotion",
            ],
        }
    ]


def get_plan(plan_id: str | None) -> dict:
    wanted = (plan_id or DEFAULT_PLAN_ID).strip()
    for plan in get_premium_plans():
        if plan["id"] == wanted:
            return plan
    raise PremiumError("Premium plan not found")


def _plan_duration_days(plan_id: str | None) -> int:
    try:
        return int(get_plan(plan_id)["duration_days"])
    except PremiumError:
        return DEFAULT_DURATION_DAYS


def build_order_id(property_id: str, now: datetime | None = None) -> str:
    pid = str(property_id or "").strip()
    if not pid or "-" in pid:
        raise PremiumError("property id must be non-empty and must not contain '-'")
    stamp = int((now or datetime.utcnow()).timestamp() * 1000)
    return f"{PREMIUM_ORDER_PREFIX}{pid}-{stamp}"


def create_payment(
    *,
    order_id: str,
    amount: float,
    currency: str,
    user_id: int | None = None,
    billing: dict | None = None,
    commit: bool = True,
) -> AdPayment:
    order_id = (order_id or "").strip()
    if not order_id:
        raise PremiumError("order_id required")
    if float(amount or 0.0) <= 0:
        raise PremiumError("amount must be > 0")
    now = datetime.utcnow()
    payment = AdPayment(
        user_id=int(user_id) if user_id is not None else None,
        external_order_id=order_id[:160],
        amount=float(amount),
        currency=(currency or "IDR").strip().upper()[:8],
        status=PaymentStatus.PENDING,
        billing_json=json.dumps(billing or {}),
        created_at=now,
        updated_at=now,
    )
    db.session.add(payment)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return payment


def update_payment_status(payment_id: int, status: str, transaction_id: str | None = None) -> AdPayment:
    payment = db.session.get(AdPayment, int(payment_id))
    if payment is None:
        raise PremiumError("Payment not found")
    transition_payment(payment, status, transaction_id=transaction_id)
    db.session.commit()
    return payment


def create_premium_listing(
    *,
    property_id: str,
    user_id: int | None,
    plan_id: str | None,
    payment_id: int | None,
    commit: bool = True,
) -> PremiumListing:
    plan = get_plan(plan_id)
    now = datetime.utcnow()
    premium = PremiumListing(
        property_id=str(property_id),
        user_id=int(user_id) if user_id is not None else None,
        plan_id=plan["id"],
        payment_id=int(payment_id) if payment_id is not None else None,
        status=PremiumStatus.PENDING,
        start_date=now,
        end_date=now + timedelta(days=int(plan["duration_days"])),
        views=0,
        inquiries=0,
        favorites=0,
        conversion_rate=0.0,
        daily_views_json="{}",
        created_at=now,
        updated_at=now,
    )
    db.session.add(premium)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return premium


def start_premium_checkout(
    *,
    property_id: str,
    user_id: int | None,
    plan_id: str | None,
    billing: dict | None,
    provider: PaymentsProvider,
) -> dict:
    """Create the pending payment and premium rows and open a gateway invoice."""
    listing = get_listing(property_id)
    if listing is None:
        raise PremiumError("Property not found")
    if has_live_premium(listing.id):
        raise PremiumError("Property already has an active premium listing")
    plan = get_plan(plan_id)

    order_id = build_order_id(listing.id)
    try:
        payment = create_payment(
            order_id=order_id,
            amount=float(plan["price"]),
            currency=plan["currency"],
            user_id=user_id,
            billing=billing,
            commit=False,
        )
        premium = create_premium_listing(
            property_id=listing.id,
            user_id=user_id,
            plan_id=plan["id"],
            payment_id=int(payment.id),
            commit=False,
        )
        invoice = provider.create_invoice(
            external_id=order_id,
            amount=float(plan["price"]),
            currency=plan["currency"],
            description=f"{plan['name']} - {listing.title}",
            billing=billing,
            items=[{"name": plan["name"], "price": float(plan["price"]), "quantity": 1}],
        )
        payment.invoice_url = (invoice.invoice_url or "")[:512] or None
        db.session.add(payment)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "premium_checkout_started order_id=%s property_id=%s payment_id=%s provider=%s",
        order_id,
        listing.id,
        payment.id,
        getattr(provider, "name", "unknown"),
    )
    return {
        "order_id": order_id,
        "invoice_url": payment.invoice_url or "",
        "payment": payment.to_dict(),
        "premium_listing": premium.to_dict(),
    }


def activate_premium_listing(premium: PremiumListing, now: datetime | None = None) -> bool:
    """Flip a pending premium row to active and promote its property.

    Does not commit. Returns False when the row was already active.
    """
    now = now or datetime.utcnow()
    status = (premium.status or "").strip().lower()
    if status == PremiumStatus.ACTIVE:
        set_promoted(premium.property_id, True)
        return False
    if status != PremiumStatus.PENDING:
        raise PremiumError(f"cannot activate premium listing in status {status}")
    payment = db.session.get(AdPayment, int(premium.payment_id)) if premium.payment_id is not None else None
    if payment is None or (payment.status or "") != PaymentStatus.PAID:
        raise PremiumError("premium listing payment is not paid")

    premium.status = PremiumStatus.ACTIVE
    premium.start_date = now
    premium.end_date = now + timedelta(days=_plan_duration_days(premium.plan_id))
    premium.updated_at = now
    db.session.add(premium)
    set_promoted(premium.property_id, True)
    log_activity(
        PREMIUM_ACTIVATED,
        resource="premium_listings",
        resource_id=premium.id,
        details=f"Premium listing activated for property {premium.property_id}",
    )
    return True


def get_active_premium_listing(property_id: str, now: datetime | None = None) -> PremiumListing | None:
    now = now or datetime.utcnow()
    return (
        PremiumListing.query.filter(
            PremiumListing.property_id == str(property_id),
            PremiumListing.status == PremiumStatus.ACTIVE,
            PremiumListing.end_date > now,
        )
        .order_by(PremiumListing.end_date.desc())
        .first()
    )


def get_user_premium_listings(user_id: int) -> list[PremiumListing]:
    return (
        PremiumListing.query.filter_by(user_id=int(user_id))
        .order_by(PremiumListing.created_at.desc())
        .all()
    )


def get_user_payments(user_id: int) -> list[AdPayment]:
    payment_ids = [int(p.payment_id) for p in get_user_premium_listings(user_id) if p.payment_id is not None]
    q = AdPayment.query
    if payment_ids:
        q = q.filter(or_(AdPayment.user_id == int(user_id), AdPayment.id.in_(payment_ids)))
    else:
        q = q.filter(AdPayment.user_id == int(user_id))
    return q.order_by(AdPayment.created_at.desc()).all()


def record_analytics_event(property_id: str, kind: str, now: datetime | None = None) -> PremiumListing | None:
    kind = (kind or "").strip().lower()
    if kind not in ANALYTICS_KINDS:
        raise PremiumError(f"type must be one of {', '.join(ANALYTICS_KINDS)}")
    now = now or datetime.utcnow()
    premium = get_active_premium_listing(property_id, now)
    if premium is None:
        return None

    if kind == "view":
        premium.views = int(premium.views or 0) + 1
        daily = premium.daily_views()
        today = now.date().isoformat()
        daily[today] = int(daily.get(today, 0)) + 1
        premium.daily_views_json = json.dumps(daily, sort_keys=True)
    elif kind == "inquiry":
        premium.inquiries = int(premium.inquiries or 0) + 1
    else:
        premium.favorites = int(premium.favorites or 0) + 1

    views = int(premium.views or 0)
    if views > 0:
        premium.conversion_rate = round((int(premium.inquiries or 0) / views) * 100.0, 4)
    premium.updated_at = now
    db.session.add(premium)
    db.session.commit()
    return premium


def expire_premium_listings(now: datetime | None = None, *, commit: bool = True) -> dict:
    now = now or datetime.utcnow()
    rows = PremiumListing.query.filter(
        PremiumListing.status == PremiumStatus.ACTIVE,
        PremiumListing.end_date <= now,
    ).all()
    property_ids: set[str] = set()
    for premium in rows:
        premium.status = PremiumStatus.EXPIRED
        premium.updated_at = now
        db.session.add(premium)
        property_ids.add(premium.property_id)
        log_activity(
            PREMIUM_EXPIRED,
            resource="premium_listings",
            resource_id=premium.id,
            details=f"Premium listing expired for property {premium.property_id}",
        )
    db.session.flush()

    unpromoted = []
    for pid in sorted(property_ids):
        if has_live_premium(pid, now):
            continue
        listing = db.session.get(Listing, pid)
        if listing is not None and listing.is_promoted:
            set_promoted(pid, False)
            unpromoted.append(pid)
    if commit:
        db.session.commit()
    return {
        "expired": len(rows),
        "expired_ids": [int(r.id) for r in rows],
        "unpromoted": unpromoted,
    }


def cancel_premium_listing(premium_id: int, now: datetime | None = None) -> PremiumListing:
    now = now or datetime.utcnow()
    premium = db.session.get(PremiumListing, int(premium_id))
    if premium is None:
        raise PremiumError("Premium listing not found")
    status = (premium.status or "").strip().lower()
    if status == PremiumStatus.CANCELLED:
        return premium
    if status not in (PremiumStatus.PENDING, PremiumStatus.ACTIVE):
        raise PremiumError(f"cannot cancel premium listing in status {status}")
    premium.status = PremiumStatus.CANCELLED
    premium.updated_at = now
    db.session.add(premium)
    db.session.flush()
    if not has_live_premium(premium.property_id, now):
        set_promoted(premium.property_id, False)
    log_activity(
        PREMIUM_CANCELLED,
        resource="premium_listings",
        resource_id=premium.id,
        details=f"Premium listing cancelled for property {premium.property_id}",
    )
    db.session.commit()
    return premium
