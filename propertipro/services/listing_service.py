from __future__ import annotations

from datetime import datetime

from flask import current_app

from propertipro.extensions import db
from propertipro.models import Listing, PremiumListing


SORTS = ("newest", "premium", "price_asc", "price_desc")


def create_listing(
    *,
    title: str,
    user_id: int | None = None,
    price: float = 0.0,
    city: str | None = None,
    state: str | None = None,
    property_type: str | None = None,
    description: str | None = None,
    listing_id: str | None = None,
) -> Listing:
    title = (title or "").strip()
    if not title:
        raise ValueError("title required")
    listing = Listing(
        title=title[:160],
        user_id=int(user_id) if user_id is not None else None,
        price=float(price or 0.0),
        city=(city or "").strip() or None,
        state=(state or "").strip() or None,
        property_type=(property_type or "").strip().lower() or None,
        description=description,
        is_active=True,
        is_promoted=False,
    )
    if listing_id:
        listing.id = str(listing_id).strip()
    db.session.add(listing)
    db.session.commit()
    return listing


def get_listing(listing_id: str | None) -> Listing | None:
    if not listing_id:
        return None
    return db.session.get(Listing, str(listing_id))


def set_promoted(listing_id: str | None, flag: bool, *, commit: bool = False) -> Listing | None:
    listing = get_listing(listing_id)
    if listing is None:
        current_app.logger.warning("listing_promotion_target_missing listing_id=%s", listing_id)
        return None
    if bool(listing.is_promoted) != bool(flag):
        listing.is_promoted = bool(flag)
        listing.updated_at = datetime.utcnow()
        db.session.add(listing)
    if commit:
        db.session.commit()
    return listing


def has_live_premium(listing_id: str, now: datetime | None = None) -> bool:
    now = now or datetime.utcnow()
    q = PremiumListing.query.filter(
        PremiumListing.property_id == str(listing_id),
        PremiumListing.status == "active",
        PremiumListing.end_date > now,
    )
    return q.first() is not None


def refresh_promotion(listing_id: str, now: datetime | None = None, *, commit: bool = False) -> Listing | None:
    return set_promoted(listing_id, has_live_premium(listing_id, now), commit=commit)


def list_listings(*, sort: str = "newest", city: str | None = None, limit: int = 50) -> list[Listing]:
    sort = (sort or "newest").strip().lower()
    if sort not in SORTS:
        raise ValueError(f"sort must be one of {', '.join(SORTS)}")
    q = Listing.query.filter(Listing.is_active.is_(True))
    if city:
        q = q.filter(Listing.city.ilike(city.strip()))
    if sort == "premium":
        q = q.order_by(Listing.is_promoted.desc(), Listing.created_at.desc())
    elif sort == "price_asc":
        q = q.order_by(Listing.price.asc(), Listing.created_at.desc())
    elif sort == "price_desc":
        q = q.order_by(Listing.price.desc(), Listing.created_at.desc())
    else:
        q = q.order_by(Listing.created_at.desc())
    return q.limit(max(1, min(int(limit or 50), 200))).all()
