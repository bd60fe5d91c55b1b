from __future__ import annotations

from flask import Blueprint, jsonify, request

from propertipro.services.listing_service import get_listing, list_listings

listings_bp = Blueprint("listings_bp", __name__, url_prefix="/api/listings")


@listings_bp.get("")
def index():
    sort = (request.args.get("sort") or "newest").strip().lower()
    city = (request.args.get("city") or "").strip() or None
    try:
        limit = int(request.args.get("limit") or 50)
    except Exception:
        limit = 50
    try:
        rows = list_listings(sort=sort, city=city, limit=limit)
    except ValueError as e:
        return jsonify({"ok": False, "error": "VALIDATION_ERROR", "message": str(e)}), 400
    return jsonify({"ok": True, "sort": sort, "items": [r.to_dict() for r in rows]}), 200


@listings_bp.get("/<listing_id>")
def detail(listing_id: str):
    listing = get_listing(listing_id)
    if listing is None:
        return jsonify({"ok": False, "error": "NOT_FOUND", "message": "Listing not found"}), 404
    return jsonify({"ok": True, "listing": listing.to_dict()}), 200
