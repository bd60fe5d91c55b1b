from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from propertipro.extensions import db
from propertipro.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from propertipro.integrations.payments.factory import build_payments_provider
from propertipro.services.premium_service import (
    PremiumError,
    get_active_premium_listing,
    get_premium_plans,
    get_user_payments,
    get_user_premium_listings,
    record_analytics_event,
    start_premium_checkout,
)
from propertipro.utils.idempotency import lookup_response, release_key, store_response

premium_bp = Blueprint("premium_bp", __name__, url_prefix="/api/premium")


def _current_user_id():
    return getattr(g, "auth_user_id", None)


def _unauthorized():
    return jsonify({"ok": False, "error": "UNAUTHORIZED", "message": "Authentication required"}), 401


def _premium_error_status(message: str) -> int:
    if message.endswith("not found"):
        return 404
    if "already has an active premium" in message:
        return 409
    return 400


@premium_bp.get("/plans")
def list_plans():
    return jsonify({"ok": True, "plans": get_premium_plans()}), 200


@premium_bp.post("/checkout")
def checkout():
    uid = _current_user_id()
    if uid is None:
        return _unauthorized()
    data = request.get_json(silent=True) or {}
    property_id = str(data.get("property_id") or "").strip()
    if not property_id:
        return jsonify({"ok": False, "error": "VALIDATION_ERROR", "message": "property_id required"}), 400
    billing = data.get("billing_details") if isinstance(data.get("billing_details"), dict) else {}
    plan_id = str(data.get("plan_id") or "").strip() or None

    idem = lookup_response(
        int(uid),
        "premium_checkout",
        {"property_id": property_id, "plan_id": plan_id, "billing_details": billing},
    )
    if idem is not None:
        state, body_or_row, status = idem
        if state in ("hit", "conflict", "required"):
            return jsonify(body_or_row), int(status)
    idem_row = idem[1] if idem is not None and idem[0] == "miss" else None

    try:
        provider = build_payments_provider()
        result = start_premium_checkout(
            property_id=property_id,
            user_id=int(uid),
            plan_id=plan_id,
            billing=billing,
            provider=provider,
        )
    except PremiumError as e:
        release_key(idem_row)
        msg = str(e)
        return jsonify({"ok": False, "error": "PREMIUM_CHECKOUT_REJECTED", "message": msg}), _premium_error_status(msg)
    except (IntegrationDisabledError, IntegrationMisconfiguredError) as e:
        release_key(idem_row)
        current_app.logger.warning("premium_checkout_provider_unavailable err=%s", e)
        return jsonify({"ok": False, "error": "PAYMENTS_UNAVAILABLE", "message": str(e)}), 503
    except RuntimeError as e:
        release_key(idem_row)
        current_app.logger.warning("premium_checkout_invoice_failed err=%s", e)
        return jsonify({"ok": False, "error": "INVOICE_FAILED", "message": str(e)}), 502
    except Exception:
        release_key(idem_row)
        raise

    body = {"ok": True, **result}
    if idem_row is not None:
        store_response(idem_row, body, 201)
    return jsonify(body), 201


@premium_bp.get("/properties/<property_id>")
def property_premium(property_id: str):
    premium = get_active_premium_listing(property_id)
    return jsonify({"ok": True, "premium_listing": premium.to_dict() if premium else None}), 200


@premium_bp.post("/properties/<property_id>/events")
def property_event(property_id: str):
    data = request.get_json(silent=True) or {}
    try:
        premium = record_analytics_event(property_id, str(data.get("type") or ""))
    except PremiumError as e:
        db.session.rollback()
        return jsonify({"ok": False, "error": "VALIDATION_ERROR", "message": str(e)}), 400
    if premium is None:
        return jsonify({"ok": True, "recorded": False}), 200
    return jsonify({"ok": True, "recorded": True, "analytics": premium.to_dict()["analytics"]}), 200


@premium_bp.get("/me/listings")
def my_premium_listings():
    uid = _current_user_id()
    if uid is None:
        return _unauthorized()
    rows = get_user_premium_listings(int(uid))
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200


@premium_bp.get("/me/payments")
def my_payments():
    uid = _current_user_id()
    if uid is None:
        return _unauthorized()
    rows = get_user_payments(int(uid))
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200
