from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from propertipro.extensions import db
from propertipro.models import ReconciliationReport
from propertipro.services.premium_service import PremiumError, cancel_premium_listing, expire_premium_listings
from propertipro.services.reconciliation_service import persist_report, reconcile_premium_listings
from propertipro.utils.activity import recent_activity

premium_admin_bp = Blueprint("premium_admin_bp", __name__, url_prefix="/api/admin/premium")


def _is_admin() -> bool:
    return getattr(g, "auth_user_id", None) is not None and (getattr(g, "auth_role", None) or "") == "admin"


def _admin_required():
    return jsonify({"message": "Admin required"}), 403


@premium_admin_bp.post("/reconcile")
def run_reconcile():
    if not _is_admin():
        return _admin_required()
    data = request.get_json(silent=True) or {}
    apply = bool(data.get("apply", True))
    summary = reconcile_premium_listings(apply=apply)
    report_id = None
    if bool(data.get("persist", True)):
        report = persist_report(summary, created_by=int(g.auth_user_id))
        report_id = int(report.id)
    return jsonify({"ok": True, "report_id": report_id, "summary": summary}), 200


@premium_admin_bp.get("/reconcile/latest")
def latest_report():
    if not _is_admin():
        return _admin_required()
    row = (
        ReconciliationReport.query.filter_by(scope="premium_listings")
        .order_by(ReconciliationReport.created_at.desc(), ReconciliationReport.id.desc())
        .first()
    )
    if not row:
        return jsonify({"ok": True, "report": None}), 200
    return jsonify({"ok": True, "report": row.to_dict()}), 200


@premium_admin_bp.post("/expire")
def run_expiry():
    if not _is_admin():
        return _admin_required()
    result = expire_premium_listings()
    return jsonify({"ok": True, **result}), 200


@premium_admin_bp.post("/<int:premium_id>/cancel")
def cancel(premium_id: int):
    if not _is_admin():
        return _admin_required()
    try:
        premium = cancel_premium_listing(premium_id)
    except PremiumError as e:
        db.session.rollback()
        msg = str(e)
        status = 404 if msg.endswith("not found") else 409
        return jsonify({"ok": False, "error": "PREMIUM_CANCEL_REJECTED", "message": msg}), status
    return jsonify({"ok": True, "premium_listing": premium.to_dict()}), 200


@premium_admin_bp.get("/activity")
def activity():
    if not _is_admin():
        return _admin_required()
    try:
        limit = int(request.args.get("limit") or 50)
    except Exception:
        limit = 50
    resource = (request.args.get("resource") or "").strip() or None
    rows = recent_activity(limit, resource=resource)
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200
