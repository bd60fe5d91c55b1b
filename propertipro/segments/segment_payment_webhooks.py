from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from propertipro.extensions import db
from propertipro.integrations.common import IntegrationMisconfiguredError
from propertipro.integrations.payments.callbacks import PaymentCallback, verify_callback_token
from propertipro.services.payment_webhook_service import process_payment_callback
from propertipro.utils.observability import get_request_id

webhooks_bp = Blueprint("webhooks_bp", __name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Callback-Token",
}

_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _with_cors(response, status: int):
    response.status_code = int(status)
    for key, value in CORS_HEADERS.items():
        response.headers[key] = value
    return response


def _json(body: dict, status: int):
    return _with_cors(jsonify(body), status)


@webhooks_bp.route("/payment-webhook", methods=_METHODS, provide_automatic_options=False)
@webhooks_bp.route("/api/webhooks/xendit", methods=_METHODS, provide_automatic_options=False)
def xendit_payment_webhook():
    if request.method == "OPTIONS":
        return _with_cors(current_app.response_class(status=204), 204)
    if request.method != "POST":
        return _json({"error": "Method not allowed"}, 405)

    try:
        if not verify_callback_token(request.headers.get("X-Callback-Token")):
            current_app.logger.warning("payment_webhook_unauthorized request_id=%s", get_request_id())
            return _json({"error": "Invalid callback token"}, 401)
    except IntegrationMisconfiguredError as e:
        current_app.logger.error("payment_webhook_token_unconfigured")
        return _json({"error": str(e)}, 500)

    try:
        payload = request.get_json(silent=True)
        callback = PaymentCallback.from_payload(payload)
        current_app.logger.info(
            "payment_webhook_received id=%s external_id=%s status=%s",
            callback.id,
            callback.external_id,
            callback.status,
        )
        body = process_payment_callback(callback, payload)
        return _json(body, 200)
    except Exception as e:
        current_app.logger.exception("payment_webhook_failed request_id=%s", get_request_id())
        try:
            db.session.rollback()
        except Exception:
            pass
        return _json({"error": str(e)}, 500)
