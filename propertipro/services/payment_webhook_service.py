from __future__ import annotations

import hashlib
import json
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from propertipro.extensions import db
from propertipro.integrations.payments.callbacks import (
    KIND_FAILURE,
    KIND_SUCCESS,
    PaymentCallback,
)
from propertipro.models import AdPayment, PremiumListing, WebhookEvent
from propertipro.services.payment_service import PaymentStatus, can_transition, transition_payment
from propertipro.services.premium_service import PremiumError, PremiumStatus, activate_premium_listing
from propertipro.utils.activity import PAYMENT_EXPIRED, PAYMENT_FAILED, PAYMENT_RECEIVED, log_activity
from propertipro.utils.observability import get_request_id


PROVIDER = "xendit"
DEFAULT_PAYMENT_METHOD = "xendit"

MATCH_TRANSACTION_ID = "transaction_id"
MATCH_EXTERNAL_ORDER_ID = "external_order_id"
MATCH_TRANSACTION_ID_CONTAINS = "transaction_id_contains"
FALLBACK_MATCHES = (MATCH_EXTERNAL_ORDER_ID, MATCH_TRANSACTION_ID_CONTAINS)


class PaymentRecordNotFound(LookupError):
    pass


class AmbiguousPaymentMatch(LookupError):
    pass


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def find_payment_for_callback(callback: PaymentCallback) -> tuple[AdPayment | None, str | None]:
    """Two-tier correlation: gateway id first, then our order id."""
    if callback.id:
        payment = AdPayment.query.filter_by(transaction_id=callback.id).first()
        if payment is not None:
            return payment, MATCH_TRANSACTION_ID

    external_id = callback.external_id
    if not external_id:
        return None, None

    payment = AdPayment.query.filter_by(external_order_id=external_id).first()
    if payment is not None:
        return payment, MATCH_EXTERNAL_ORDER_ID

    # Rows written before external_order_id existed only carry the order id
    # inside a provisional transaction_id.
    candidates = (
        AdPayment.query.filter(AdPayment.transaction_id.ilike(f"%{_escape_like(external_id)}%", escape="\\"))
        .order_by(AdPayment.id.asc())
        .limit(2)
        .all()
    )
    if len(candidates) > 1:
        raise AmbiguousPaymentMatch(f"Multiple payment records match external_id: {external_id}")
    if candidates:
        return candidates[0], MATCH_TRANSACTION_ID_CONTAINS
    return None, None


def _find_processed_event(callback: PaymentCallback) -> WebhookEvent | None:
    return WebhookEvent.query.filter_by(provider=PROVIDER, event_id=callback.event_key).first()


def _payload_hash(payload) -> str:
    try:
        raw = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    except Exception:
        raw = str(payload)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _record_event(callback: PaymentCallback, payload, now: datetime) -> None:
    db.session.add(
        WebhookEvent(
            provider=PROVIDER,
            event_id=callback.event_key,
            reference=(callback.external_id or "")[:160] or None,
            status="processed",
            processed_at=now,
            request_id=(get_request_id() or "")[:80] or None,
            payload_hash=_payload_hash(payload),
            created_at=now,
        )
    )


def _commit_or_replay(callback: PaymentCallback) -> bool:
    """Commit the unit of work. False means a concurrent delivery won the race."""
    try:
        db.session.commit()
        return True
    except IntegrityError:
        db.session.rollback()
        if _find_processed_event(callback) is not None:
            current_app.logger.info("payment_webhook_concurrent_replay event=%s", callback.event_key)
            return False
        raise


def _warn_on_amount_mismatch(payment: AdPayment, callback: PaymentCallback) -> None:
    if callback.amount is None:
        return
    expected = float(payment.amount or 0.0)
    if abs(expected - float(callback.amount)) > 0.01:
        current_app.logger.warning(
            "payment_webhook_amount_mismatch payment_id=%s expected=%s received=%s",
            payment.id,
            expected,
            callback.amount,
        )


def _cascade_premium_activation(callback: PaymentCallback, payment: AdPayment, now: datetime) -> PremiumListing | None:
    property_id = callback.property_id
    if not property_id:
        current_app.logger.warning(
            "payment_webhook_premium_order_unparsable external_id=%s", callback.external_id
        )
        return None
    premium = PremiumListing.query.filter_by(property_id=property_id, payment_id=int(payment.id)).first()
    if premium is None:
        # Not every payment is a premium upgrade.
        return None
    if (premium.status or "") in (PremiumStatus.EXPIRED, PremiumStatus.CANCELLED):
        current_app.logger.warning(
            "payment_webhook_premium_not_activatable premium_id=%s status=%s", premium.id, premium.status
        )
        return premium
    activate_premium_listing(premium, now)
    return premium


def handle_payment_success(callback: PaymentCallback, payload=None) -> dict:
    now = datetime.utcnow()
    payment, match = find_payment_for_callback(callback)
    if payment is None:
        raise PaymentRecordNotFound(f"Payment record not found for external_id: {callback.external_id}")

    _warn_on_amount_mismatch(payment, callback)
    if not can_transition(payment, PaymentStatus.PAID):
        current_app.logger.warning(
            "payment_webhook_stale_success payment_id=%s status=%s", payment.id, payment.status
        )
        _record_event(callback, payload, now)
        if not _commit_or_replay(callback):
            return {"success": True, "replayed": True}
        return {"success": True}

    method = callback.payment_method or callback.payment_channel or payment.payment_method or DEFAULT_PAYMENT_METHOD
    changed = transition_payment(
        payment,
        PaymentStatus.PAID,
        transaction_id=callback.id,
        payment_method=method,
        now=now,
    )

    premium = None
    if match in FALLBACK_MATCHES and callback.is_premium:
        try:
            premium = _cascade_premium_activation(callback, payment, now)
        except PremiumError as e:
            current_app.logger.warning(
                "payment_webhook_premium_activation_skipped payment_id=%s err=%s", payment.id, e
            )

    if changed:
        log_activity(
            PAYMENT_RECEIVED,
            resource="ad_payments",
            resource_id=callback.id,
            details=f"Payment received for order {callback.external_id}",
        )
    _record_event(callback, payload, now)
    if not _commit_or_replay(callback):
        return {"success": True, "replayed": True}

    current_app.logger.info(
        "payment_webhook_paid payment_id=%s match=%s changed=%s premium_id=%s",
        payment.id,
        match,
        changed,
        premium.id if premium is not None else None,
    )
    return {"success": True}


def handle_payment_failure(callback: PaymentCallback, payload=None) -> dict:
    now = datetime.utcnow()
    payment, match = find_payment_for_callback(callback)
    if payment is None:
        current_app.logger.info(
            "payment_webhook_failure_unmatched id=%s external_id=%s", callback.id, callback.external_id
        )
        return {"success": True}

    changed = False
    if can_transition(payment, PaymentStatus.FAILED):
        changed = transition_payment(payment, PaymentStatus.FAILED, now=now)
    else:
        current_app.logger.warning(
            "payment_webhook_stale_failure payment_id=%s status=%s event=%s",
            payment.id,
            payment.status,
            callback.status,
        )

    if changed:
        log_activity(
            PAYMENT_EXPIRED if callback.status == "EXPIRED" else PAYMENT_FAILED,
            resource="ad_payments",
            resource_id=callback.id,
            details=f"Payment {callback.status.lower()} for order {callback.external_id or ''}",
        )
    _record_event(callback, payload, now)
    if not _commit_or_replay(callback):
        return {"success": True, "replayed": True}

    current_app.logger.info(
        "payment_webhook_failed payment_id=%s match=%s changed=%s", payment.id, match, changed
    )
    return {"success": True}


def process_payment_callback(callback: PaymentCallback, payload=None) -> dict:
    """Apply one gateway callback. Raises on anything the gateway should retry."""
    if callback.kind not in (KIND_SUCCESS, KIND_FAILURE):
        current_app.logger.info("payment_webhook_ignored status=%s", callback.status)
        return {"success": True}

    if _find_processed_event(callback) is not None:
        current_app.logger.info("payment_webhook_replay event=%s", callback.event_key)
        return {"success": True, "replayed": True}

    if callback.kind == KIND_SUCCESS:
        return handle_payment_success(callback, payload)
    return handle_payment_failure(callback, payload)
