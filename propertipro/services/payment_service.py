from __future__ import annotations

from datetime import datetime

from propertipro.extensions import db
from propertipro.models import AdPayment


class PaymentStatus:
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

    ALL = (PENDING, PAID, FAILED, REFUNDED)
    ALLOWED = {
        PENDING: {PENDING, PAID, FAILED},
        # A gateway success confirmation outranks an earlier expiry.
        FAILED: {FAILED, PAID},
        PAID: {PAID, REFUNDED},
        REFUNDED: {REFUNDED},
    }


class InvalidPaymentTransition(ValueError):
    def __init__(self, current: str, target: str):
        super().__init__(f"invalid_payment_transition {current}->{target}")
        self.current = current
        self.target = target


def _normalize_status(value: str | None) -> str:
    status = (value or "").strip().lower()
    if status == "success":
        return PaymentStatus.PAID
    if status == "cancelled":
        return PaymentStatus.FAILED
    if status in PaymentStatus.ALL:
        return status
    return PaymentStatus.PENDING


def can_transition(payment: AdPayment, to_state: str) -> bool:
    current = _normalize_status(payment.status)
    return _normalize_status(to_state) in PaymentStatus.ALLOWED.get(current, {current})


def transition_payment(
    payment: AdPayment,
    to_state: str,
    *,
    transaction_id: str | None = None,
    payment_method: str | None = None,
    now: datetime | None = None,
) -> bool:
    """Move ``payment`` to ``to_state`` in the current session without committing.

    Returns True when the status actually changed. Re-applying the current
    status only backfills missing details. Raises InvalidPaymentTransition
    for moves the state machine forbids.
    """
    if payment is None:
        raise ValueError("payment required")
    now = now or datetime.utcnow()
    current = _normalize_status(payment.status)
    target = _normalize_status(to_state)
    allowed = PaymentStatus.ALLOWED.get(current, {current})
    if target not in allowed:
        raise InvalidPaymentTransition(current, target)

    changed = current != target
    touched = changed
    if changed:
        payment.status = target
    if target == PaymentStatus.PAID and payment.payment_date is None:
        payment.payment_date = now
        touched = True
    if transaction_id and payment.transaction_id != transaction_id:
        payment.transaction_id = transaction_id
        touched = True
    if payment_method and payment.payment_method != payment_method:
        payment.payment_method = payment_method
        touched = True
    if touched:
        payment.updated_at = now
        db.session.add(payment)
    return changed
