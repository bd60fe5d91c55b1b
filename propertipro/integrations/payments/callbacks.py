from __future__ import annotations

import hmac
import os
from dataclasses import dataclass

from propertipro.integrations.common import IntegrationMisconfiguredError


SUCCESS_STATUSES = ("PAID", "SETTLED")
FAILURE_STATUSES = ("EXPIRED", "FAILED")

KIND_SUCCESS = "success"
KIND_FAILURE = "failure"
KIND_IGNORED = "ignored"

PREMIUM_ORDER_PREFIX = "premium-"
EVENT_KEY_MAX = 200


class InvalidCallbackPayload(ValueError):
    pass


def _opt_str(value) -> str | None:
    if value is None:
        return None
    if not isinstance(value, (str, int)):
        raise InvalidCallbackPayload(f"expected a string, got {type(value).__name__}")
    text = str(value).strip()
    return text or None


def _opt_number(value) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except Exception:
        return None


@dataclass(frozen=True)
class PaymentCallback:
    """Validated gateway invoice callback."""

    status: str
    kind: str
    id: str | None = None
    external_id: str | None = None
    payment_method: str | None = None
    payment_channel: str | None = None
    amount: float | None = None

    @classmethod
    def from_payload(cls, payload) -> "PaymentCallback":
        if not isinstance(payload, dict):
            raise InvalidCallbackPayload("payload must be an object")

        status = _opt_str(payload.get("status"))
        if not status:
            raise InvalidCallbackPayload("Missing status in webhook payload")
        status = status.upper()
        if status in SUCCESS_STATUSES:
            kind = KIND_SUCCESS
        elif status in FAILURE_STATUSES:
            kind = KIND_FAILURE
        else:
            kind = KIND_IGNORED

        callback_id = _opt_str(payload.get("id"))
        external_id = _opt_str(payload.get("external_id"))
        if kind != KIND_IGNORED and not callback_id:
            raise InvalidCallbackPayload("Missing id in webhook payload")
        if kind == KIND_SUCCESS and not external_id:
            raise InvalidCallbackPayload("Missing external_id in webhook payload")

        amount = _opt_number(payload.get("paid_amount"))
        if amount is None:
            amount = _opt_number(payload.get("amount"))

        return cls(
            status=status,
            kind=kind,
            id=callback_id,
            external_id=external_id,
            payment_method=_opt_str(payload.get("payment_method")),
            payment_channel=_opt_str(payload.get("payment_channel")),
            amount=amount,
        )

    @property
    def event_key(self) -> str:
        return f"{self.id or ''}:{self.status}"[:EVENT_KEY_MAX]

    @property
    def is_premium(self) -> bool:
        return bool(self.external_id and self.external_id.startswith(PREMIUM_ORDER_PREFIX))

    @property
    def property_id(self) -> str | None:
        if not self.is_premium:
            return None
        parts = (self.external_id or "").split("-")
        if len(parts) < 2 or not parts[1].strip():
            return None
        return parts[1].strip()


def verify_callback_token(header_value: str | None) -> bool:
    expected = (os.getenv("XENDIT_CALLBACK_TOKEN") or "").strip()
    if not expected:
        raise IntegrationMisconfiguredError("Callback token is not configured")
    provided = (header_value or "").strip()
    if not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
