from __future__ import annotations

import os

from propertipro.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from propertipro.integrations.payments.base import PaymentsProvider
from propertipro.integrations.payments.mock_provider import MockPaymentsProvider
from propertipro.integrations.payments.xendit_provider import XenditPaymentsProvider


def _provider_name() -> str:
    return (os.getenv("PAYMENTS_PROVIDER") or "mock").strip().lower()


def build_payments_provider() -> PaymentsProvider:
    provider = _provider_name()

    if provider == "disabled":
        raise IntegrationDisabledError("INTEGRATION_DISABLED:payments")

    if provider == "mock":
        return MockPaymentsProvider()

    if provider != "xendit":
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:payments_provider={provider}")

    secret_key = (os.getenv("XENDIT_SECRET_KEY") or "").strip()
    if not secret_key:
        raise IntegrationMisconfiguredError("INTEGRATION_MISCONFIGURED:missing XENDIT_SECRET_KEY")

    return XenditPaymentsProvider(secret_key=secret_key)


def payment_health() -> dict:
    provider = _provider_name()
    missing = []
    if provider == "xendit" and not (os.getenv("XENDIT_SECRET_KEY") or "").strip():
        missing.append("XENDIT_SECRET_KEY")
    if not (os.getenv("XENDIT_CALLBACK_TOKEN") or "").strip():
        missing.append("XENDIT_CALLBACK_TOKEN")
    if provider == "disabled":
        status = "disabled"
    elif missing:
        status = "misconfigured"
    else:
        status = "configured"
    return {
        "status": status,
        "provider": provider,
        "missing": missing,
    }
