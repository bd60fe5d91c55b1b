from __future__ import annotations

import os

import requests

from propertipro.integrations.payments.base import PaymentsProvider, InvoiceResult

XENDIT_API_BASE = "https://api.xendit.co"


def _invoice_duration_seconds() -> int:
    raw = (os.getenv("XENDIT_INVOICE_DURATION_SECONDS") or "86400").strip()
    try:
        value = int(raw)
    except Exception:
        value = 86400
    return max(60, value)


def _customer_from_billing(billing: dict | None) -> dict | None:
    b = billing or {}
    email = (b.get("email") or "").strip()
    if not email:
        return None
    customer = {
        "given_names": (b.get("first_name") or "").strip() or email.split("@")[0],
        "surname": (b.get("last_name") or "").strip(),
        "email": email,
    }
    phone = (b.get("phone") or "").strip()
    if phone:
        customer["mobile_number"] = phone
    if (b.get("address") or "").strip():
        customer["addresses"] = [
            {
                "country": (b.get("country") or "").strip(),
                "street_line1": (b.get("address") or "").strip(),
                "city": (b.get("city") or "").strip(),
                "postal_code": (b.get("postal_code") or "").strip(),
            }
        ]
    return customer


class XenditPaymentsProvider(PaymentsProvider):
    name = "xendit"

    def __init__(self, secret_key: str, base_url: str = XENDIT_API_BASE):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")

    def _to_result(self, j: dict, fallback_external_id: str = "") -> InvoiceResult:
        return InvoiceResult(
            invoice_id=str(j.get("id") or "").strip(),
            external_id=str(j.get("external_id") or fallback_external_id).strip(),
            invoice_url=str(j.get("invoice_url") or "").strip(),
            status=str(j.get("status") or "").strip().upper(),
            provider=self.name,
            raw=j,
        )

    def create_invoice(
        self,
        *,
        external_id: str,
        amount: float,
        currency: str,
        description: str,
        billing: dict | None = None,
        items: list[dict] | None = None,
    ) -> InvoiceResult:
        payload = {
            "external_id": external_id,
            "amount": float(amount),
            "currency": (currency or "IDR").strip().upper(),
            "description": description,
            "invoice_duration": _invoice_duration_seconds(),
            "should_send_email": True,
            "customer_notification_preference": {
                "invoice_created": ["email"],
                "invoice_paid": ["email"],
            },
        }
        customer = _customer_from_billing(billing)
        if customer:
            payload["customer"] = customer
        success_url = (os.getenv("XENDIT_SUCCESS_REDIRECT_URL") or "").strip()
        if success_url:
            payload["success_redirect_url"] = success_url
        failure_url = (os.getenv("XENDIT_FAILURE_REDIRECT_URL") or "").strip()
        if failure_url:
            payload["failure_redirect_url"] = failure_url
        if items:
            payload["items"] = [
                {
                    "name": str(item.get("name") or ""),
                    "quantity": int(item.get("quantity") or 1),
                    "price": float(item.get("price") or 0.0),
                    "category": "Premium",
                }
                for item in items
            ]

        r = requests.post(
            f"{self.base_url}/v2/invoices",
            auth=(self.secret_key, ""),
            json=payload,
            timeout=25,
        )
        j = r.json() if r.content else {}
        if r.status_code < 200 or r.status_code >= 300:
            msg = (j.get("message") or f"HTTP {r.status_code}") if isinstance(j, dict) else f"HTTP {r.status_code}"
            raise RuntimeError(f"XENDIT_INVOICE_FAILED:{str(msg).strip()}")
        return self._to_result(j if isinstance(j, dict) else {}, fallback_external_id=external_id)

    def get_invoice(self, invoice_id: str) -> InvoiceResult:
        ref = (invoice_id or "").strip()
        r = requests.get(
            f"{self.base_url}/v2/invoices/{ref}",
            auth=(self.secret_key, ""),
            timeout=25,
        )
        j = r.json() if r.content else {}
        if r.status_code < 200 or r.status_code >= 300:
            msg = (j.get("message") or f"HTTP {r.status_code}") if isinstance(j, dict) else f"HTTP {r.status_code}"
            raise RuntimeError(f"XENDIT_INVOICE_LOOKUP_FAILED:{str(msg).strip()}")
        return self._to_result(j if isinstance(j, dict) else {})
