from __future__ import annotations

import hashlib

from propertipro.integrations.payments.base import PaymentsProvider, InvoiceResult


class MockPaymentsProvider(PaymentsProvider):
    name = "mock"

    def _invoice_id(self, external_id: str) -> str:
        return "mock-inv-" + hashlib.sha256(external_id.encode("utf-8")).hexdigest()[:16]

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
        invoice_id = self._invoice_id(external_id)
        return InvoiceResult(
            invoice_id=invoice_id,
            external_id=external_id,
            invoice_url=f"https://example.com/mock/invoice/{invoice_id}",
            status="PENDING",
            provider=self.name,
            raw={
                "amount": amount,
                "currency": currency,
                "description": description,
                "items": items or [],
            },
        )

    def get_invoice(self, invoice_id: str) -> InvoiceResult:
        return InvoiceResult(
            invoice_id=invoice_id,
            external_id="",
            invoice_url=f"https://example.com/mock/invoice/{invoice_id}",
            status="PENDING",
            provider=self.name,
            raw={"id": invoice_id, "provider": self.name},
        )
