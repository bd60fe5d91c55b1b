from __future__ import annotations

from dataclasses import dataclass


@dataclass
class InvoiceResult:
    invoice_id: str
    external_id: str
    invoice_url: str
    status: str
    provider: str
    raw: dict | None = None


class PaymentsProvider:
    name = "unknown"

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
        raise NotImplementedError

    def get_invoice(self, invoice_id: str) -> InvoiceResult:
        raise NotImplementedError
