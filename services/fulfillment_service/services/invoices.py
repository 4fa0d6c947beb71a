"""Invoice rendering for orders."""

import asyncio
from pathlib import Path
from typing import Protocol

from libs.common.config import get_settings
from libs.common.datetime_utils import ensure_utc
from libs.common.pdf import generate_invoice_pdf
from services.fulfillment_service.models import Order


class InvoiceRenderer(Protocol):
    async def generate(self, order: Order) -> str: ...


class PdfInvoiceRenderer:
    """Writes ``invoice-<order id>.pdf`` files into ``directory``."""

    def __init__(self, directory: str, currency: str):
        self.directory = Path(directory)
        self.currency = currency

    async def generate(self, order: Order) -> str:
        """Render and store the invoice, returning its path."""
        address = order.delivery_address
        payment = order.payment
        items = [
            {
                "name": item.product_name,
                "quantity": item.quantity,
                "original_price": item.original_price,
                "price": item.price,
                "total": item.total,
            }
            for item in order.items
        ]
        totals = [("Subtotal", order.sub_total)]
        if order.discount_amount:
            totals.append(("Discounts", -order.discount_amount))
        if order.promo_discount_amount:
            totals.append((f"Promo {order.promo_code}", -order.promo_discount_amount))
        totals += [
            ("Total (incl. VAT)", order.total_amount),
            ("VAT included", order.vat_amount),
            ("Delivery fee", order.delivery_fee),
            ("Amount due", order.final_amount),
        ]

        pdf_bytes = await asyncio.to_thread(
            generate_invoice_pdf,
            order_number=f"#{order.id}",
            order_date=ensure_utc(order.order_date),
            customer_name=address.full_name if address else order.user_id,
            address_lines=address.as_lines() if address else [],
            items=items,
            totals=totals,
            currency=self.currency,
            payment_method=payment.payment_method.value if payment else None,
            payment_status=payment.status.value if payment else None,
        )

        path = self.directory / f"invoice-{order.id}.pdf"
        await asyncio.to_thread(self._write, path, pdf_bytes)
        return str(path)

    @staticmethod
    def _write(path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)


def build_invoice_renderer() -> PdfInvoiceRenderer:
    settings = get_settings()
    return PdfInvoiceRenderer(settings.INVOICE_DIR, settings.CURRENCY)
