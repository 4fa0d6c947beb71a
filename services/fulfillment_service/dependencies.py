"""FastAPI dependencies wiring the order service to its collaborators."""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from libs.common.config import get_settings
from libs.db.session import get_session_factory
from services.fulfillment_service.services.invoices import (
    InvoiceRenderer,
    build_invoice_renderer,
)
from services.fulfillment_service.services.orders import OrderService
from services.fulfillment_service.services.payments import (
    PaymentOrchestrator,
    build_card_gateway,
)


@lru_cache
def get_payment_orchestrator() -> PaymentOrchestrator:
    return PaymentOrchestrator(build_card_gateway())


@lru_cache
def get_invoice_renderer() -> InvoiceRenderer:
    return build_invoice_renderer()


def get_order_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    payments: PaymentOrchestrator = Depends(get_payment_orchestrator),
    invoices: InvoiceRenderer = Depends(get_invoice_renderer),
) -> OrderService:
    return OrderService(session_factory, payments, invoices, settings=get_settings())
