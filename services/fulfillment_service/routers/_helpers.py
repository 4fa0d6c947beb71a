"""Shared helpers for fulfillment routers."""

import os

from fastapi import HTTPException
from fastapi.responses import FileResponse
from services.fulfillment_service.errors import FulfillmentError, InvoiceNotFoundError
from services.fulfillment_service.schemas import OrderResultResponse
from services.fulfillment_service.services.orders import OrderResult


def http_error(error: FulfillmentError) -> HTTPException:
    """Translate a fulfillment error into an HTTPException with a structured body."""
    return HTTPException(status_code=error.http_status, detail=error.to_dict())


def unwrap(result: OrderResult) -> OrderResultResponse:
    """Return the order payload, or raise the result's error as an HTTP error."""
    if result.error is not None:
        raise http_error(result.error)
    return OrderResultResponse(order=result.order, warnings=result.warnings)


def invoice_file(result: OrderResult) -> FileResponse:
    """Stream the order's invoice PDF; 404 when it was never rendered or is gone."""
    if result.error is not None:
        raise http_error(result.error)
    order = result.order
    if not order.invoice_path or not os.path.isfile(order.invoice_path):
        raise http_error(InvoiceNotFoundError(order.id))
    return FileResponse(
        order.invoice_path,
        media_type="application/pdf",
        filename=f"invoice-{order.id}.pdf",
    )
