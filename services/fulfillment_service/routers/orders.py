"""Customer order router: checkout, order history, invoices and cancellation."""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from services.fulfillment_service.dependencies import get_order_service
from services.fulfillment_service.routers._helpers import http_error, invoice_file, unwrap
from services.fulfillment_service.schemas import (
    CheckoutRequest,
    OrderResponse,
    OrderResultResponse,
)
from services.fulfillment_service.services.orders import OrderService

router = APIRouter(tags=["orders"])


# ============================================================================
# CHECKOUT
# ============================================================================


@router.post("/orders", response_model=OrderResultResponse, status_code=201)
async def create_order(
    request: CheckoutRequest,
    current_user: AuthUser = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    """Place an order from the current user's cart."""
    result = await service.create_order(current_user.user_id, request)
    return unwrap(result)


# ============================================================================
# ORDER HISTORY
# ============================================================================


@router.get("/orders", response_model=list[OrderResponse])
async def list_my_orders(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: AuthUser = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    """List the current user's orders, newest first."""
    return await service.list_orders(
        user_id=current_user.user_id, limit=limit, offset=offset
    )


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_my_order(
    order_id: int,
    current_user: AuthUser = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    result = await service.get_order(order_id, user_id=current_user.user_id)
    if result.error is not None:
        raise http_error(result.error)
    return result.order


@router.get("/orders/{order_id}/invoice", response_class=FileResponse)
async def download_my_invoice(
    order_id: int,
    current_user: AuthUser = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    """Download the invoice PDF of one of the current user's orders."""
    result = await service.get_order(order_id, user_id=current_user.user_id)
    return invoice_file(result)


@router.post("/orders/{order_id}/cancel", response_model=OrderResultResponse)
async def cancel_my_order(
    order_id: int,
    current_user: AuthUser = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    """Cancel an order shortly after placing it. Stock is returned and the payment refunded."""
    result = await service.cancel_order(order_id, current_user.user_id)
    return unwrap(result)
