"""Cart router: view, add, remove and clear."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.db.session import get_async_db
from services.fulfillment_service.errors import FulfillmentError
from services.fulfillment_service.routers._helpers import http_error
from services.fulfillment_service.schemas import CartItemAdd, CartSummaryResponse
from services.fulfillment_service.services import cart as cart_service
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["cart"])


async def _summary(db: AsyncSession, user_id: str) -> CartSummaryResponse:
    return await cart_service.get_cart_summary(
        db, user_id, settings=get_settings(), now=utc_now()
    )


@router.get("/cart", response_model=CartSummaryResponse)
async def get_cart(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Priced cart: per-item discounts, VAT and delivery fee included."""
    return await _summary(db, current_user.user_id)


@router.post("/cart/items", response_model=CartSummaryResponse, status_code=201)
async def add_cart_item(
    data: CartItemAdd,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    try:
        await cart_service.add_to_cart(
            db,
            user_id=current_user.user_id,
            product_id=data.product_id,
            quantity=data.quantity,
        )
    except FulfillmentError as e:
        raise http_error(e)
    return await _summary(db, current_user.user_id)


@router.delete("/cart/items/{product_id}", response_model=CartSummaryResponse)
async def remove_cart_item(
    product_id: int,
    quantity: Optional[int] = Query(None, ge=1),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Remove ``quantity`` units of a product, or the whole line."""
    try:
        await cart_service.remove_from_cart(
            db, user_id=current_user.user_id, product_id=product_id, quantity=quantity
        )
    except FulfillmentError as e:
        raise http_error(e)
    return await _summary(db, current_user.user_id)


@router.post("/cart/clear", response_model=CartSummaryResponse)
async def clear_cart(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    await cart_service.clear_cart(db, user_id=current_user.user_id)
    return await _summary(db, current_user.user_id)
