"""Public promotion endpoints: promo code preview, active discounts and discounted products."""

from fastapi import APIRouter, Depends
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.datetime_utils import utc_now
from libs.db.session import get_async_db
from services.fulfillment_service import repositories
from services.fulfillment_service.dependencies import get_order_service
from services.fulfillment_service.schemas import (
    DiscountedProductResponse,
    DiscountResponse,
    PromoCodeValidateRequest,
    PromoCodeValidateResponse,
)
from services.fulfillment_service.services.discounts import (
    DiscountRule,
    resolve_item_discount,
)
from services.fulfillment_service.services.orders import OrderService
from services.fulfillment_service.services.pricing import discounted_price
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["promotions"])


@router.post("/promo-codes/validate", response_model=PromoCodeValidateResponse)
async def validate_promo_code(
    request: PromoCodeValidateRequest,
    current_user: AuthUser = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    """Preview a promo code against an order total. Does not redeem it."""
    result = await service.validate_promo_code(
        current_user.user_id, request.code, request.order_total
    )
    if result.valid:
        return PromoCodeValidateResponse(
            valid=True,
            code=result.code,
            discount_amount=result.discount_amount,
            message="Promo code applied",
        )
    return PromoCodeValidateResponse(
        valid=False,
        code=result.code,
        message=result.error.message,
        reason=result.error.reason.value,
    )


@router.get("/discounts/active", response_model=list[DiscountResponse])
async def list_active_discounts(db: AsyncSession = Depends(get_async_db)):
    """Discounts currently in effect."""
    return await repositories.list_active_discounts(db, utc_now())


@router.get("/discounts/products", response_model=list[DiscountedProductResponse])
async def list_discounted_products(db: AsyncSession = Depends(get_async_db)):
    """
    Products that currently sell below list price.

    Each product shows the discount checkout would apply to it right now.
    """
    now = utc_now()
    rules = [
        DiscountRule.from_model(d)
        for d in await repositories.list_active_discounts(db, now)
    ]
    products = await repositories.list_products(db) if rules else []

    discounted = []
    for product in products:
        rule = resolve_item_discount(
            rules, product.id, product.category, product.price, now
        )
        if rule is None:
            continue
        discounted.append(
            DiscountedProductResponse(
                product_id=product.id,
                name=product.name,
                category=product.category,
                original_price=product.price,
                discounted_price=discounted_price(product.price, rule),
                discount_id=rule.id,
                discount_name=rule.name,
                discount_type=rule.type,
                discount_value=rule.value,
            )
        )
    return discounted
