"""Admin router: order/payment status management, reporting, discounts and promo codes."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.common.currency import ZERO, round_money
from libs.common.datetime_utils import ensure_utc
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.fulfillment_service import repositories
from services.fulfillment_service.dependencies import get_order_service
from services.fulfillment_service.errors import DiscountNotFoundError
from services.fulfillment_service.models import (
    Discount,
    DiscountProduct,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    PromoCode,
    PromoCodeUsage,
)
from services.fulfillment_service.routers._helpers import http_error, invoice_file, unwrap
from services.fulfillment_service.schemas import (
    DailySalesResponse,
    DiscountCreate,
    DiscountResponse,
    DiscountUpdate,
    OrderResponse,
    OrderResultResponse,
    OrderStatisticsResponse,
    OrderStatusUpdate,
    PaymentStatusUpdate,
    PromoCodeCreate,
    PromoCodeResponse,
    PromoCodeUpdate,
    TopCustomerResponse,
)
from services.fulfillment_service.services.orders import OrderService
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = get_logger(__name__)

router = APIRouter(tags=["admin-store"], dependencies=[Depends(require_admin)])


# ============================================================================
# ORDERS
# ============================================================================


@router.get("/orders", response_model=list[OrderResponse])
async def list_orders(
    status: Optional[OrderStatus] = None,
    user_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: OrderService = Depends(get_order_service),
):
    return await service.list_orders(
        user_id=user_id, status=status, limit=limit, offset=offset
    )


@router.get("/orders/statistics", response_model=OrderStatisticsResponse)
async def order_statistics(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db: AsyncSession = Depends(get_async_db),
):
    """Order counts per status; revenue and average exclude cancelled orders."""
    by_status = await repositories.count_orders_by_status(
        db,
        start=ensure_utc(start_date),
        end=ensure_utc(end_date),
    )
    counts = {status: by_status.get(status, (0, ZERO))[0] for status in OrderStatus}
    billed = [
        totals for status, totals in by_status.items() if status != OrderStatus.CANCELLED
    ]
    billed_orders = sum(count for count, _ in billed)
    revenue = round_money(sum((amount for _, amount in billed), ZERO))
    return OrderStatisticsResponse(
        total_orders=sum(counts.values()),
        orders_by_status=counts,
        total_revenue=revenue,
        average_order_value=round_money(revenue / billed_orders) if billed_orders else ZERO,
    )


@router.get("/orders/sales-analytics", response_model=list[DailySalesResponse])
async def sales_analytics(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db: AsyncSession = Depends(get_async_db),
):
    """Daily revenue, subtotal, VAT and delivery fees of non-cancelled orders."""
    rows = await repositories.daily_sales(
        db,
        start=ensure_utc(start_date),
        end=ensure_utc(end_date),
    )
    return [DailySalesResponse.model_validate(row) for row in rows]


@router.get("/orders/top-customers", response_model=list[TopCustomerResponse])
async def top_customers(
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_async_db),
):
    rows = await repositories.top_customers(db, limit=limit)
    return [TopCustomerResponse.model_validate(row) for row in rows]


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    service: OrderService = Depends(get_order_service),
):
    result = await service.get_order(order_id)
    if result.error is not None:
        raise http_error(result.error)
    return result.order


@router.get("/orders/{order_id}/invoice", response_class=FileResponse)
async def download_invoice(
    order_id: int,
    service: OrderService = Depends(get_order_service),
):
    return invoice_file(await service.get_order(order_id))


@router.put("/orders/{order_id}/status", response_model=OrderResultResponse)
async def update_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    service: OrderService = Depends(get_order_service),
):
    """Move an order along its lifecycle. Delivery completes the payment, cancellation refunds it."""
    return unwrap(await service.update_order_status(order_id, data.status))


@router.put("/orders/{order_id}/payment-status", response_model=OrderResultResponse)
async def update_payment_status(
    order_id: int,
    data: PaymentStatusUpdate,
    service: OrderService = Depends(get_order_service),
):
    return unwrap(await service.update_payment_status(order_id, data.status))


# ============================================================================
# DISCOUNTS
# ============================================================================


async def _ensure_products_exist(db: AsyncSession, product_ids: list[int]) -> None:
    if not product_ids:
        return
    result = await db.execute(select(Product.id).where(Product.id.in_(product_ids)))
    missing = set(product_ids) - set(result.scalars().all())
    if missing:
        raise HTTPException(
            status_code=404, detail=f"Products not found: {sorted(missing)}"
        )


@router.get("/discounts", response_model=list[DiscountResponse])
async def list_discounts(db: AsyncSession = Depends(get_async_db)):
    result = await db.execute(
        select(Discount)
        .options(selectinload(Discount.products))
        .order_by(Discount.id)
    )
    return result.scalars().all()


@router.get("/discounts/{discount_id}", response_model=DiscountResponse)
async def get_discount(discount_id: int, db: AsyncSession = Depends(get_async_db)):
    discount = await repositories.get_discount(db, discount_id)
    if discount is None:
        raise http_error(DiscountNotFoundError(discount_id))
    return discount


@router.post("/discounts", response_model=DiscountResponse, status_code=201)
async def create_discount(
    data: DiscountCreate,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    product_ids = sorted(set(data.product_ids))
    await _ensure_products_exist(db, product_ids)

    discount = Discount(**data.model_dump(exclude={"product_ids"}))
    discount.products = [DiscountProduct(product_id=pid) for pid in product_ids]
    db.add(discount)
    await db.commit()

    logger.info(
        "Discount %s created by %s (%s %s)",
        discount.id,
        current_user.user_id,
        discount.type.value,
        discount.value,
    )
    return await repositories.get_discount(db, discount.id)


@router.patch("/discounts/{discount_id}", response_model=DiscountResponse)
async def update_discount(
    discount_id: int,
    data: DiscountUpdate,
    db: AsyncSession = Depends(get_async_db),
):
    discount = await repositories.get_discount(db, discount_id)
    if discount is None:
        raise http_error(DiscountNotFoundError(discount_id))

    update_data = data.model_dump(exclude_unset=True)
    product_ids = update_data.pop("product_ids", None)
    for field, value in update_data.items():
        setattr(discount, field, value)

    if ensure_utc(discount.end_date) <= ensure_utc(discount.start_date):
        raise HTTPException(status_code=400, detail="end_date must be after start_date")

    if product_ids is not None:
        product_ids = sorted(set(product_ids))
        await _ensure_products_exist(db, product_ids)
        discount.products = [DiscountProduct(product_id=pid) for pid in product_ids]

    await db.commit()
    return await repositories.get_discount(db, discount_id)


@router.delete("/discounts/{discount_id}", status_code=204)
async def delete_discount(discount_id: int, db: AsyncSession = Depends(get_async_db)):
    """Delete a discount. Past order lines keep the discount name but lose the link."""
    discount = await repositories.get_discount(db, discount_id)
    if discount is None:
        raise http_error(DiscountNotFoundError(discount_id))

    await db.execute(
        update(OrderItem)
        .where(OrderItem.discount_id == discount_id)
        .values(discount_id=None)
    )
    await db.delete(discount)
    await db.commit()
    logger.info("Discount %s deleted", discount_id)


# ============================================================================
# PROMO CODES
# ============================================================================


def _promo_response(promo: PromoCode, usage_count: int) -> PromoCodeResponse:
    response = PromoCodeResponse.model_validate(promo)
    response.usage_count = usage_count
    return response


async def _get_promo_or_404(db: AsyncSession, promo_id: int) -> PromoCode:
    result = await db.execute(
        select(PromoCode)
        .where(PromoCode.id == promo_id)
        .options(selectinload(PromoCode.usages))
    )
    promo = result.scalar_one_or_none()
    if promo is None:
        raise HTTPException(status_code=404, detail="Promo code not found")
    return promo


@router.get("/promo-codes", response_model=list[PromoCodeResponse])
async def list_promo_codes(db: AsyncSession = Depends(get_async_db)):
    result = await db.execute(
        select(PromoCode, func.count(PromoCodeUsage.id))
        .outerjoin(PromoCodeUsage, PromoCodeUsage.promo_code_id == PromoCode.id)
        .group_by(PromoCode.id)
        .order_by(PromoCode.id)
    )
    return [_promo_response(promo, count) for promo, count in result.all()]


@router.get("/promo-codes/{promo_id}", response_model=PromoCodeResponse)
async def get_promo_code(promo_id: int, db: AsyncSession = Depends(get_async_db)):
    promo = await _get_promo_or_404(db, promo_id)
    return _promo_response(promo, len(promo.usages))


@router.post("/promo-codes", response_model=PromoCodeResponse, status_code=201)
async def create_promo_code(
    data: PromoCodeCreate,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    if await repositories.find_promo_code(db, data.code) is not None:
        raise HTTPException(status_code=409, detail="Promo code already exists")

    promo = PromoCode(**data.model_dump())
    db.add(promo)
    await db.commit()
    await db.refresh(promo)

    logger.info("Promo code %s created by %s", promo.code, current_user.user_id)
    return _promo_response(promo, 0)


@router.patch("/promo-codes/{promo_id}", response_model=PromoCodeResponse)
async def update_promo_code(
    promo_id: int,
    data: PromoCodeUpdate,
    db: AsyncSession = Depends(get_async_db),
):
    promo = await _get_promo_or_404(db, promo_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(promo, field, value)

    if ensure_utc(promo.end_date) <= ensure_utc(promo.start_date):
        raise HTTPException(status_code=400, detail="end_date must be after start_date")

    usage_count = len(promo.usages)
    await db.commit()
    await db.refresh(promo)
    return _promo_response(promo, usage_count)


@router.delete("/promo-codes/{promo_id}", status_code=204)
async def delete_promo_code(promo_id: int, db: AsyncSession = Depends(get_async_db)):
    promo = await _get_promo_or_404(db, promo_id)
    await db.execute(
        update(Order).where(Order.promo_code_id == promo_id).values(promo_code_id=None)
    )
    await db.delete(promo)
    await db.commit()
    logger.info("Promo code %s deleted", promo.code)
