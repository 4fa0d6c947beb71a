"""Data access for the fulfillment engine.

Each function takes the caller's ``AsyncSession`` and never commits; the
caller owns the unit of work.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from services.fulfillment_service.models import (
    CartItem,
    Discount,
    Order,
    OrderStatus,
    Product,
    PromoCode,
    PromoCodeUsage,
)

# ============================================================================
# CATALOG
# ============================================================================


async def get_product(db: AsyncSession, product_id: int) -> Optional[Product]:
    result = await db.execute(select(Product).where(Product.id == product_id))
    return result.scalar_one_or_none()


async def get_product_stock(db: AsyncSession, product_id: int) -> int:
    result = await db.execute(select(Product.stock).where(Product.id == product_id))
    return result.scalar_one_or_none() or 0


async def decrement_stock(db: AsyncSession, product_id: int, quantity: int) -> bool:
    """
    Take ``quantity`` units out of stock in one conditional statement.

    Returns False (and changes nothing) when stock would go negative, so two
    concurrent checkouts can never both consume the last units.
    """
    result = await db.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def increment_stock(db: AsyncSession, product_id: int, quantity: int) -> bool:
    result = await db.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + quantity)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


# ============================================================================
# CART
# ============================================================================


async def list_cart_items(db: AsyncSession, user_id: str) -> list[CartItem]:
    result = await db.execute(
        select(CartItem)
        .where(CartItem.user_id == user_id)
        .options(selectinload(CartItem.product))
        .order_by(CartItem.product_id)
    )
    return list(result.scalars().all())


async def lock_cart_products(
    db: AsyncSession, user_id: str
) -> list[tuple[CartItem, Product]]:
    """
    Load the user's cart joined to the current product rows.

    Product rows are locked ``FOR UPDATE`` in ascending id order so that
    concurrent checkouts touching the same products queue instead of
    deadlocking. Backends without row locks ignore the clause.
    """
    result = await db.execute(
        select(CartItem, Product)
        .join(Product, Product.id == CartItem.product_id)
        .where(CartItem.user_id == user_id)
        .order_by(Product.id)
        .with_for_update(of=Product)
        .execution_options(populate_existing=True)
    )
    return [(row[0], row[1]) for row in result.all()]


async def get_cart_item(
    db: AsyncSession, user_id: str, product_id: int
) -> Optional[CartItem]:
    result = await db.execute(
        select(CartItem).where(
            CartItem.user_id == user_id, CartItem.product_id == product_id
        )
    )
    return result.scalar_one_or_none()


async def clear_cart(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(delete(CartItem).where(CartItem.user_id == user_id))
    return result.rowcount


# ============================================================================
# DISCOUNTS & PROMO CODES
# ============================================================================


async def list_active_discounts(db: AsyncSession, now: datetime) -> list[Discount]:
    """Active discounts whose window contains ``now``, in ascending id order."""
    result = await db.execute(
        select(Discount)
        .where(
            Discount.is_active.is_(True),
            Discount.start_date <= now,
            Discount.end_date >= now,
        )
        .options(selectinload(Discount.products))
        .order_by(Discount.id)
    )
    return list(result.scalars().all())


async def get_discount(db: AsyncSession, discount_id: int) -> Optional[Discount]:
    result = await db.execute(
        select(Discount)
        .where(Discount.id == discount_id)
        .options(selectinload(Discount.products))
    )
    return result.scalar_one_or_none()


async def find_promo_code(
    db: AsyncSession, code: str, *, lock: bool = False
) -> Optional[PromoCode]:
    """Look up a promo code by its normalized (upper-case) code."""
    query = select(PromoCode).where(PromoCode.code == code)
    if lock:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def count_promo_usages(
    db: AsyncSession, promo_code_id: int, user_id: Optional[str] = None
) -> int:
    query = select(func.count(PromoCodeUsage.id)).where(
        PromoCodeUsage.promo_code_id == promo_code_id
    )
    if user_id is not None:
        query = query.where(PromoCodeUsage.user_id == user_id)
    result = await db.execute(query)
    return result.scalar_one()


async def record_promo_usage(
    db: AsyncSession, promo_code_id: int, user_id: str, order_id: int
) -> PromoCodeUsage:
    usage = PromoCodeUsage(
        promo_code_id=promo_code_id, user_id=user_id, order_id=order_id
    )
    db.add(usage)
    return usage


# ============================================================================
# ORDERS
# ============================================================================


def _order_query():
    return select(Order).options(
        selectinload(Order.items),
        selectinload(Order.delivery_address),
        selectinload(Order.payment),
    )


async def get_order(
    db: AsyncSession, order_id: int, *, lock: bool = False
) -> Optional[Order]:
    query = _order_query().where(Order.id == order_id)
    if lock:
        query = query.with_for_update(of=Order).execution_options(
            populate_existing=True
        )
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def list_orders(
    db: AsyncSession,
    *,
    user_id: Optional[str] = None,
    status: Optional[OrderStatus] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Order]:
    query = _order_query()
    if user_id is not None:
        query = query.where(Order.user_id == user_id)
    if status is not None:
        query = query.where(Order.status == status)
    query = query.order_by(Order.order_date.desc(), Order.id.desc())
    result = await db.execute(query.offset(offset).limit(limit))
    return list(result.scalars().all())


async def set_invoice_path(db: AsyncSession, order_id: int, path: str) -> bool:
    result = await db.execute(
        update(Order)
        .where(Order.id == order_id)
        .values(invoice_path=path)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


# ============================================================================
# REPORTING
# ============================================================================


def _within(query, start: Optional[datetime], end: Optional[datetime]):
    if start is not None:
        query = query.where(Order.order_date >= start)
    if end is not None:
        query = query.where(Order.order_date <= end)
    return query


async def list_products(db: AsyncSession) -> list[Product]:
    result = await db.execute(select(Product).order_by(Product.id))
    return list(result.scalars().all())


async def count_orders_by_status(
    db: AsyncSession,
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> dict[OrderStatus, tuple[int, Decimal]]:
    """Order count and summed ``final_amount`` per status."""
    query = select(
        Order.status,
        func.count(Order.id),
        func.coalesce(func.sum(Order.final_amount), 0),
    ).group_by(Order.status)
    result = await db.execute(_within(query, start, end))
    return {
        status: (count, Decimal(str(amount))) for status, count, amount in result.all()
    }


async def daily_sales(
    db: AsyncSession,
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> list[dict]:
    """
    Per-day totals of non-cancelled orders, oldest day first.

    Days are calendar days of the stored ``order_date`` (UTC).
    """
    day = func.date(Order.order_date).label("day")
    query = (
        select(
            day,
            func.count(Order.id).label("order_count"),
            func.sum(Order.final_amount).label("revenue"),
            func.sum(Order.sub_total).label("sub_total"),
            func.sum(Order.vat_amount).label("vat_amount"),
            func.sum(Order.delivery_fee).label("delivery_fees"),
        )
        .where(Order.status != OrderStatus.CANCELLED)
        .group_by(day)
        .order_by(day)
    )
    result = await db.execute(_within(query, start, end))
    return [dict(row._mapping) for row in result.all()]


async def top_customers(db: AsyncSession, *, limit: int = 10) -> list[dict]:
    """Users ranked by what they spent on non-cancelled orders."""
    total_spent = func.sum(Order.final_amount).label("total_spent")
    result = await db.execute(
        select(
            Order.user_id,
            func.count(Order.id).label("order_count"),
            total_spent,
            func.max(Order.order_date).label("last_order_date"),
        )
        .where(Order.status != OrderStatus.CANCELLED)
        .group_by(Order.user_id)
        .order_by(total_spent.desc(), Order.user_id)
        .limit(limit)
    )
    return [dict(row._mapping) for row in result.all()]
