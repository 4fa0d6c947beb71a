"""Cart operations and the priced cart summary."""

from datetime import datetime
from typing import Optional

from libs.common.config import Settings
from libs.common.currency import round_money
from libs.common.logging import get_logger
from services.fulfillment_service import repositories
from services.fulfillment_service.errors import (
    InsufficientStockError,
    NotFoundError,
    ProductNotFoundError,
)
from services.fulfillment_service.models import CartItem
from services.fulfillment_service.schemas import CartLineResponse, CartSummaryResponse
from services.fulfillment_service.services.discounts import (
    DiscountRule,
    resolve_item_discount,
)
from services.fulfillment_service.services.pricing import compute_totals, price_line
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def get_cart_summary(
    db: AsyncSession, user_id: str, *, settings: Settings, now: datetime
) -> CartSummaryResponse:
    """
    Price the cart the same way checkout will (best per-item discount, VAT
    extracted, flat delivery fee). Promo codes are only applied at checkout.
    """
    items = await repositories.list_cart_items(db, user_id)
    rules = [
        DiscountRule.from_model(d)
        for d in await repositories.list_active_discounts(db, now)
    ]

    lines = []
    responses = []
    for item in items:
        product = item.product
        discount = resolve_item_discount(
            rules, product.id, product.category, product.price, now
        )
        line = price_line(product.id, product.name, product.price, item.quantity, discount)
        lines.append(line)
        responses.append(
            CartLineResponse(
                product_id=product.id,
                product_name=product.name,
                category=product.category,
                quantity=item.quantity,
                unit_price=line.original_price,
                discounted_price=line.price,
                discount_amount=line.discount_amount,
                total=line.total,
                discount_name=line.discount_name,
                in_stock=product.stock >= item.quantity,
            )
        )

    delivery_fee = settings.DELIVERY_FEE if lines else round_money(0)
    totals = compute_totals(
        lines, vat_rate=settings.VAT_RATE, delivery_fee=delivery_fee
    )
    return CartSummaryResponse(
        items=responses,
        item_count=len(responses),
        total_quantity=sum(r.quantity for r in responses),
        sub_total=totals.sub_total,
        discount_amount=totals.discount_amount,
        total_amount=totals.total_amount,
        vat_amount=totals.vat_amount,
        delivery_fee=totals.delivery_fee,
        final_amount=totals.final_amount,
        currency=settings.CURRENCY,
    )


async def add_to_cart(
    db: AsyncSession, *, user_id: str, product_id: int, quantity: int
) -> CartItem:
    """Add ``quantity`` units, merging with an existing line. Stock must cover the total."""
    product = await repositories.get_product(db, product_id)
    if product is None:
        raise ProductNotFoundError(product_id)

    item = await repositories.get_cart_item(db, user_id, product_id)
    new_quantity = quantity + (item.quantity if item else 0)
    if new_quantity > product.stock:
        raise InsufficientStockError(product_id, new_quantity, product.stock)

    if item is None:
        item = CartItem(user_id=user_id, product_id=product_id, quantity=quantity)
        db.add(item)
    else:
        item.quantity = new_quantity

    await db.commit()
    logger.info(
        "Cart %s: product %s quantity now %s", user_id, product_id, new_quantity
    )
    return item


async def remove_from_cart(
    db: AsyncSession,
    *,
    user_id: str,
    product_id: int,
    quantity: Optional[int] = None,
) -> Optional[CartItem]:
    """
    Take ``quantity`` units off a line, or the whole line when ``quantity`` is
    omitted or covers it. Returns the remaining line, if any.
    """
    item = await repositories.get_cart_item(db, user_id, product_id)
    if item is None:
        raise NotFoundError(
            "Product is not in the cart", details={"product_id": product_id}
        )

    if quantity is None or quantity >= item.quantity:
        await db.delete(item)
        item = None
    else:
        item.quantity -= quantity

    await db.commit()
    return item


async def clear_cart(db: AsyncSession, *, user_id: str) -> int:
    removed = await repositories.clear_cart(db, user_id)
    await db.commit()
    return removed
