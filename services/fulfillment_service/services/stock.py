"""Cart snapshot and stock validation."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Sequence

from libs.common.logging import get_logger
from services.fulfillment_service import repositories
from services.fulfillment_service.errors import EmptyCartError, InsufficientStockError
from services.fulfillment_service.models import OrderItem
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass(frozen=True)
class CartLine:
    """A cart line joined to the product row as read inside the unit of work."""

    product_id: int
    product_name: str
    category: str
    unit_price: Decimal
    quantity: int
    available: int


async def snapshot_cart(db: AsyncSession, user_id: str) -> list[CartLine]:
    """
    Read the user's cart together with current (locked) product rows.

    Raises:
        EmptyCartError: The user has nothing in their cart.
    """
    rows = await repositories.lock_cart_products(db, user_id)
    if not rows:
        raise EmptyCartError(user_id)
    return [
        CartLine(
            product_id=product.id,
            product_name=product.name,
            category=product.category,
            unit_price=product.price,
            quantity=item.quantity,
            available=product.stock,
        )
        for item, product in rows
    ]


def ensure_stock(lines: Iterable[CartLine]) -> None:
    """Raise ``InsufficientStockError`` for the first line stock cannot cover."""
    for line in lines:
        if line.quantity > line.available:
            raise InsufficientStockError(line.product_id, line.quantity, line.available)


async def commit_stock(db: AsyncSession, lines: Sequence[CartLine]) -> None:
    """
    Decrement stock for every line with a conditional update.

    A line whose update matches no row lost a race with a concurrent
    checkout; the current stock is re-read for the error details.
    """
    for line in lines:
        if not await repositories.decrement_stock(db, line.product_id, line.quantity):
            available = await repositories.get_product_stock(db, line.product_id)
            logger.warning(
                "Stock decrement refused for product %s (requested=%s available=%s)",
                line.product_id,
                line.quantity,
                available,
            )
            raise InsufficientStockError(line.product_id, line.quantity, available)


async def restore_stock(db: AsyncSession, items: Iterable[OrderItem]) -> None:
    """Put the quantities of ``items`` back into stock."""
    for item in items:
        if not await repositories.increment_stock(db, item.product_id, item.quantity):
            # The product was deleted after the order was placed.
            logger.warning(
                "Could not restore %s units of missing product %s",
                item.quantity,
                item.product_id,
            )
