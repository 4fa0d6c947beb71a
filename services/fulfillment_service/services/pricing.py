"""Pricing engine.

Pure functions over ``Decimal`` amounts. Nothing here touches the database,
so every function can be called directly in tests.

Prices are VAT-inclusive: VAT is extracted from the amount due for goods,
never added on top. The delivery fee is added after VAT and is not taxed.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional, Protocol, Sequence

from libs.common.currency import ZERO, round_money
from services.fulfillment_service.models.enums import DiscountType

HUNDRED = Decimal("100")


class Reduction(Protocol):
    """Anything that reduces a price: a discount rule or a promo code."""

    type: DiscountType
    value: Decimal


def unit_saving(discount: Reduction, unit_price: Decimal) -> Decimal:
    """Absolute saving on one unit, unrounded. Used to rank candidates."""
    if discount.type == DiscountType.PERCENTAGE:
        return unit_price * discount.value / HUNDRED
    return discount.value


def best_discount(candidates: Iterable[Reduction], unit_price: Decimal):
    """
    Return the candidate with the greatest absolute saving for ``unit_price``.

    Ties keep the first candidate encountered, so callers must pass candidates
    in a stable order. Returns ``None`` when there are no candidates.
    """
    best = None
    best_saving = None
    for candidate in candidates:
        saving = unit_saving(candidate, unit_price)
        if best_saving is None or saving > best_saving:
            best, best_saving = candidate, saving
    return best


def discounted_price(unit_price: Decimal, discount: Optional[Reduction]) -> Decimal:
    """Unit price after ``discount``, rounded to cents and never negative."""
    if discount is None:
        return round_money(unit_price)
    if discount.type == DiscountType.PERCENTAGE:
        return round_money(unit_price * (1 - discount.value / HUNDRED))
    return max(ZERO, round_money(unit_price - discount.value))


def reduction_amount(reduction: Reduction, base: Decimal) -> Decimal:
    """Promo-style reduction of ``base``, capped so the result never exceeds it."""
    if reduction.type == DiscountType.PERCENTAGE:
        amount = round_money(base * reduction.value / HUNDRED)
    else:
        amount = round_money(reduction.value)
    return min(amount, round_money(base))


def extract_vat(gross: Decimal, rate: Decimal) -> Decimal:
    """VAT contained in a VAT-inclusive amount: ``gross * rate / (1 + rate)``."""
    return round_money(gross * rate / (1 + rate))


# ============================================================================
# LINES & TOTALS
# ============================================================================


@dataclass
class PricedLine:
    """One cart/order line after the per-item discount has been applied."""

    product_id: int
    product_name: str
    quantity: int
    original_price: Decimal
    price: Decimal
    discount_amount: Decimal
    total: Decimal
    discount_id: Optional[int] = None
    discount_name: Optional[str] = None


def price_line(
    product_id: int,
    product_name: str,
    unit_price: Decimal,
    quantity: int,
    discount=None,
) -> PricedLine:
    """Price ``quantity`` units, applying ``discount`` (a rule or ``None``)."""
    original = round_money(unit_price)
    price = discounted_price(original, discount)
    return PricedLine(
        product_id=product_id,
        product_name=product_name,
        quantity=quantity,
        original_price=original,
        price=price,
        discount_amount=(original - price) * quantity,
        total=price * quantity,
        discount_id=getattr(discount, "id", None),
        discount_name=getattr(discount, "name", None),
    )


@dataclass
class OrderTotals:
    sub_total: Decimal
    discount_amount: Decimal
    promo_discount_amount: Decimal
    total_amount: Decimal
    vat_amount: Decimal
    delivery_fee: Decimal
    final_amount: Decimal
    lines: list[PricedLine] = field(default_factory=list)

    @property
    def items_total(self) -> Decimal:
        return self.sub_total - self.discount_amount


def items_total(lines: Sequence[PricedLine]) -> Decimal:
    """Sum of discounted line totals; the base a promo code applies to."""
    return sum((line.total for line in lines), ZERO)


def compute_totals(
    lines: Sequence[PricedLine],
    *,
    vat_rate: Decimal,
    delivery_fee: Decimal,
    promo_discount: Decimal = ZERO,
) -> OrderTotals:
    """
    Aggregate priced lines into order totals.

    total_amount = sub_total - item discounts - promo discount
    vat_amount   = VAT contained in total_amount
    final_amount = total_amount + delivery_fee
    """
    sub_total = sum((line.original_price * line.quantity for line in lines), ZERO)
    discount_amount = sum((line.discount_amount for line in lines), ZERO)
    total_amount = sub_total - discount_amount - promo_discount
    delivery_fee = round_money(delivery_fee)
    return OrderTotals(
        sub_total=round_money(sub_total),
        discount_amount=round_money(discount_amount),
        promo_discount_amount=round_money(promo_discount),
        total_amount=round_money(total_amount),
        vat_amount=extract_vat(total_amount, vat_rate),
        delivery_fee=delivery_fee,
        final_amount=round_money(total_amount + delivery_fee),
        lines=list(lines),
    )
