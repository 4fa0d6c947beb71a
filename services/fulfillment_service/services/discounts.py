"""Discount and promo code resolution.

Plain functions over ``DiscountRule`` snapshots and ``PromoCode`` rows; the
storage lookups live in ``repositories``.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from libs.common.datetime_utils import ensure_utc
from services.fulfillment_service.errors import PromoCodeError, PromoRejection
from services.fulfillment_service.models import (
    Discount,
    DiscountScope,
    DiscountType,
    PromoCode,
)
from services.fulfillment_service.services.pricing import best_discount, reduction_amount


@dataclass(frozen=True)
class DiscountRule:
    """Immutable view of an automatic discount, detached from the session."""

    id: int
    name: str
    type: DiscountType
    value: Decimal
    scope: DiscountScope
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    category_name: Optional[str] = None
    product_ids: frozenset = frozenset()

    @classmethod
    def from_model(cls, discount: Discount) -> "DiscountRule":
        return cls(
            id=discount.id,
            name=discount.name,
            type=discount.type,
            value=discount.value,
            scope=discount.scope,
            start_date=ensure_utc(discount.start_date),
            end_date=ensure_utc(discount.end_date),
            is_active=discount.is_active,
            category_name=discount.category_name,
            product_ids=frozenset(discount.product_ids),
        )


def is_discount_active(rule: DiscountRule, now: datetime) -> bool:
    return rule.is_active and rule.start_date <= now <= rule.end_date


def discount_matches(rule: DiscountRule, product_id: int, category: str) -> bool:
    """Whether ``rule`` targets the product. Global rules never match a single item."""
    if rule.scope == DiscountScope.ALL_PRODUCTS:
        return True
    if rule.scope == DiscountScope.CATEGORY:
        return rule.category_name is not None and rule.category_name == category
    if rule.scope == DiscountScope.PRODUCT:
        return product_id in rule.product_ids
    return False


def applicable_discounts(
    rules: Iterable[DiscountRule], product_id: int, category: str, now: datetime
) -> list[DiscountRule]:
    return [
        rule
        for rule in rules
        if is_discount_active(rule, now) and discount_matches(rule, product_id, category)
    ]


def resolve_item_discount(
    rules: Iterable[DiscountRule],
    product_id: int,
    category: str,
    unit_price: Decimal,
    now: datetime,
) -> Optional[DiscountRule]:
    """Best active discount for one product, or ``None`` to leave the price unchanged."""
    return best_discount(applicable_discounts(rules, product_id, category, now), unit_price)


# ============================================================================
# PROMO CODES
# ============================================================================


def normalize_promo_code(code: str) -> str:
    return code.strip().upper()


def evaluate_promo_code(
    promo: Optional[PromoCode],
    *,
    code: str,
    order_total: Decimal,
    now: datetime,
    total_uses: int,
    user_uses: int,
) -> Decimal:
    """
    Check a promo code against an order and return the reduction it grants.

    Checks run in a fixed order and the first failure wins:
    existence, active flag, validity window, minimum order amount,
    total usage cap, per-user usage cap.

    ``order_total`` is the subtotal after per-item discounts. The reduction
    is capped at ``order_total``.

    Raises:
        PromoCodeError: With the ``PromoRejection`` describing the failure.
    """
    if promo is None:
        raise PromoCodeError(code, PromoRejection.NOT_FOUND)
    if not promo.is_active:
        raise PromoCodeError(code, PromoRejection.INACTIVE)
    if not (ensure_utc(promo.start_date) <= now <= ensure_utc(promo.end_date)):
        raise PromoCodeError(code, PromoRejection.OUT_OF_WINDOW)
    if promo.minimum_order_amount is not None and order_total < promo.minimum_order_amount:
        raise PromoCodeError(
            code,
            PromoRejection.BELOW_MINIMUM,
            minimum_order_amount=str(promo.minimum_order_amount),
        )
    if promo.max_uses_total is not None and total_uses >= promo.max_uses_total:
        raise PromoCodeError(code, PromoRejection.TOTAL_USES_EXCEEDED)
    if promo.max_uses_per_user is not None and user_uses >= promo.max_uses_per_user:
        raise PromoCodeError(code, PromoRejection.PER_USER_USES_EXCEEDED)

    return reduction_amount(promo, order_total)
