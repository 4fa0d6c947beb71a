"""Unit tests for the pricing engine.

All functions are pure, so no database or fixtures are involved.
"""

from dataclasses import dataclass
from decimal import Decimal

import pytest
from services.fulfillment_service.models import DiscountType
from services.fulfillment_service.services.pricing import (
    best_discount,
    compute_totals,
    discounted_price,
    extract_vat,
    price_line,
    reduction_amount,
)


@dataclass(frozen=True)
class Rule:
    id: int
    name: str
    type: DiscountType
    value: Decimal


def percent(value, id=1, name="percent"):
    return Rule(id=id, name=name, type=DiscountType.PERCENTAGE, value=Decimal(value))


def fixed(value, id=2, name="fixed"):
    return Rule(id=id, name=name, type=DiscountType.FIXED_AMOUNT, value=Decimal(value))


@pytest.mark.unit
class TestBestDiscount:
    def test_fixed_beats_smaller_percentage(self):
        """At 40.00, a 5.00 fixed discount saves more than 10%."""
        ten_percent = percent("10")
        five_off = fixed("5")

        assert best_discount([ten_percent, five_off], Decimal("40")) is five_off

    def test_percentage_beats_fixed_on_expensive_item(self):
        ten_percent = percent("10")
        five_off = fixed("5")

        assert best_discount([five_off, ten_percent], Decimal("400")) is ten_percent

    def test_tie_keeps_first_candidate(self):
        first = percent("10", id=1)
        second = fixed("4", id=2)

        assert best_discount([first, second], Decimal("40")) is first
        assert best_discount([second, first], Decimal("40")) is second

    def test_no_candidates(self):
        assert best_discount([], Decimal("40")) is None

    def test_same_inputs_same_result(self):
        candidates = [percent("15"), fixed("6"), percent("12", id=3)]

        results = {best_discount(candidates, Decimal("40")).id for _ in range(5)}
        assert results == {1}


@pytest.mark.unit
class TestDiscountedPrice:
    def test_percentage_rounds_half_up(self):
        # 10.05 * 0.85 = 8.5425 -> 8.54 ; 0.25 * 0.5 = 0.125 -> 0.13
        assert discounted_price(Decimal("10.05"), percent("15")) == Decimal("8.54")
        assert discounted_price(Decimal("0.25"), percent("50")) == Decimal("0.13")

    def test_fixed_never_negative(self):
        assert discounted_price(Decimal("3.00"), fixed("5")) == Decimal("0.00")

    def test_fixed_subtracts(self):
        assert discounted_price(Decimal("40"), fixed("5")) == Decimal("35.00")

    def test_no_discount_returns_price(self):
        assert discounted_price(Decimal("19.99"), None) == Decimal("19.99")


@pytest.mark.unit
class TestReductionAndVat:
    def test_promo_percentage(self):
        assert reduction_amount(percent("10"), Decimal("160")) == Decimal("16.00")

    def test_promo_fixed_capped_at_base(self):
        assert reduction_amount(fixed("500"), Decimal("160")) == Decimal("160.00")

    def test_vat_is_extracted_not_added(self):
        assert extract_vat(Decimal("160"), Decimal("0.15")) == Decimal("20.87")
        assert extract_vat(Decimal("115"), Decimal("0.15")) == Decimal("15.00")


@pytest.mark.unit
class TestTotals:
    def test_two_units_at_twenty_percent_off(self):
        """Subtotal 200, unit price 80, line total 160, VAT 20.87, final 185."""
        line = price_line(1, "Headphones", Decimal("100"), 2, percent("20"))
        totals = compute_totals(
            [line], vat_rate=Decimal("0.15"), delivery_fee=Decimal("25")
        )

        assert line.price == Decimal("80.00")
        assert line.total == Decimal("160.00")
        assert line.discount_amount == Decimal("40.00")
        assert totals.sub_total == Decimal("200.00")
        assert totals.discount_amount == Decimal("40.00")
        assert totals.total_amount == Decimal("160.00")
        assert totals.vat_amount == Decimal("20.87")
        assert totals.final_amount == Decimal("185.00")

    def test_line_totals_add_up(self):
        lines = [
            price_line(1, "A", Decimal("33.33"), 3, percent("7")),
            price_line(2, "B", Decimal("12.50"), 1, fixed("2.5")),
            price_line(3, "C", Decimal("9.99"), 4, None),
        ]
        totals = compute_totals(
            lines, vat_rate=Decimal("0.15"), delivery_fee=Decimal("25")
        )

        assert sum(line.total for line in lines) == totals.total_amount
        assert (
            sum(line.discount_amount for line in lines) == totals.discount_amount
        )
        assert totals.total_amount == totals.sub_total - totals.discount_amount
        assert totals.final_amount == totals.total_amount + totals.delivery_fee

    def test_promo_reduces_total_and_vat(self):
        line = price_line(1, "A", Decimal("100"), 2, percent("20"))
        totals = compute_totals(
            [line],
            vat_rate=Decimal("0.15"),
            delivery_fee=Decimal("25"),
            promo_discount=Decimal("16.00"),
        )

        assert totals.total_amount == Decimal("144.00")
        assert totals.vat_amount == Decimal("18.78")
        assert totals.final_amount == Decimal("169.00")
        assert line.total == totals.total_amount + totals.promo_discount_amount
