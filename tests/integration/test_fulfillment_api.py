"""HTTP tests for the store and admin-store routers."""

from datetime import timedelta
from decimal import Decimal

import pytest
from libs.common.datetime_utils import utc_now
from services.fulfillment_service.app.main import app
from services.fulfillment_service.models import (
    DiscountScope,
    DiscountType,
    Order,
    OrderItem,
)
from sqlalchemy import select
from tests.conftest import DECLINED_CARD, make_admin_user, make_user, override_auth
from tests.factories import (
    CartItemFactory,
    DiscountFactory,
    ProductFactory,
    PromoCodeFactory,
    checkout_payload,
)


async def _product(db_session, **overrides):
    product = ProductFactory.create(**overrides)
    db_session.add(product)
    await db_session.commit()
    return product


async def _place_order(
    client, db_session, product, quantity=1, user_id="customer-1", **payload
):
    db_session.add(
        CartItemFactory.create(
            product_id=product.id, quantity=quantity, user_id=user_id
        )
    )
    await db_session.commit()
    response = await client.post("/store/orders", json=checkout_payload(**payload))
    assert response.status_code == 201, response.text
    return response.json()["order"]


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "X-Request-ID" in response.headers


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_empty_cart_summary_has_no_delivery_fee(client):
    response = await client.get("/store/cart")

    assert response.status_code == 200
    data = response.json()
    assert data["items"] == []
    assert Decimal(data["final_amount"]) == Decimal("0")
    assert data["currency"] == "SAR"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cart_add_prices_with_discount(client, db_session):
    product = await _product(db_session, stock=10)
    db_session.add(DiscountFactory.create(value=Decimal("20")))
    await db_session.commit()

    response = await client.post(
        "/store/cart/items", json={"product_id": product.id, "quantity": 2}
    )

    assert response.status_code == 201, response.text
    data = response.json()
    assert data["item_count"] == 1
    line = data["items"][0]
    assert Decimal(line["discounted_price"]) == Decimal("80")
    assert line["in_stock"] is True
    assert Decimal(data["sub_total"]) == Decimal("200")
    assert Decimal(data["total_amount"]) == Decimal("160")
    assert Decimal(data["vat_amount"]) == Decimal("20.87")
    assert Decimal(data["final_amount"]) == Decimal("185")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cart_add_merges_and_checks_stock(client, db_session):
    product = await _product(db_session, stock=3)

    first = await client.post(
        "/store/cart/items", json={"product_id": product.id, "quantity": 2}
    )
    too_many = await client.post(
        "/store/cart/items", json={"product_id": product.id, "quantity": 2}
    )

    assert first.status_code == 201
    assert too_many.status_code == 409
    assert too_many.json()["detail"]["code"] == "insufficient_stock"
    assert too_many.json()["detail"]["details"]["requested"] == 4


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cart_add_unknown_product(client):
    response = await client.post(
        "/store/cart/items", json={"product_id": 999, "quantity": 1}
    )

    assert response.status_code == 404
    assert response.json()["detail"]["kind"] == "not_found"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cart_remove_and_clear(client, db_session):
    product = await _product(db_session)
    other = await _product(db_session)
    await client.post("/store/cart/items", json={"product_id": product.id, "quantity": 3})
    await client.post("/store/cart/items", json={"product_id": other.id, "quantity": 1})

    partial = await client.delete(
        f"/store/cart/items/{product.id}", params={"quantity": 2}
    )
    assert partial.status_code == 200
    assert partial.json()["total_quantity"] == 2

    whole = await client.delete(f"/store/cart/items/{product.id}")
    assert whole.json()["item_count"] == 1

    missing = await client.delete(f"/store/cart/items/{product.id}")
    assert missing.status_code == 404

    cleared = await client.post("/store/cart/clear")
    assert cleared.json()["items"] == []


# ---------------------------------------------------------------------------
# Checkout and orders
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_returns_created_order(client, db_session):
    product = await _product(db_session, stock=10)
    db_session.add(DiscountFactory.create(value=Decimal("20")))
    await db_session.commit()

    order = await _place_order(client, db_session, product, quantity=2)

    assert order["status"] == "pending"
    assert Decimal(order["final_amount"]) == Decimal("185")
    assert Decimal(order["vat_amount"]) == Decimal("20.87")
    assert order["payment"]["status"] == "completed"
    assert "card_number" not in str(order)
    assert order["invoice_path"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_empty_cart_is_400(client):
    response = await client.post("/store/orders", json=checkout_payload())

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "empty_cart"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_declined_card_is_402(client, db_session):
    product = await _product(db_session)
    db_session.add(CartItemFactory.create(product_id=product.id))
    await db_session.commit()

    response = await client.post(
        "/store/orders",
        json=checkout_payload(
            card_details={
                "card_number": DECLINED_CARD,
                "expiry_date": "12/35",
                "cvv": "123",
            }
        ),
    )

    assert response.status_code == 402
    detail = response.json()["detail"]
    assert detail["kind"] == "payment"
    assert detail["code"] == "payment_declined"
    orders = (await db_session.execute(select(Order))).scalars().all()
    assert orders == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_insufficient_stock_is_409(client, db_session):
    product = await _product(db_session, stock=1)
    db_session.add(CartItemFactory.create(product_id=product.id, quantity=2))
    await db_session.commit()

    response = await client.post("/store/orders", json=checkout_payload())

    assert response.status_code == 409
    assert response.json()["detail"]["details"]["available"] == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_rejects_blank_address(client):
    payload = checkout_payload()
    payload["delivery_address"]["city"] = "   "

    response = await client.post("/store/orders", json=payload)

    assert response.status_code == 422


@pytest.mark.asyncio
@pytest.mark.integration
async def test_order_history_is_per_user(client, db_session):
    product = await _product(db_session)
    order = await _place_order(client, db_session, product)

    mine = await client.get("/store/orders")
    assert [o["id"] for o in mine.json()] == [order["id"]]

    with override_auth(app, make_user("customer-2")):
        theirs = await client.get("/store/orders")
        peek = await client.get(f"/store/orders/{order['id']}")

    assert theirs.json() == []
    assert peek.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cancel_within_window(client, db_session):
    product = await _product(db_session, stock=5)
    order = await _place_order(client, db_session, product, quantity=2)

    response = await client.post(f"/store/orders/{order['id']}/cancel")

    assert response.status_code == 200, response.text
    cancelled = response.json()["order"]
    assert cancelled["status"] == "cancelled"
    assert cancelled["payment"]["status"] == "refunded"
    await db_session.refresh(product)
    assert product.stock == 5


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cancel_after_window_is_400(client, db_session):
    product = await _product(db_session)
    order = await _place_order(client, db_session, product)
    stored = await db_session.get(Order, order["id"])
    stored.order_date = utc_now() - timedelta(hours=3)
    await db_session.commit()

    response = await client.post(f"/store/orders/{order['id']}/cancel")

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "cancellation_window_expired"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cancel_other_users_order_is_403(client, db_session):
    product = await _product(db_session)
    order = await _place_order(client, db_session, product)

    with override_auth(app, make_user("customer-2")):
        response = await client.post(f"/store/orders/{order['id']}/cancel")

    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.integration
async def test_invoice_download_for_owner_and_admin(client, db_session):
    product = await _product(db_session)
    order = await _place_order(client, db_session, product)

    mine = await client.get(f"/store/orders/{order['id']}/invoice")
    with override_auth(app, make_user("customer-2")):
        theirs = await client.get(f"/store/orders/{order['id']}/invoice")
    with override_auth(app, make_admin_user()):
        admin = await client.get(f"/admin/store/orders/{order['id']}/invoice")

    assert mine.status_code == 200, mine.text
    assert mine.headers["content-type"] == "application/pdf"
    assert f"invoice-{order['id']}.pdf" in mine.headers["content-disposition"]
    assert mine.content.startswith(b"%PDF")
    assert theirs.status_code == 404
    assert admin.status_code == 200
    assert admin.content == mine.content


@pytest.mark.asyncio
@pytest.mark.integration
async def test_invoice_download_without_invoice_is_404(client, db_session):
    product = await _product(db_session)
    order = await _place_order(client, db_session, product)
    stored = await db_session.get(Order, order["id"])
    stored.invoice_path = None
    await db_session.commit()

    response = await client.get(f"/store/orders/{order['id']}/invoice")
    missing = await client.get("/store/orders/999/invoice")

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "invoice_not_found"
    assert missing.json()["detail"]["code"] == "order_not_found"


# ---------------------------------------------------------------------------
# Promotions
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_validate_promo_code(client, db_session):
    db_session.add(PromoCodeFactory.create(code="WELCOME", value=Decimal("10")))
    await db_session.commit()

    ok = await client.post(
        "/store/promo-codes/validate", json={"code": "welcome", "order_total": "250"}
    )
    unknown = await client.post(
        "/store/promo-codes/validate", json={"code": "NOPE", "order_total": "250"}
    )

    assert ok.json()["valid"] is True
    assert Decimal(ok.json()["discount_amount"]) == Decimal("25")
    assert unknown.status_code == 200
    assert unknown.json()["valid"] is False
    assert unknown.json()["reason"] == "not_found"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_active_discounts(client, db_session):
    db_session.add_all(
        [
            DiscountFactory.create(name="Live"),
            DiscountFactory.create(name="Paused", is_active=False),
            DiscountFactory.create(
                name="Expired",
                start_date=utc_now() - timedelta(days=10),
                end_date=utc_now() - timedelta(days=5),
            ),
        ]
    )
    await db_session.commit()

    response = await client.get("/store/discounts/active")

    assert [d["name"] for d in response.json()] == ["Live"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_discounted_products(client, db_session):
    laptop = ProductFactory.create(name="Laptop", category="electronics")
    novel = ProductFactory.create(name="Novel", category="books", price=Decimal("40"))
    puzzle = ProductFactory.create(name="Puzzle", category="toys", price=Decimal("50"))
    db_session.add_all([laptop, novel, puzzle])
    await db_session.commit()
    db_session.add_all(
        [
            DiscountFactory.create(
                name="Electronics sale",
                scope=DiscountScope.CATEGORY,
                category_name="electronics",
                value=Decimal("20"),
            ),
            DiscountFactory.create(
                name="Novel deal",
                scope=DiscountScope.PRODUCT,
                type=DiscountType.FIXED_AMOUNT,
                value=Decimal("5"),
                product_ids=[novel.id],
            ),
            DiscountFactory.create(
                name="Paused toys",
                scope=DiscountScope.CATEGORY,
                category_name="toys",
                is_active=False,
            ),
        ]
    )
    await db_session.commit()

    response = await client.get("/store/discounts/products")

    assert response.status_code == 200, response.text
    data = response.json()
    assert [p["name"] for p in data] == ["Laptop", "Novel"]
    assert Decimal(data[0]["original_price"]) == Decimal("100")
    assert Decimal(data[0]["discounted_price"]) == Decimal("80")
    assert data[0]["discount_name"] == "Electronics sale"
    assert Decimal(data[1]["discounted_price"]) == Decimal("35")
    assert data[1]["discount_type"] == "fixed_amount"


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_routes_require_admin_role(client):
    response = await client.get("/admin/store/orders")

    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_order_status_flow(client, db_session):
    product = await _product(db_session)
    order = await _place_order(
        client, db_session, product, payment_method="cash_on_delivery", card_details=None
    )
    url = f"/admin/store/orders/{order['id']}/status"

    with override_auth(app, make_admin_user()):
        skipped = await client.put(url, json={"status": "shipped"})
        assert skipped.status_code == 409
        assert skipped.json()["detail"]["code"] == "invalid_transition"
        assert skipped.json()["detail"]["kind"] == "conflict"

        for status in ("processing", "shipped", "delivered"):
            response = await client.put(url, json={"status": status})
            assert response.status_code == 200, response.text

        final = response.json()["order"]
        listed = await client.get("/admin/store/orders", params={"status": "delivered"})

    assert final["status"] == "delivered"
    assert final["payment"]["status"] == "completed"
    assert [o["id"] for o in listed.json()] == [order["id"]]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_payment_status(client, db_session):
    product = await _product(db_session)
    order = await _place_order(client, db_session, product)
    url = f"/admin/store/orders/{order['id']}/payment-status"

    with override_auth(app, make_admin_user()):
        bad = await client.put(url, json={"status": "failed"})
        refunded = await client.put(url, json={"status": "refunded"})
        missing = await client.put(
            "/admin/store/orders/999/payment-status", json={"status": "completed"}
        )

    assert bad.status_code == 409
    assert refunded.status_code == 200
    assert refunded.json()["order"]["payment"]["is_refunded"] is True
    assert missing.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_discount_crud(client, db_session):
    product = await _product(db_session)
    body = {
        "name": "Launch week",
        "type": "percentage",
        "scope": "product",
        "value": "15",
        "start_date": (utc_now() - timedelta(days=1)).isoformat(),
        "end_date": (utc_now() + timedelta(days=7)).isoformat(),
        "product_ids": [product.id],
    }

    with override_auth(app, make_admin_user()):
        created = await client.post("/admin/store/discounts", json=body)
        assert created.status_code == 201, created.text
        discount_id = created.json()["id"]
        assert created.json()["product_ids"] == [product.id]

        no_products = await client.post(
            "/admin/store/discounts", json={**body, "product_ids": []}
        )
        unknown_product = await client.post(
            "/admin/store/discounts", json={**body, "product_ids": [999]}
        )
        patched = await client.patch(
            f"/admin/store/discounts/{discount_id}", json={"value": "25"}
        )
        deleted = await client.delete(f"/admin/store/discounts/{discount_id}")
        gone = await client.get(f"/admin/store/discounts/{discount_id}")

    assert no_products.status_code == 422
    assert unknown_product.status_code == 404
    assert Decimal(patched.json()["value"]) == Decimal("25")
    assert deleted.status_code == 204
    assert gone.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_deleting_discount_keeps_order_history(client, db_session):
    product = await _product(db_session)
    discount = DiscountFactory.create(name="Spring")
    db_session.add(discount)
    await db_session.commit()
    order = await _place_order(client, db_session, product)
    assert order["items"][0]["discount_id"] == discount.id

    with override_auth(app, make_admin_user()):
        response = await client.delete(f"/admin/store/discounts/{discount.id}")

    assert response.status_code == 204
    item = (
        await db_session.execute(
            select(OrderItem).where(OrderItem.order_id == order["id"])
        )
    ).scalar_one()
    await db_session.refresh(item)
    assert item.discount_id is None
    assert item.discount_name == "Spring"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_promo_code_crud(client, db_session):
    body = {
        "code": " summer ",
        "type": "fixed_amount",
        "value": "30",
        "max_uses_per_user": 1,
        "start_date": (utc_now() - timedelta(days=1)).isoformat(),
        "end_date": (utc_now() + timedelta(days=30)).isoformat(),
    }

    with override_auth(app, make_admin_user()):
        created = await client.post("/admin/store/promo-codes", json=body)
        duplicate = await client.post("/admin/store/promo-codes", json=body)
        promo_id = created.json()["id"]
        patched = await client.patch(
            f"/admin/store/promo-codes/{promo_id}", json={"is_active": False}
        )
        listed = await client.get("/admin/store/promo-codes")
        deleted = await client.delete(f"/admin/store/promo-codes/{promo_id}")
        gone = await client.get(f"/admin/store/promo-codes/{promo_id}")

    assert created.status_code == 201, created.text
    assert created.json()["code"] == "SUMMER"
    assert created.json()["usage_count"] == 0
    assert duplicate.status_code == 409
    assert patched.json()["is_active"] is False
    assert [p["code"] for p in listed.json()] == ["SUMMER"]
    assert deleted.status_code == 204
    assert gone.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_promo_usage_count_after_checkout(client, db_session):
    product = await _product(db_session)
    promo = PromoCodeFactory.create(code="COUNTME")
    db_session.add(promo)
    await db_session.commit()

    await _place_order(client, db_session, product, promo_code="COUNTME")
    with override_auth(app, make_admin_user()):
        response = await client.get(f"/admin/store/promo-codes/{promo.id}")

    assert response.json()["usage_count"] == 1


# ---------------------------------------------------------------------------
# Admin reporting
# ---------------------------------------------------------------------------


async def _reporting_orders(client, db_session):
    """customer-1: 225 live. customer-2: 125 live, 125 cancelled."""
    product = await _product(db_session, stock=10)
    big = await _place_order(client, db_session, product, quantity=2)
    with override_auth(app, make_user("customer-2")):
        small = await _place_order(client, db_session, product, user_id="customer-2")
        dropped = await _place_order(client, db_session, product, user_id="customer-2")
        response = await client.post(f"/store/orders/{dropped['id']}/cancel")
        assert response.status_code == 200, response.text
    return big, small, dropped


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_order_statistics(client, db_session):
    await _reporting_orders(client, db_session)

    with override_auth(app, make_admin_user()):
        response = await client.get("/admin/store/orders/statistics")

    assert response.status_code == 200, response.text
    stats = response.json()
    assert stats["total_orders"] == 3
    assert stats["orders_by_status"]["pending"] == 2
    assert stats["orders_by_status"]["cancelled"] == 1
    assert stats["orders_by_status"]["delivered"] == 0
    assert Decimal(stats["total_revenue"]) == Decimal("350")
    assert Decimal(stats["average_order_value"]) == Decimal("175")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_sales_analytics_excludes_cancelled(client, db_session):
    big, _, _ = await _reporting_orders(client, db_session)

    with override_auth(app, make_admin_user()):
        response = await client.get("/admin/store/orders/sales-analytics")
        later = await client.get(
            "/admin/store/orders/sales-analytics",
            params={"start_date": (utc_now() + timedelta(days=1)).isoformat()},
        )

    assert response.status_code == 200, response.text
    (day,) = response.json()
    assert day["day"] == big["order_date"][:10]
    assert day["order_count"] == 2
    assert Decimal(day["revenue"]) == Decimal("350")
    assert Decimal(day["sub_total"]) == Decimal("300")
    assert Decimal(day["vat_amount"]) == Decimal("39.13")
    assert Decimal(day["delivery_fees"]) == Decimal("50")
    assert later.json() == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_top_customers(client, db_session):
    await _reporting_orders(client, db_session)

    with override_auth(app, make_admin_user()):
        response = await client.get("/admin/store/orders/top-customers")
        first = await client.get(
            "/admin/store/orders/top-customers", params={"limit": 1}
        )
        invalid = await client.get(
            "/admin/store/orders/top-customers", params={"limit": 0}
        )

    assert response.status_code == 200, response.text
    ranked = response.json()
    assert [c["user_id"] for c in ranked] == ["customer-1", "customer-2"]
    assert [c["order_count"] for c in ranked] == [1, 1]
    assert Decimal(ranked[0]["total_spent"]) == Decimal("225")
    assert Decimal(ranked[1]["total_spent"]) == Decimal("125")
    assert [c["user_id"] for c in first.json()] == ["customer-1"]
    assert invalid.status_code == 422


@pytest.mark.asyncio
@pytest.mark.integration
async def test_reporting_routes_require_admin_role(client):
    for path in ("statistics", "sales-analytics", "top-customers"):
        response = await client.get(f"/admin/store/orders/{path}")
        assert response.status_code == 403
