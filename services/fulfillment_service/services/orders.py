"""
Order coordinator.

Every mutating operation runs as one atomic unit (``run_atomic``): either all
of its writes (order rows, payment, stock, cart, promo usage) commit together
or none do. Operations never raise business errors; they return an
``OrderResult`` carrying the order snapshot or the ``FulfillmentError``.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from libs.common.config import Settings, get_settings
from libs.common.currency import ZERO
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.fulfillment_service import repositories
from services.fulfillment_service.errors import (
    FulfillmentError,
    InternalError,
    NotFoundError,
    OrderNotFoundError,
    PromoCodeError,
)
from services.fulfillment_service.models import (
    DeliveryAddress,
    Order,
    OrderItem,
    OrderStatus,
    PaymentDetails,
    PaymentStatus,
    PromoCode,
)
from services.fulfillment_service.schemas import CheckoutRequest, OrderResponse
from services.fulfillment_service.services.discounts import (
    DiscountRule,
    evaluate_promo_code,
    normalize_promo_code,
    resolve_item_discount,
)
from services.fulfillment_service.services.invoices import InvoiceRenderer
from services.fulfillment_service.services.payments import CardData, PaymentOrchestrator
from services.fulfillment_service.services.pricing import (
    compute_totals,
    items_total,
    price_line,
)
from services.fulfillment_service.services.state_machine import (
    apply_order_transition,
    apply_payment_transition,
    ensure_customer_can_cancel,
)
from services.fulfillment_service.services.stock import (
    commit_stock,
    ensure_stock,
    restore_stock,
    snapshot_cart,
)
from services.fulfillment_service.services.transactions import run_atomic

logger = get_logger(__name__)


@dataclass
class OrderResult:
    order: Optional[OrderResponse] = None
    error: Optional[FulfillmentError] = None
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class PromoValidationResult:
    code: str
    discount_amount: Decimal = ZERO
    error: Optional[PromoCodeError] = None

    @property
    def valid(self) -> bool:
        return self.error is None


class OrderService:
    """Creates, cancels and moves orders through their lifecycle."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        payments: PaymentOrchestrator,
        invoices: Optional[InvoiceRenderer] = None,
        *,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session_factory = session_factory
        self.payments = payments
        self.invoices = invoices
        self.settings = settings or get_settings()
        self.clock = clock

    # =========================================================================
    # Unit-of-work plumbing
    # =========================================================================

    async def _run(self, operation: str, work) -> OrderResult:
        try:
            order = await run_atomic(
                self.session_factory,
                work,
                operation=operation,
                max_attempts=self.settings.ORDER_TX_MAX_ATTEMPTS,
                backoff_seconds=self.settings.ORDER_TX_RETRY_BACKOFF_SECONDS,
            )
        except FulfillmentError as e:
            log = logger.error if e.http_status >= 500 else logger.warning
            log("%s rejected: %s (%s)", operation, e.message, e.code)
            return OrderResult(error=e)
        except Exception:
            logger.exception("%s failed unexpectedly", operation)
            return OrderResult(
                error=InternalError(f"{operation} failed due to an internal error")
            )
        return OrderResult(order=order)

    async def _attach_invoice(self, result: OrderResult) -> OrderResult:
        """
        Render the invoice after commit. Failures only add a warning.

        The order is read and the session closed before rendering; only the
        final ``invoice_path`` write runs in a transaction.
        """
        if not result.ok or self.invoices is None:
            return result
        order_id = result.order.id
        try:
            async with self.session_factory() as db:
                order = await repositories.get_order(db, order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            path = await self.invoices.generate(order)
            async with self.session_factory() as db:
                async with db.begin():
                    await repositories.set_invoice_path(db, order_id, path)
        except Exception as e:
            logger.warning("Invoice generation failed for order %s: %s", order_id, e)
            result.warnings.append(f"Invoice generation failed: {e}")
        else:
            result.order.invoice_path = path
        return result

    # =========================================================================
    # Create
    # =========================================================================

    async def create_order(self, user_id: str, checkout: CheckoutRequest) -> OrderResult:
        """
        Turn the user's cart into an order.

        1. Validate payment method and card data (before any storage work)
        2. Snapshot the cart against locked product rows, check stock
        3. Resolve per-item discounts, then the promo code
        4. Persist order, items, address and a pending payment
        5. Charge the payment
        6. Decrement stock, clear the cart
        7. Commit, then render the invoice (best effort)

        Any failure in steps 2-6 rolls the whole unit back.
        """
        card_details = checkout.card_details
        try:
            card = self.payments.validate(
                checkout.payment_method,
                card_details.card_number.get_secret_value()
                if card_details and card_details.card_number
                else None,
                card_details.expiry_date if card_details else None,
                card_details.cvv.get_secret_value()
                if card_details and card_details.cvv
                else None,
                now=self.clock(),
            )
        except FulfillmentError as e:
            logger.warning("create_order rejected for user %s: %s", user_id, e.message)
            return OrderResult(error=e)

        # Same key on every retry so the gateway never charges twice
        idempotency_key = f"checkout-{uuid.uuid4().hex}"

        async def work(db: AsyncSession) -> OrderResponse:
            return await self._create_order_unit(
                db, user_id, checkout, card, idempotency_key
            )

        result = await self._run("create_order", work)
        if result.ok:
            logger.info(
                "Order %s created for user %s: final=%s %s",
                result.order.id,
                user_id,
                result.order.final_amount,
                self.settings.CURRENCY,
            )
        return await self._attach_invoice(result)

    async def _create_order_unit(
        self,
        db: AsyncSession,
        user_id: str,
        checkout: CheckoutRequest,
        card: Optional[CardData],
        idempotency_key: str,
    ) -> OrderResponse:
        now = self.clock()

        lines = await snapshot_cart(db, user_id)
        ensure_stock(lines)

        rules = [
            DiscountRule.from_model(d)
            for d in await repositories.list_active_discounts(db, now)
        ]
        priced = [
            price_line(
                line.product_id,
                line.product_name,
                line.unit_price,
                line.quantity,
                resolve_item_discount(
                    rules, line.product_id, line.category, line.unit_price, now
                ),
            )
            for line in lines
        ]

        promo: Optional[PromoCode] = None
        promo_amount = ZERO
        if checkout.promo_code:
            promo, promo_amount = await self._apply_promo_code(
                db, checkout.promo_code, user_id, items_total(priced), now
            )

        totals = compute_totals(
            priced,
            vat_rate=self.settings.VAT_RATE,
            delivery_fee=self.settings.DELIVERY_FEE,
            promo_discount=promo_amount,
        )

        order = Order(
            user_id=user_id,
            status=OrderStatus.PENDING,
            order_date=now,
            sub_total=totals.sub_total,
            discount_amount=totals.discount_amount,
            promo_code_id=promo.id if promo else None,
            promo_code=promo.code if promo else None,
            promo_discount_amount=totals.promo_discount_amount,
            vat_amount=totals.vat_amount,
            total_amount=totals.total_amount,
            delivery_fee=totals.delivery_fee,
            final_amount=totals.final_amount,
            invoice_path=None,
        )
        order.items = [
            OrderItem(
                product_id=line.product_id,
                product_name=line.product_name,
                quantity=line.quantity,
                original_price=line.original_price,
                price=line.price,
                discount_amount=line.discount_amount,
                discount_id=line.discount_id,
                discount_name=line.discount_name,
                total=line.total,
            )
            for line in totals.lines
        ]
        address = checkout.delivery_address
        order.delivery_address = DeliveryAddress(
            full_name=address.full_name,
            phone_number=address.phone_number,
            city=address.city,
            street=address.street,
            building_number=address.building_number,
            additional_details=address.additional_details,
        )
        order.payment = PaymentDetails(
            payment_method=checkout.payment_method,
            status=PaymentStatus.PENDING,
            amount=totals.final_amount,
            currency=self.settings.CURRENCY,
            transaction_id=None,
            paid_at=None,
            error_code=None,
            error_message=None,
            is_refunded=False,
            refunded_at=None,
            refund_amount=None,
        )
        db.add(order)
        await db.flush()

        if promo is not None:
            await repositories.record_promo_usage(db, promo.id, user_id, order.id)

        await self.payments.process(
            order.payment,
            card,
            idempotency_key=idempotency_key,
            order_date=now,
            now=self.clock(),
        )

        await commit_stock(db, lines)
        await repositories.clear_cart(db, user_id)
        await db.flush()

        return OrderResponse.model_validate(order)

    async def _apply_promo_code(
        self,
        db: AsyncSession,
        raw_code: str,
        user_id: str,
        order_total: Decimal,
        now: datetime,
    ) -> tuple[PromoCode, Decimal]:
        code = normalize_promo_code(raw_code)
        # Locked so concurrent redemptions are counted one after the other
        promo = await repositories.find_promo_code(db, code, lock=True)
        total_uses = user_uses = 0
        if promo is not None:
            total_uses = await repositories.count_promo_usages(db, promo.id)
            user_uses = await repositories.count_promo_usages(db, promo.id, user_id)
        amount = evaluate_promo_code(
            promo,
            code=code,
            order_total=order_total,
            now=now,
            total_uses=total_uses,
            user_uses=user_uses,
        )
        return promo, amount

    # =========================================================================
    # Promo validation (read-only)
    # =========================================================================

    async def validate_promo_code(
        self, user_id: str, code: str, order_total: Decimal
    ) -> PromoValidationResult:
        """Preview what a promo code would take off ``order_total``. Writes nothing."""
        normalized = normalize_promo_code(code)
        async with self.session_factory() as db:
            promo = await repositories.find_promo_code(db, normalized)
            total_uses = user_uses = 0
            if promo is not None:
                total_uses = await repositories.count_promo_usages(db, promo.id)
                user_uses = await repositories.count_promo_usages(db, promo.id, user_id)
        try:
            amount = evaluate_promo_code(
                promo,
                code=normalized,
                order_total=order_total,
                now=self.clock(),
                total_uses=total_uses,
                user_uses=user_uses,
            )
        except PromoCodeError as e:
            return PromoValidationResult(code=normalized, error=e)
        return PromoValidationResult(code=normalized, discount_amount=amount)

    # =========================================================================
    # Cancel / status changes
    # =========================================================================

    async def cancel_order(self, order_id: int, user_id: str) -> OrderResult:
        """Customer cancellation: owner only, within the window, stock restored."""
        window = timedelta(minutes=self.settings.ORDER_CANCELLATION_WINDOW_MINUTES)

        async def work(db: AsyncSession) -> OrderResponse:
            order = await repositories.get_order(db, order_id, lock=True)
            if order is None:
                raise OrderNotFoundError(order_id)
            now = self.clock()
            ensure_customer_can_cancel(order, user_id, now, window)
            apply_order_transition(order, OrderStatus.CANCELLED, now)
            await restore_stock(db, order.items)
            await db.flush()
            return OrderResponse.model_validate(order)

        result = await self._run("cancel_order", work)
        if result.ok:
            logger.info("Order %s cancelled by customer %s", order_id, user_id)
        return result

    async def update_order_status(
        self, order_id: int, status: OrderStatus
    ) -> OrderResult:
        """Admin status change. Cancelling restores stock; the invoice is re-rendered."""

        async def work(db: AsyncSession) -> OrderResponse:
            order = await repositories.get_order(db, order_id, lock=True)
            if order is None:
                raise OrderNotFoundError(order_id)
            previous = order.status
            apply_order_transition(order, status, self.clock())
            if status == OrderStatus.CANCELLED:
                await restore_stock(db, order.items)
            await db.flush()
            logger.info(
                "Order %s status %s -> %s", order_id, previous.value, status.value
            )
            return OrderResponse.model_validate(order)

        result = await self._run("update_order_status", work)
        return await self._attach_invoice(result)

    async def update_payment_status(
        self, order_id: int, status: PaymentStatus
    ) -> OrderResult:
        """Admin payment status change; refunds are for the order total."""

        async def work(db: AsyncSession) -> OrderResponse:
            order = await repositories.get_order(db, order_id, lock=True)
            if order is None:
                raise OrderNotFoundError(order_id)
            if order.payment is None:
                raise NotFoundError(
                    f"Order {order_id} has no payment", details={"order_id": order_id}
                )
            previous = order.payment.status
            apply_payment_transition(
                order.payment, status, self.clock(), refund_amount=order.total_amount
            )
            await db.flush()
            logger.info(
                "Order %s payment %s -> %s", order_id, previous.value, status.value
            )
            return OrderResponse.model_validate(order)

        result = await self._run("update_payment_status", work)
        return await self._attach_invoice(result)

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_order(
        self, order_id: int, user_id: Optional[str] = None
    ) -> OrderResult:
        """Fetch one order. With ``user_id``, other users' orders read as missing."""
        async with self.session_factory() as db:
            order = await repositories.get_order(db, order_id)
            if order is None or (user_id is not None and order.user_id != user_id):
                return OrderResult(error=OrderNotFoundError(order_id))
            return OrderResult(order=OrderResponse.model_validate(order))

    async def list_orders(
        self,
        user_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[OrderResponse]:
        async with self.session_factory() as db:
            orders = await repositories.list_orders(
                db, user_id=user_id, status=status, limit=limit, offset=offset
            )
            return [OrderResponse.model_validate(o) for o in orders]
