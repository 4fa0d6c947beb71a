"""Order and payment state machines.

Transition tables are data; the functions below check a requested change
against them before anything is mutated.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import ensure_utc
from services.fulfillment_service.errors import (
    CancellationWindowExpiredError,
    InvalidTransitionError,
    UnauthorizedError,
)
from services.fulfillment_service.models import (
    Order,
    OrderStatus,
    PaymentDetails,
    PaymentStatus,
)

ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PROCESSING}),
    PaymentStatus.PROCESSING: frozenset(
        {PaymentStatus.COMPLETED, PaymentStatus.FAILED}
    ),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PROCESSING}),
    PaymentStatus.REFUNDED: frozenset(),
}

# Statuses a customer may still cancel from
CUSTOMER_CANCELLABLE = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING})


def can_transition_order(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS[current]


def can_transition_payment(current: PaymentStatus, target: PaymentStatus) -> bool:
    return target in PAYMENT_TRANSITIONS[current]


def ensure_order_transition(current: OrderStatus, target: OrderStatus) -> None:
    if not can_transition_order(current, target):
        raise InvalidTransitionError("order", current.value, target.value)


def ensure_payment_transition(current: PaymentStatus, target: PaymentStatus) -> None:
    if not can_transition_payment(current, target):
        raise InvalidTransitionError("payment", current.value, target.value)


# ============================================================================
# APPLYING TRANSITIONS
# ============================================================================


def mark_payment_completed(payment: PaymentDetails, now: datetime) -> None:
    payment.status = PaymentStatus.COMPLETED
    payment.paid_at = payment.paid_at or now
    payment.error_code = None
    payment.error_message = None


def mark_payment_refunded(
    payment: PaymentDetails, now: datetime, amount: Optional[Decimal]
) -> None:
    payment.status = PaymentStatus.REFUNDED
    payment.is_refunded = True
    payment.refunded_at = now
    payment.refund_amount = amount


def apply_order_transition(order: Order, target: OrderStatus, now: datetime) -> None:
    """
    Move ``order`` to ``target`` and keep its payment consistent.

    delivered  -> payment completed (paid now unless already paid)
    cancelled  -> payment refunded for the order total

    Raises:
        InvalidTransitionError: ``target`` is not reachable; nothing is changed.
    """
    ensure_order_transition(order.status, target)
    order.status = target

    payment = order.payment
    if payment is None:
        return
    if target == OrderStatus.DELIVERED and payment.status not in (
        PaymentStatus.COMPLETED,
        PaymentStatus.REFUNDED,
    ):
        mark_payment_completed(payment, now)
    elif target == OrderStatus.CANCELLED and payment.status != PaymentStatus.REFUNDED:
        mark_payment_refunded(payment, now, order.total_amount)


def apply_payment_transition(
    payment: PaymentDetails,
    target: PaymentStatus,
    now: datetime,
    refund_amount: Optional[Decimal] = None,
) -> None:
    """Move ``payment`` to ``target``, stamping paid/refund fields on the way."""
    ensure_payment_transition(payment.status, target)
    if target == PaymentStatus.COMPLETED:
        mark_payment_completed(payment, now)
    elif target == PaymentStatus.REFUNDED:
        mark_payment_refunded(payment, now, refund_amount)
    else:
        payment.status = target


def ensure_customer_can_cancel(
    order: Order, user_id: str, now: datetime, window: timedelta
) -> None:
    """
    Check that ``user_id`` may cancel ``order`` right now.

    Only the owner may cancel, only before the order ships and only within
    ``window`` of the order date.
    """
    if order.user_id != user_id:
        raise UnauthorizedError(
            "You can only cancel your own orders", details={"order_id": order.id}
        )
    if order.status not in CUSTOMER_CANCELLABLE:
        raise CancellationWindowExpiredError(
            order.id, f"Orders in status '{order.status.value}' can no longer be cancelled"
        )
    if now - ensure_utc(order.order_date) > window:
        raise CancellationWindowExpiredError(
            order.id, "The cancellation window for this order has passed"
        )
