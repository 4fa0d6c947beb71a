"""Error taxonomy for the fulfillment engine.

Every failure the engine reports is a ``FulfillmentError`` with a ``kind``
(which maps onto an HTTP status), a stable machine ``code``, a human message,
optional structured ``details`` and a ``retryable`` flag.
"""

import enum
from typing import Any, Optional


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    PAYMENT = "payment"
    TRANSIENT_STORAGE = "transient_storage"
    INTERNAL = "internal"


HTTP_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.UNAUTHORIZED: 403,
    ErrorKind.PAYMENT: 402,
    ErrorKind.TRANSIENT_STORAGE: 503,
    ErrorKind.INTERNAL: 500,
}


class FulfillmentError(Exception):
    """Base exception for all fulfillment errors."""

    kind: ErrorKind = ErrorKind.INTERNAL
    code: str = "internal_error"
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        details: Optional[dict[str, Any]] = None,
        retryable: Optional[bool] = None,
    ):
        self.message = message
        self.details = details or {}
        if retryable is not None:
            self.retryable = retryable
        super().__init__(message)

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }


# ============================================================================
# VALIDATION
# ============================================================================


class FulfillmentValidationError(FulfillmentError):
    """Raised when caller input is malformed or violates a business rule."""

    kind = ErrorKind.VALIDATION
    code = "validation_error"


class EmptyCartError(FulfillmentValidationError):
    """Raised when an order is requested from an empty cart."""

    code = "empty_cart"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__("Cart is empty", details={"user_id": user_id})


class CancellationWindowExpiredError(FulfillmentValidationError):
    """Raised when a customer tries to cancel an order they can no longer cancel."""

    code = "cancellation_window_expired"

    def __init__(self, order_id: int, reason: str):
        self.order_id = order_id
        super().__init__(reason, details={"order_id": order_id})


# ============================================================================
# NOT FOUND
# ============================================================================


class NotFoundError(FulfillmentError):
    kind = ErrorKind.NOT_FOUND
    code = "not_found"


class ProductNotFoundError(NotFoundError):
    code = "product_not_found"

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(
            f"Product not found: {product_id}", details={"product_id": product_id}
        )


class OrderNotFoundError(NotFoundError):
    code = "order_not_found"

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}", details={"order_id": order_id})


class DiscountNotFoundError(NotFoundError):
    code = "discount_not_found"

    def __init__(self, discount_id: int):
        self.discount_id = discount_id
        super().__init__(
            f"Discount not found: {discount_id}", details={"discount_id": discount_id}
        )


class InvoiceNotFoundError(NotFoundError):
    code = "invoice_not_found"

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(
            f"No invoice available for order {order_id}", details={"order_id": order_id}
        )


# ============================================================================
# CONFLICT
# ============================================================================


class ConflictError(FulfillmentError):
    kind = ErrorKind.CONFLICT
    code = "conflict"


class InsufficientStockError(ConflictError):
    """Raised when a product cannot cover the requested quantity."""

    code = "insufficient_stock"

    def __init__(self, product_id: int, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}",
            details={
                "product_id": product_id,
                "requested": requested,
                "available": available,
            },
        )


class InvalidTransitionError(ConflictError):
    """Raised when a status change is not allowed from the current status."""

    code = "invalid_transition"

    def __init__(self, entity: str, current: str, target: str):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot change {entity} status from '{current}' to '{target}'",
            details={"entity": entity, "from": current, "to": target},
        )


# ============================================================================
# PROMO CODES
# ============================================================================


class PromoRejection(str, enum.Enum):
    """Why a promo code was refused, in the order the checks run."""

    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    OUT_OF_WINDOW = "out_of_window"
    BELOW_MINIMUM = "below_minimum"
    TOTAL_USES_EXCEEDED = "total_uses_exceeded"
    PER_USER_USES_EXCEEDED = "per_user_uses_exceeded"


_PROMO_MESSAGES = {
    PromoRejection.NOT_FOUND: "Promo code does not exist",
    PromoRejection.INACTIVE: "Promo code is not active",
    PromoRejection.OUT_OF_WINDOW: "Promo code is not valid at this time",
    PromoRejection.BELOW_MINIMUM: "Order total is below the promo code minimum",
    PromoRejection.TOTAL_USES_EXCEEDED: "Promo code usage limit reached",
    PromoRejection.PER_USER_USES_EXCEEDED: "You have already used this promo code the maximum number of times",
}

_PROMO_KINDS = {
    PromoRejection.NOT_FOUND: ErrorKind.NOT_FOUND,
    PromoRejection.INACTIVE: ErrorKind.VALIDATION,
    PromoRejection.OUT_OF_WINDOW: ErrorKind.VALIDATION,
    PromoRejection.BELOW_MINIMUM: ErrorKind.VALIDATION,
    PromoRejection.TOTAL_USES_EXCEEDED: ErrorKind.CONFLICT,
    PromoRejection.PER_USER_USES_EXCEEDED: ErrorKind.CONFLICT,
}


class PromoCodeError(FulfillmentError):
    """Raised when a promo code cannot be applied."""

    def __init__(self, code: str, reason: PromoRejection, **details: Any):
        self.promo_code = code
        self.reason = reason
        self.kind = _PROMO_KINDS[reason]
        self.code = f"promo_{reason.value}"
        super().__init__(
            _PROMO_MESSAGES[reason],
            details={"promo_code": code, "reason": reason.value, **details},
        )


# ============================================================================
# AUTHORIZATION
# ============================================================================


class UnauthorizedError(FulfillmentError):
    """Raised when the caller may not act on the resource."""

    kind = ErrorKind.UNAUTHORIZED
    code = "forbidden"


# ============================================================================
# PAYMENT
# ============================================================================


class PaymentError(FulfillmentError):
    kind = ErrorKind.PAYMENT
    code = "payment_error"


class InvalidCardDataError(PaymentError):
    code = "invalid_card_data"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message, details={"field": field} if field else None)


class UnsupportedPaymentMethodError(PaymentError):
    code = "unsupported_payment_method"

    def __init__(self, method: str):
        self.method = method
        super().__init__(
            f"Unsupported payment method: {method}", details={"payment_method": method}
        )


class PaymentDeclinedError(PaymentError):
    """Raised when the card gateway refuses the charge."""

    code = "payment_declined"

    def __init__(self, message: str, gateway_code: Optional[str] = None):
        self.gateway_code = gateway_code
        super().__init__(
            message, details={"gateway_code": gateway_code} if gateway_code else None
        )


class PaymentGatewayError(PaymentError):
    """Raised when the card gateway could not be reached or answered garbage."""

    code = "payment_gateway_error"
    retryable = True

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(
            message, details={"status_code": status_code} if status_code else None
        )


# ============================================================================
# STORAGE / INTERNAL
# ============================================================================


class TransientStorageError(FulfillmentError):
    """Raised for storage failures that are worth retrying (deadlock, lock timeout)."""

    kind = ErrorKind.TRANSIENT_STORAGE
    code = "transient_storage"
    retryable = True


class InternalError(FulfillmentError):
    kind = ErrorKind.INTERNAL
    code = "internal_error"


class StorageRetryExhaustedError(InternalError):
    """Raised when a unit of work kept failing with transient storage errors."""

    code = "storage_retry_exhausted"
    retryable = True

    def __init__(self, operation: str, attempts: int):
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"{operation} failed after {attempts} attempts, please retry",
            details={"operation": operation, "attempts": attempts},
        )
