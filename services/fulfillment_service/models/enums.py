"""Enum definitions for fulfillment service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethodType(str, enum.Enum):
    CREDIT_CARD = "credit_card"
    MADA = "mada"
    APPLE_PAY = "apple_pay"
    SAMSUNG_PAY = "samsung_pay"
    GOOGLE_PAY = "google_pay"
    STC_PAY = "stc_pay"
    CASH_ON_DELIVERY = "cash_on_delivery"
    PAYPAL = "paypal"


class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


class DiscountScope(str, enum.Enum):
    ALL_PRODUCTS = "all_products"
    CATEGORY = "category"
    PRODUCT = "product"
    GLOBAL = "global"
