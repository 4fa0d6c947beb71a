"""Fulfillment Service models package."""

from services.fulfillment_service.models.catalog import CartItem, Product
from services.fulfillment_service.models.commerce import (
    DeliveryAddress,
    Order,
    OrderItem,
    PaymentDetails,
)
from services.fulfillment_service.models.enums import (
    DiscountScope,
    DiscountType,
    OrderStatus,
    PaymentMethodType,
    PaymentStatus,
)
from services.fulfillment_service.models.promotions import (
    Discount,
    DiscountProduct,
    PromoCode,
    PromoCodeUsage,
)

__all__ = [
    "CartItem",
    "DeliveryAddress",
    "Discount",
    "DiscountProduct",
    "DiscountScope",
    "DiscountType",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentDetails",
    "PaymentMethodType",
    "PaymentStatus",
    "Product",
    "PromoCode",
    "PromoCodeUsage",
]
