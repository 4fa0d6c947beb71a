"""Fulfillment service routers package."""

from services.fulfillment_service.routers.admin import router as admin_router
from services.fulfillment_service.routers.cart import router as cart_router
from services.fulfillment_service.routers.orders import router as orders_router
from services.fulfillment_service.routers.promotions import router as promotions_router

__all__ = [
    "admin_router",
    "cart_router",
    "orders_router",
    "promotions_router",
]
