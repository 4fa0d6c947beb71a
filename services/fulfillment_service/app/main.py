"""FastAPI application for the Fulfillment Service."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.common.middleware import add_observability_middleware
from libs.db.base import Base
from services.fulfillment_service import models  # noqa: F401
from services.fulfillment_service.routers import (
    admin_router,
    cart_router,
    orders_router,
    promotions_router,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if settings.AUTO_CREATE_TABLES:
        from libs.db.config import engine

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured")
    yield


def create_app() -> FastAPI:
    """Create and configure the Fulfillment Service FastAPI app."""
    app = FastAPI(
        title="Store Fulfillment Service",
        version="0.1.0",
        description="Cart checkout, pricing, payment and order lifecycle.",
        lifespan=lifespan,
    )
    add_observability_middleware(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "fulfillment"}

    # Customer routes (cart, checkout, orders, promotions)
    app.include_router(cart_router, prefix="/store")
    app.include_router(orders_router, prefix="/store")
    app.include_router(promotions_router, prefix="/store")

    # Admin routes (order management, discounts, promo codes)
    app.include_router(admin_router, prefix="/admin/store")

    return app


app = create_app()
