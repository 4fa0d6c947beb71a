import os
from contextlib import contextmanager
from typing import AsyncGenerator

# Settings need a database URL at import time; tests build their own engines.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.db.base import Base
from libs.db.session import get_async_db
from services.fulfillment_service import models as _fulfillment_models  # noqa: F401
from services.fulfillment_service.app.main import app
from services.fulfillment_service.dependencies import get_order_service
from services.fulfillment_service.services.invoices import PdfInvoiceRenderer
from services.fulfillment_service.services.orders import OrderService
from services.fulfillment_service.services.payments import (
    PaymentOrchestrator,
    SimulatedCardGateway,
)

get_settings.cache_clear()
settings = get_settings()

VALID_CARD = "4111 1111 1111 1111"
DECLINED_CARD = "4000000000000002"


# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------


def make_user(user_id: str = "customer-1", role: str = "authenticated") -> AuthUser:
    return AuthUser(sub=user_id, email=f"{user_id}@example.com", role=role)


def make_admin_user(user_id: str = "admin-1") -> AuthUser:
    return make_user(user_id=user_id, role="admin")


@contextmanager
def override_auth(target_app, user: AuthUser):
    """Temporarily authenticate every request to ``target_app`` as ``user``."""
    previous = target_app.dependency_overrides.get(get_current_user)
    target_app.dependency_overrides[get_current_user] = lambda: user
    try:
        yield user
    finally:
        if previous is None:
            target_app.dependency_overrides.pop(get_current_user, None)
        else:
            target_app.dependency_overrides[get_current_user] = previous


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """
    File-backed SQLite database per test. A file (not :memory:) so that
    concurrent units of work get separate connections and real locking.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'fulfillment.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture
def card_gateway() -> SimulatedCardGateway:
    return SimulatedCardGateway(declined_numbers={DECLINED_CARD})


@pytest.fixture
def invoice_renderer(tmp_path) -> PdfInvoiceRenderer:
    return PdfInvoiceRenderer(str(tmp_path / "invoices"), settings.CURRENCY)


@pytest.fixture
def order_service(session_factory, card_gateway, invoice_renderer) -> OrderService:
    return OrderService(
        session_factory,
        PaymentOrchestrator(card_gateway),
        invoice_renderer,
        settings=settings,
    )


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(session_factory, order_service) -> AsyncGenerator[AsyncClient, None]:
    """
    AsyncClient against the fulfillment app, wired to the test database and
    authenticated as ``customer-1`` unless a test uses ``override_auth``.
    """

    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_db] = _get_db
    app.dependency_overrides[get_order_service] = lambda: order_service
    app.dependency_overrides[get_current_user] = lambda: make_user()

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
