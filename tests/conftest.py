"""Shared test configuration and fixtures.

Every test gets its own ledger database:
- A temporary SQLite file (through aiosqlite) with all tables created.
- A fresh EntitlementStore, so per-user locks never leak between tests.
Gateway adapters run in sandbox mode (no secret keys), so no test talks to a
real provider.
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

import entitlements.models  # noqa: F401  (registers tables on Base.metadata)
from entitlements.api.deps import get_subscription_service
from entitlements.auth.jwt import create_access_token
from entitlements.billing.gateways.registry import GatewayAdapterRegistry, build_default_registry
from entitlements.config import Settings
from entitlements.database import Base, utcnow
from entitlements.main import app
from entitlements.notifications import EntitlementEvent
from entitlements.services.store import EntitlementStore
from entitlements.services.subscription_service import SubscriptionService

# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class RecordingDispatcher:
    """Collects emitted events instead of delivering them."""

    def __init__(self) -> None:
        self.events: list[EntitlementEvent] = []

    async def dispatch(self, event: EntitlementEvent) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [e.type for e in self.events]


class FakeClock:
    """A settable clock for expiry tests."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def _refuse_network(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"Unexpected provider call: {request.method} {request.url}")


# ---------------------------------------------------------------------------
# Per-test database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a throwaway SQLite ledger with all tables."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def store(session_factory) -> EntitlementStore:
    return EntitlementStore(session_factory)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(utcnow())


# ---------------------------------------------------------------------------
# Gateways and service
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings() -> Settings:
    """Settings with every provider in sandbox mode."""
    return Settings(
        _env_file=None,
        jwt_secret_key="test-secret",
        bkash_secret_key="",
        nagad_secret_key="",
        upay_secret_key="",
        rocket_secret_key="",
        card_secret_key="",
        bkash_webhook_secret="",
        nagad_webhook_secret="",
        upay_webhook_secret="",
        rocket_webhook_secret="",
        card_webhook_secret="",
    )


@pytest_asyncio.fixture
async def gateways(test_settings: Settings) -> AsyncGenerator[GatewayAdapterRegistry, None]:
    registry = build_default_registry(
        test_settings, httpx.AsyncClient(transport=httpx.MockTransport(_refuse_network))
    )
    yield registry
    await registry.aclose()


@pytest.fixture
def service(store, gateways, dispatcher, clock) -> SubscriptionService:
    return SubscriptionService(store, gateways, dispatcher, clock=clock)


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(service: SubscriptionService) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to the per-test service."""
    app.dependency_overrides[get_subscription_service] = lambda: service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


def _headers(user_id: str, role: str = "user") -> dict[str, str]:
    token = create_access_token({"sub": user_id, "role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Bearer headers for the regular user ``user-1``."""
    return _headers("user-1")


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return _headers("admin-1", role="admin")
