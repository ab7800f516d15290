"""
Shared fixtures.

Environment is set before any ``orderpay`` import so the cached settings,
the module-level engine and the Argon2 hasher all pick up test values.
"""

import os

os.environ.update({
    "ENV_MODE": "development",
    "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
    "JWT_SECRET": "test-jwt-secret",
    "PAYMENT_WEBHOOK_SECRET": "whsec_test",
    "PAYMENT_WEBHOOK_INSECURE_ALLOW_UNSIGNED": "false",
    "ADMIN_SECRET": "admin-test-secret",
    "ARGON2_TIME_COST": "1",
    "ARGON2_MEMORY_COST": "8",
    "ARGON2_PARALLELISM": "1",
    "AUTH_RATE_LIMIT_PER_MINUTE": "1000",
})

import re
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from orderpay.core.config import get_settings
from orderpay.core.security import reset_hasher
from orderpay.database import Base, get_db
from orderpay.services.notifications import MockNotificationService, reset_notification_service
from orderpay.services.payment import reset_webhook_verifier
from orderpay.services.rate_limit import reset_rate_limiter

import orderpay.models  # noqa: F401


class FakeClock:
    """Controllable UTC clock for expiry tests."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def last_code(notifier: MockNotificationService) -> str:
    """Pull the OTP out of the most recent mock message."""
    _, message = notifier.outbox[-1]
    return re.search(r"code is (\d+)", message).group(1)


@pytest.fixture(autouse=True)
def _reset_caches():
    """Every test starts from the environment above."""
    get_settings.cache_clear()
    reset_hasher()
    reset_notification_service()
    reset_webhook_verifier()
    reset_rate_limiter()
    yield
    get_settings.cache_clear()
    reset_notification_service()
    reset_webhook_verifier()
    reset_rate_limiter()


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def notifier() -> MockNotificationService:
    return MockNotificationService()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def client(session_maker):
    from orderpay.main import app

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
async def file_session_maker(tmp_path):
    """File-backed database where every session has its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orderpay.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()
