"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Mocks all external services.
Row factories shared by the DB tests live in factories.py.
"""
import os

# Settings are validated on first use; give the required fields test values
os.environ.setdefault("APP_SECRET_KEY", "test_secret_key_lawnops_0123456789abcdef")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TWILIO_ACCOUNT_SID", "AC_test")
os.environ.setdefault("TWILIO_AUTH_TOKEN", "test_auth_token")
os.environ.setdefault("APP_ENV", "test")

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB, UUID

import lawnops.models  # noqa: F401  registers every table on Base.metadata
from lawnops.database import Base


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


# SQLite gives a bare UUID column numeric affinity, which turns all-digit hex
# ids into numbers; store them as text like the generic Uuid type does
@compiles(UUID, "sqlite")
def _compile_uuid_sqlite(type_, compiler, **kw):
    return "CHAR(32)"


@pytest.fixture
async def db():
    """In-memory SQLite database for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


class FakeRedis:
    """Just enough of redis.asyncio for dedup markers, session locks and heartbeats."""

    def __init__(self):
        self.store = {}

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def get(self, key):
        return self.store.get(key)

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed

    async def eval(self, script, numkeys, key, value):
        if self.store.get(key) == value:
            del self.store[key]
            return 1
        return 0

    async def ping(self):
        return True


@pytest.fixture
def fake_redis():
    """In-memory Redis patched in for dedup, locks and health checks."""
    redis = FakeRedis()
    with patch("lawnops.utils.dedup.get_redis", new_callable=AsyncMock, return_value=redis):
        yield redis


@pytest.fixture
def mock_sms():
    """Mock for async send_sms - prevents real Twilio calls in tests."""
    with patch("lawnops.agents.conductor.send_sms", new_callable=AsyncMock) as mock:
        mock.return_value = {
            "success": True,
            "sid": "SM_test_123",
            "status": "sent",
            "provider": "twilio",
            "segments": 1,
            "cost_usd": 0.0079,
            "error": None,
            "error_code": None,
            "encoding": "gsm7",
        }
        yield mock
