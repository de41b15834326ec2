"""Shared pytest fixtures."""

# Clear settings cache before any imports to prevent stale values with coverage
from src.config import get_settings

get_settings.cache_clear()

import pytest
import uuid
from unittest.mock import AsyncMock, Mock
from contextlib import asynccontextmanager

from src.config import Settings
from src.repositories.memory import (
    InMemoryAccountStore,
    InMemoryDesignSystemStore,
    InMemoryGrantStore,
    InMemoryUsageEventStore,
    InMemoryUsageStore,
)
from src.services.credit_account import CreditAccount
from src.services.rate_limiter import InMemoryRateLimiter


class FakeClock:
    """Manually advanced wall clock (seconds since the epoch)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings():
    """Real Settings with test-friendly values and no .env lookup."""
    return Settings(
        _env_file=None,
        rate_limit_window_seconds=60,
        rate_limit_anonymous=2,
        rate_limit_authenticated=5,
        free_generations_limit=3,
        super_admin_clerk_id="",
        reservation_attempts=2,
        store_timeout_seconds=1.0,
        cache_policy="entitlement_first",
        cache_ttl_seconds=3600,
    )


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def account_store():
    return InMemoryAccountStore()


@pytest.fixture
def usage_store():
    return InMemoryUsageStore()


@pytest.fixture
def event_store():
    return InMemoryUsageEventStore()


@pytest.fixture
def credit_account(account_store):
    return CreditAccount(account_store)


@pytest.fixture
def rate_limiter(fake_clock):
    return InMemoryRateLimiter(clock=fake_clock)


@pytest.fixture
def mock_llm_client():
    """Create a mock LLM client."""
    client = AsyncMock()
    client.provider_name = "mock"
    client.model = "mock-model"
    return client


# Database mocking fixtures


@pytest.fixture
def mock_async_session():
    """Create a mock AsyncSession for repository tests."""
    session = AsyncMock()

    # Mock result object for execute
    mock_result = Mock()
    mock_result.scalar_one_or_none = Mock(return_value=None)
    mock_result.scalar_one = Mock(return_value=0)
    mock_result.one_or_none = Mock(return_value=None)
    mock_result.scalars = Mock(return_value=Mock(all=Mock(return_value=[])))
    mock_result.fetchall = Mock(return_value=[])
    mock_result.rowcount = 0

    session.execute = AsyncMock(return_value=mock_result)
    session.scalar = AsyncMock(return_value=0)
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.flush = AsyncMock()
    session.refresh = AsyncMock()
    session.add = Mock()
    session.add_all = Mock()
    session.delete = AsyncMock()
    session.expire_all = Mock()

    @asynccontextmanager
    async def begin_nested():
        yield

    session.begin_nested = begin_nested

    return session


@pytest.fixture
def sample_uuid():
    """Return a sample UUID string."""
    return str(uuid.uuid4())


@pytest.fixture
def grant_store():
    return InMemoryGrantStore()


@pytest.fixture
def design_store():
    return InMemoryDesignSystemStore()
