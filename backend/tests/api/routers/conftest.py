"""Shared pytest fixtures for router integration tests."""

import pytest
import uuid
from contextlib import ExitStack
from datetime import datetime, timezone
from typing import AsyncGenerator
from unittest.mock import AsyncMock, Mock, patch

from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession


# Mock database and Redis before the lifespan runs
@pytest.fixture(autouse=True)
def mock_database_init():
    """Mock database initialization and the Redis client for all router tests."""
    with ExitStack() as stack:
        stack.enter_context(patch("src.main.init_db", new_callable=AsyncMock))
        mock_engine = stack.enter_context(patch("src.main.engine"))
        mock_engine.dispose = AsyncMock()
        mock_redis_factory = stack.enter_context(patch("redis.asyncio.from_url"))
        mock_redis_factory.return_value = AsyncMock()
        yield


@pytest.fixture
def mock_db_session():
    """Create a mock AsyncSession for router tests."""
    session = AsyncMock(spec=AsyncSession)

    mock_result = Mock()
    mock_result.scalar_one_or_none = Mock(return_value=None)
    mock_result.scalar_one = Mock(return_value=0)
    mock_result.fetchall = Mock(return_value=[])

    session.execute = AsyncMock(return_value=mock_result)
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.flush = AsyncMock()
    session.refresh = AsyncMock()
    session.close = AsyncMock()
    return session


@pytest.fixture
def mock_redis():
    redis = AsyncMock()
    redis.ping = AsyncMock(return_value=True)
    return redis


@pytest.fixture
def mock_settings():
    """Create mock settings."""
    settings = Mock()
    settings.default_llm_model = "openai/gpt-4o-mini"
    settings.allowed_llm_models = "openai/gpt-4o-mini,openai/gpt-4o"
    settings.openai_api_key = "test-openai-key"
    settings.redis_timeout_seconds = 0.5
    settings.cors_origins = ""
    settings.debug = False
    settings.log_level = "INFO"
    settings.api_key = "test-api-key"
    settings.clerk_domain = "test-clerk.clerk.accounts.dev"
    settings.stripe_webhook_secret = "whsec_test"
    settings.free_generations_limit = 3
    settings.get_super_admin_id = Mock(return_value=None)
    return settings


@pytest.fixture
def mock_user():
    """Create a mock User object for authentication."""
    from src.models.user import User

    user = Mock(spec=User)
    user.id = uuid.uuid4()
    user.clerk_id = "user_test123"
    user.email = "test@example.com"
    user.first_name = "Test"
    user.last_name = "User"
    user.plan = "basic"
    user.credits = 12
    user.free_generations_used = 1
    user.free_generations_limit = 3
    user.banned = False
    user.stripe_customer_id = None
    user.profile_image_url = None
    user.created_at = datetime.now(timezone.utc)
    user.updated_at = datetime.now(timezone.utc)
    user.last_login_at = datetime.now(timezone.utc)
    return user


@pytest.fixture
def mock_user_repo(mock_user):
    """Create a mock UserRepository."""
    repo = AsyncMock()
    repo.get_by_id = AsyncMock(return_value=mock_user)
    repo.get_or_create = AsyncMock(return_value=(mock_user, False))
    repo.update_plan = AsyncMock(return_value=mock_user)
    repo.set_banned = AsyncMock(return_value=mock_user)
    return repo


@pytest.fixture
def mock_gate():
    """Create a mock EntitlementGate."""
    gate = AsyncMock()
    gate.release = AsyncMock(return_value=True)
    return gate


@pytest.fixture
def mock_generation_service():
    return AsyncMock()


@pytest.fixture
def mock_credit_account():
    account = AsyncMock()
    account.set_balance = AsyncMock(return_value=0)
    account.credit = AsyncMock(return_value=0)
    return account


@pytest.fixture
def mock_usage_ledger():
    return AsyncMock()


@pytest.fixture
def mock_billing_service():
    return AsyncMock()


@pytest.fixture
def mock_cache():
    cache = AsyncMock()
    cache.clear_all = AsyncMock(return_value=0)
    return cache


@pytest.fixture
def mock_design_repo():
    repo = AsyncMock()
    repo.list_for_user = AsyncMock(return_value=[])
    repo.get_for_user = AsyncMock(return_value=None)
    return repo


@pytest.fixture
def mocks(
    mock_db_session,
    mock_redis,
    mock_settings,
    mock_user_repo,
    mock_gate,
    mock_generation_service,
    mock_credit_account,
    mock_usage_ledger,
    mock_billing_service,
    mock_cache,
    mock_design_repo,
):
    return Mock(
        db=mock_db_session,
        redis=mock_redis,
        settings=mock_settings,
        user_repo=mock_user_repo,
        gate=mock_gate,
        generation_service=mock_generation_service,
        credit_account=mock_credit_account,
        usage_ledger=mock_usage_ledger,
        billing_service=mock_billing_service,
        cache=mock_cache,
        design_repo=mock_design_repo,
    )


def _create_test_client(mocks, *, user=None, authenticated_ops=True):
    """Build a TestClient with all infra dependencies overridden.

    When user is provided, JWT auth is bypassed (signed-in client). When
    omitted, optional auth resolves to anonymous and required auth runs
    normally so tests can assert 401 behaviour.
    """
    from src.main import app
    from src.database import get_db
    from src.config import get_settings
    from src.dependencies import (
        get_billing_service_dep,
        get_credit_account_dep,
        get_current_user_optional,
        get_current_user_required,
        get_design_system_repository,
        get_entitlement_gate_dep,
        get_generation_cache_dep,
        get_generation_service_dep,
        get_redis,
        get_usage_ledger_dep,
        get_user_repository,
        verify_api_key,
    )

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield mocks.db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: mocks.settings
    app.dependency_overrides[get_redis] = lambda: mocks.redis
    app.dependency_overrides[get_user_repository] = lambda: mocks.user_repo
    app.dependency_overrides[get_entitlement_gate_dep] = lambda: mocks.gate
    app.dependency_overrides[get_generation_service_dep] = lambda: mocks.generation_service
    app.dependency_overrides[get_credit_account_dep] = lambda: mocks.credit_account
    app.dependency_overrides[get_usage_ledger_dep] = lambda: mocks.usage_ledger
    app.dependency_overrides[get_billing_service_dep] = lambda: mocks.billing_service
    app.dependency_overrides[get_generation_cache_dep] = lambda: mocks.cache
    app.dependency_overrides[get_design_system_repository] = lambda: mocks.design_repo

    if user is not None:
        app.dependency_overrides[get_current_user_required] = lambda: user
        app.dependency_overrides[get_current_user_optional] = lambda: user
    else:
        app.dependency_overrides[get_current_user_optional] = lambda: None

    if authenticated_ops:
        app.dependency_overrides[verify_api_key] = lambda: None

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def client(mocks, mock_user):
    """TestClient with all dependencies overridden including auth."""
    yield from _create_test_client(mocks, user=mock_user)


@pytest.fixture
def anonymous_client(mocks):
    """TestClient with no signed-in user and no ops API key override."""
    yield from _create_test_client(mocks, authenticated_ops=False)
