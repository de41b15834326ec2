"""Shared pytest fixtures for task unit tests."""

import pytest
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, Mock


@pytest.fixture
def mock_session():
    """Mock AsyncSession with commit tracking."""
    session = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    return session


@pytest.fixture
def mock_session_local(mock_session):
    """Mock AsyncSessionLocal that yields mock_session."""

    @asynccontextmanager
    async def session_context():
        yield mock_session

    return session_context


@pytest.fixture
def mock_settings():
    """Mock settings for tasks."""
    settings = Mock()
    settings.usage_record_retention_days = 90
    settings.celery_task_timeout = 600
    settings.cleanup_schedule_cron = "0 3 * * *"
    settings.grant_sweep_batch_size = 2
    return settings

