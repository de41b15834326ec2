"""Tests for DesignSystemRepository."""

import uuid
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from src.models.design_system import DesignSystem
from src.repositories.design_system_repository import DesignSystemRepository

CREATED = datetime(2026, 10, 18, tzinfo=timezone.utc)


@pytest.fixture
def user_id():
    return uuid.uuid4()


def _record(user_id, **overrides):
    fields = dict(
        id=uuid.uuid4(),
        user_id=user_id,
        name="Basic Design System - 2026-10-18",
        brand_description="Calm coastal coffee roastery",
        industry="Food",
        audience=None,
        tier="basic",
        payload={"brand_summary": "Calm"},
        cached=False,
        created_at=CREATED,
    )
    fields.update(overrides)
    return DesignSystem(**fields)


class TestDesignSystemRepository:
    @pytest.mark.asyncio
    async def test_save_commits_and_returns_saved(self, mock_async_session, user_id):
        record_id = uuid.uuid4()

        async def refresh(record):
            record.id = record_id
            record.created_at = CREATED

        mock_async_session.refresh.side_effect = refresh
        repo = DesignSystemRepository(mock_async_session)

        saved = await repo.save(
            str(user_id),
            name="Basic Design System - 2026-10-18",
            brand_description="Calm coastal coffee roastery",
            design_system={"brand_summary": "Calm"},
            tier="basic",
            cached=True,
        )

        added = mock_async_session.add.call_args.args[0]
        assert added.user_id == user_id
        assert added.payload == {"brand_summary": "Calm"}
        assert saved.id == str(record_id)
        assert saved.cached is True
        assert saved.design_system == {"brand_summary": "Calm"}
        mock_async_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_list_is_scoped_and_newest_first(self, mock_async_session, user_id):
        mock_async_session.execute.return_value.scalars = Mock(
            return_value=Mock(all=Mock(return_value=[_record(user_id)]))
        )
        repo = DesignSystemRepository(mock_async_session)

        systems = await repo.list_for_user(str(user_id), limit=5, offset=10)

        sql = str(mock_async_session.execute.await_args.args[0])
        assert "design_systems.user_id =" in sql
        assert "ORDER BY design_systems.created_at DESC" in sql
        assert systems[0].user_id == str(user_id)
        assert systems[0].tier == "basic"

    @pytest.mark.asyncio
    async def test_list_malformed_user_is_empty(self, mock_async_session):
        repo = DesignSystemRepository(mock_async_session)

        assert await repo.list_for_user("nope") == []
        mock_async_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get_for_user(self, mock_async_session, user_id):
        record = _record(user_id)
        mock_async_session.execute.return_value.scalar_one_or_none = Mock(return_value=record)
        repo = DesignSystemRepository(mock_async_session)

        saved = await repo.get_for_user(str(user_id), str(record.id))

        assert saved.id == str(record.id)
        assert saved.brand_description == "Calm coastal coffee roastery"

    @pytest.mark.asyncio
    async def test_get_missing_or_malformed_id(self, mock_async_session, user_id):
        repo = DesignSystemRepository(mock_async_session)

        assert await repo.get_for_user(str(user_id), str(uuid.uuid4())) is None
        assert await repo.get_for_user(str(user_id), "not-a-uuid") is None
