"""Tests for UserRepository principal-store operations."""

import uuid
from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from src.repositories.user_repository import UserRepository, as_uuid, to_snapshot


class TestHelpers:
    def test_as_uuid(self):
        value = uuid.uuid4()

        assert as_uuid(value) is value
        assert as_uuid(str(value)) == value
        assert as_uuid("nope") is None

    def test_to_snapshot(self):
        user = SimpleNamespace(
            id=uuid.uuid4(),
            plan="basic",
            credits=7,
            free_generations_used=1,
            free_generations_limit=3,
            banned=False,
            clerk_id="user_1",
        )

        snapshot = to_snapshot(user)

        assert snapshot.id == str(user.id)
        assert snapshot.credits == 7
        assert snapshot.free_trials_remaining == 2


class TestLoadSnapshot:
    @pytest.mark.asyncio
    async def test_returns_snapshot(self, mock_async_session):
        uid = uuid.uuid4()
        row = SimpleNamespace(
            id=uid,
            clerk_id="user_1",
            plan="professional",
            credits=12,
            free_generations_used=3,
            free_generations_limit=3,
            banned=True,
        )
        mock_async_session.execute.return_value.one_or_none = Mock(return_value=row)
        repo = UserRepository(mock_async_session)

        snapshot = await repo.load_snapshot(str(uid))

        assert snapshot.id == str(uid)
        assert snapshot.plan == "professional"
        assert snapshot.banned is True

    @pytest.mark.asyncio
    async def test_missing_user(self, mock_async_session):
        repo = UserRepository(mock_async_session)

        assert await repo.load_snapshot(str(uuid.uuid4())) is None

    @pytest.mark.asyncio
    async def test_malformed_id(self, mock_async_session):
        repo = UserRepository(mock_async_session)

        assert await repo.load_snapshot("user_abc") is None
        mock_async_session.execute.assert_not_awaited()


class TestFreeGenerations:
    @pytest.mark.asyncio
    async def test_reserve_is_conditional_and_commits(self, mock_async_session):
        mock_async_session.execute.return_value.scalar_one_or_none = Mock(return_value=2)
        repo = UserRepository(mock_async_session)

        used = await repo.reserve_free_generation(str(uuid.uuid4()))

        assert used == 2
        sql = str(mock_async_session.execute.await_args.args[0])
        assert "free_generations_used <" in sql
        mock_async_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_reserve_exhausted_returns_none(self, mock_async_session):
        repo = UserRepository(mock_async_session)

        assert await repo.reserve_free_generation(str(uuid.uuid4())) is None

    @pytest.mark.asyncio
    async def test_release_never_goes_below_zero(self, mock_async_session):
        repo = UserRepository(mock_async_session)

        await repo.release_free_generation(str(uuid.uuid4()))

        sql = str(mock_async_session.execute.await_args.args[0])
        assert "free_generations_used >" in sql


class TestGetOrCreate:
    @pytest.mark.asyncio
    async def test_creates_with_configured_trial_limit(self, mock_async_session):
        repo = UserRepository(mock_async_session)

        user, created = await repo.get_or_create(clerk_id="user_new", free_generations_limit=5)

        assert created is True
        assert user.free_generations_limit == 5
        mock_async_session.add.assert_called_once()
        mock_async_session.flush.assert_awaited()

    @pytest.mark.asyncio
    async def test_existing_user_is_synced(self, mock_async_session):
        existing = Mock()
        existing.id = uuid.uuid4()
        existing.clerk_id = "user_old"
        mock_async_session.execute.return_value.scalar_one_or_none = Mock(return_value=existing)
        repo = UserRepository(mock_async_session)

        user, created = await repo.get_or_create(clerk_id="user_old", email="new@example.com")

        assert created is False
        assert user is existing
        mock_async_session.refresh.assert_awaited_with(existing)
