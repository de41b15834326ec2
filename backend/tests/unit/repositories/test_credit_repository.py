"""Tests for CreditRepository."""

import uuid
from unittest.mock import Mock

import pytest

from src.exceptions import PrincipalNotFoundError
from src.repositories.credit_repository import CreditRepository


def _result(scalar=None):
    result = Mock()
    result.scalar_one_or_none = Mock(return_value=scalar)
    result.scalar_one = Mock(return_value=scalar)
    return result


@pytest.fixture
def user_id():
    return str(uuid.uuid4())


class TestDebit:
    @pytest.mark.asyncio
    async def test_debit_returns_balance_and_commits(self, mock_async_session, user_id):
        mock_async_session.execute.return_value = _result(4)
        repo = CreditRepository(mock_async_session)

        balance = await repo.debit(user_id, 1)

        assert balance == 4
        mock_async_session.commit.assert_awaited_once()
        sql = str(mock_async_session.execute.await_args.args[0])
        assert "credits >=" in sql
        assert "RETURNING" in sql

    @pytest.mark.asyncio
    async def test_debit_insufficient_returns_none(self, mock_async_session, user_id):
        mock_async_session.execute.return_value = _result(None)
        repo = CreditRepository(mock_async_session)

        assert await repo.debit(user_id, 5) is None

    @pytest.mark.asyncio
    async def test_malformed_id_skips_query(self, mock_async_session):
        repo = CreditRepository(mock_async_session)

        assert await repo.debit("not-a-uuid", 1) is None
        mock_async_session.execute.assert_not_awaited()


class TestIdempotentMutations:
    @pytest.mark.asyncio
    async def test_credit_claims_key_then_updates(self, mock_async_session, user_id):
        transaction_id = uuid.uuid4()
        mock_async_session.execute.side_effect = [
            _result(5),  # current balance
            _result(transaction_id),  # claim inserted
            _result(15),  # UPDATE users RETURNING credits
            _result(None),  # UPDATE credit_transactions balance_after
        ]
        repo = CreditRepository(mock_async_session)

        result = await repo.credit(user_id, 10, idempotency_key="grant-1")

        assert result.balance == 15
        assert result.applied is True
        claim_sql = str(mock_async_session.execute.await_args_list[1].args[0])
        assert "ON CONFLICT" in claim_sql
        mock_async_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_replayed_key_leaves_balance(self, mock_async_session, user_id):
        mock_async_session.execute.side_effect = [
            _result(5),  # current balance
            _result(None),  # claim lost: key already used
        ]
        repo = CreditRepository(mock_async_session)

        result = await repo.set_balance(user_id, 50, idempotency_key="payment:evt_1")

        assert result.balance == 5
        assert result.applied is False
        assert mock_async_session.execute.await_count == 2

    @pytest.mark.asyncio
    async def test_unknown_principal_raises(self, mock_async_session, user_id):
        mock_async_session.execute.return_value = _result(None)
        repo = CreditRepository(mock_async_session)

        with pytest.raises(PrincipalNotFoundError):
            await repo.credit(user_id, 1)
