"""Repository for atomic credit balance operations."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.exceptions import PrincipalNotFoundError
from src.models.credit_transaction import CreditTransaction
from src.models.user import User
from src.repositories.ports import CreditResult, CreditStore
from src.repositories.user_repository import as_uuid
from src.utils.logger import get_logger

log = get_logger(__name__)


class CreditRepository(CreditStore):
    """Balance mutations on ``users.credits``.

    Every mutation is a single conditional UPDATE and is committed straight
    away, so concurrent requests serialize on the row lock for the duration
    of one statement rather than one HTTP request.

    Grants and overrides carrying an idempotency key first claim the key in
    ``credit_transactions`` (INSERT ... ON CONFLICT DO NOTHING). A lost claim
    means the mutation was already applied.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_balance(self, user_id: str) -> Optional[int]:
        uid = as_uuid(user_id)
        if uid is None:
            return None
        result = await self.session.execute(select(User.credits).where(User.id == uid))
        return result.scalar_one_or_none()

    async def debit(self, user_id: str, amount: int) -> Optional[int]:
        uid = as_uuid(user_id)
        if uid is None:
            return None
        result = await self.session.execute(
            update(User)
            .where(User.id == uid, User.credits >= amount)
            .values(credits=User.credits - amount, updated_at=datetime.now(timezone.utc))
            .returning(User.credits)
        )
        balance = result.scalar_one_or_none()
        await self.session.commit()
        log.debug("debit executed", user_id=str(uid), amount=amount, balance=balance)
        return balance

    async def credit(
        self,
        user_id: str,
        amount: int,
        idempotency_key: Optional[str] = None,
        kind: str = "credit",
    ) -> CreditResult:
        return await self._apply(
            user_id, kind, amount, User.credits + amount, idempotency_key
        )

    async def set_balance(
        self, user_id: str, amount: int, idempotency_key: Optional[str] = None
    ) -> CreditResult:
        return await self._apply(user_id, "set_balance", amount, amount, idempotency_key)

    async def _apply(
        self,
        user_id: str,
        kind: str,
        amount: int,
        new_value,
        idempotency_key: Optional[str],
    ) -> CreditResult:
        current = await self.get_balance(user_id)
        if current is None:
            raise PrincipalNotFoundError(str(user_id))
        uid = as_uuid(user_id)

        transaction_id = await self._claim(uid, kind, amount, idempotency_key)
        if transaction_id is None:
            await self.session.commit()
            log.info(
                "credit mutation replayed",
                user_id=str(uid),
                kind=kind,
                idempotency_key=idempotency_key,
                balance=current,
            )
            return CreditResult(balance=current, applied=False)

        result = await self.session.execute(
            update(User)
            .where(User.id == uid)
            .values(credits=new_value, updated_at=datetime.now(timezone.utc))
            .returning(User.credits)
        )
        balance = result.scalar_one()
        await self.session.execute(
            update(CreditTransaction)
            .where(CreditTransaction.id == transaction_id)
            .values(balance_after=balance)
        )
        await self.session.commit()
        return CreditResult(balance=balance, applied=True)

    async def _claim(self, uid, kind: str, amount: int, idempotency_key: Optional[str]):
        """Insert the transaction row. Returns its id, or None if the key was already used."""
        stmt = (
            insert(CreditTransaction)
            .values(
                user_id=uid,
                kind=kind,
                amount=amount,
                idempotency_key=idempotency_key,
            )
            .on_conflict_do_nothing(index_elements=["idempotency_key"])
            .returning(CreditTransaction.id)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
