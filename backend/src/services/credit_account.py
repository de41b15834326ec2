"""Credit balance operations with validation and logging."""

from typing import Optional

from src.exceptions import InsufficientCreditsError
from src.repositories.ports import CreditResult, CreditStore
from src.utils.logger import get_logger

log = get_logger(__name__)


def _require_positive(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValueError(f"Amount must be a positive integer, got {amount!r}")


class CreditAccount:
    """Debits, grants and overrides on a principal's credit balance.

    The balance never goes negative: a debit larger than the balance is
    rejected whole, never clamped.
    """

    def __init__(self, store: CreditStore):
        self._store = store

    async def get_balance(self, user_id: str) -> Optional[int]:
        return await self._store.get_balance(user_id)

    async def debit(self, user_id: str, amount: int = 1) -> int:
        """Subtract ``amount`` atomically and return the new balance.

        Raises:
            ValueError: amount is not a positive integer
            InsufficientCreditsError: balance < amount (balance unchanged)
        """
        _require_positive(amount)
        balance = await self._store.debit(user_id, amount)
        if balance is None:
            current = await self._store.get_balance(user_id)
            log.warning(
                "insufficient credits", user_id=user_id, requested=amount, balance=current
            )
            raise InsufficientCreditsError(user_id, amount, current)
        log.info("credits debited", user_id=user_id, amount=amount, balance=balance)
        return balance

    async def credit(
        self, user_id: str, amount: int, idempotency_key: Optional[str] = None
    ) -> int:
        """Add ``amount``. Replaying an idempotency key returns the current balance unchanged."""
        _require_positive(amount)
        result = await self._store.credit(user_id, amount, idempotency_key)
        if result.applied:
            log.info(
                "credits added",
                user_id=user_id,
                amount=amount,
                balance=result.balance,
                idempotency_key=idempotency_key,
            )
        return result.balance

    async def refund(self, user_id: str, amount: int, idempotency_key: str) -> int:
        """Compensating credit for a reservation that produced nothing."""
        _require_positive(amount)
        result = await self._store.credit(user_id, amount, idempotency_key, kind="refund")
        if result.applied:
            log.info(
                "credits refunded",
                user_id=user_id,
                amount=amount,
                balance=result.balance,
                idempotency_key=idempotency_key,
            )
        return result.balance

    async def set_balance(
        self, user_id: str, amount: int, idempotency_key: Optional[str] = None
    ) -> int:
        """Overwrite the balance (cancellation floor, admin override)."""
        result = await self.apply_balance(user_id, amount, idempotency_key)
        return result.balance

    async def apply_balance(
        self, user_id: str, amount: int, idempotency_key: Optional[str] = None
    ) -> CreditResult:
        """Like ``set_balance``, but tells the caller whether the key was claimed.

        ``applied`` is False when ``idempotency_key`` was already used; the
        balance is then returned untouched.
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise ValueError(f"Balance must be a non-negative integer, got {amount!r}")
        result = await self._store.set_balance(user_id, amount, idempotency_key)
        if result.applied:
            log.info(
                "credit balance set",
                user_id=user_id,
                balance=result.balance,
                idempotency_key=idempotency_key,
            )
        return result
