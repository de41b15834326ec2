"""Monthly usage metering per (principal, action kind)."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from src.exceptions import UsageLimitReachedError
from src.repositories.ports import UsageSnapshot, UsageStore
from src.utils.logger import get_logger

log = get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def period_start_for(now: datetime) -> datetime:
    """First instant of the calendar month containing ``now`` (UTC)."""
    now = now.astimezone(timezone.utc)
    return datetime(now.year, now.month, 1, tzinfo=timezone.utc)


def next_reset_at(now: datetime) -> datetime:
    """First instant of the next calendar month (UTC). Jan 15 -> Feb 1, Dec 31 -> Jan 1."""
    now = now.astimezone(timezone.utc)
    if now.month == 12:
        return datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    return datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True, slots=True)
class UsageStatus:
    used: int
    limit: Optional[int]
    remaining: Optional[int]
    reset_at: datetime


class UsageLedger:
    """Counts actions per calendar month with lazy, exactly-once resets.

    A record is created on first access. When ``now >= reset_at`` the next
    reader resets it through a compare-and-swap on the old ``reset_at``; a
    caller that loses the swap simply re-reads the winner's record.
    Increments are not idempotent: every call is one action.
    """

    def __init__(self, store: UsageStore, clock: Callable[[], datetime] = utc_now):
        self._store = store
        self._clock = clock

    async def get_usage(self, user_id: str, action_kind: str) -> UsageSnapshot:
        now = self._clock()
        record = await self._store.get(user_id, action_kind)
        if record is None:
            record = await self._store.create(
                user_id, action_kind, period_start_for(now), next_reset_at(now)
            )
        if now < record.reset_at:
            return record

        reset = await self._store.reset(
            user_id,
            action_kind,
            expected_reset_at=record.reset_at,
            period_start=period_start_for(now),
            reset_at=next_reset_at(now),
        )
        if reset is not None:
            log.info(
                "usage period reset",
                user_id=user_id,
                action_kind=action_kind,
                previous_count=record.count,
                reset_at=reset.reset_at.isoformat(),
            )
            return reset
        # Another caller reset it first
        return await self._store.get(user_id, action_kind)

    async def increment(
        self, user_id: str, action_kind: str, limit: Optional[int] = None
    ) -> UsageSnapshot:
        """Record one action in the current period.

        The store only counts it while the period observed by ``get_usage`` is
        still current. If the period rolled over in between, the record is
        reset and the increment retried once against the new period.

        Raises:
            UsageLimitReachedError: count already at ``limit`` for this period
        """
        for _ in range(2):
            current = await self.get_usage(user_id, action_kind)
            if limit is not None and current.count >= limit:
                raise UsageLimitReachedError(user_id, action_kind, limit)

            updated = await self._store.increment(
                user_id, action_kind, limit, current.reset_at, self._clock()
            )
            if updated is not None:
                log.debug(
                    "usage incremented",
                    user_id=user_id,
                    action_kind=action_kind,
                    count=updated.count,
                )
                return updated
            # Concurrent increments filled the period, or the period ended
        raise UsageLimitReachedError(user_id, action_kind, limit)

    async def usage_status(
        self, user_id: str, action_kind: str, limit: Optional[int]
    ) -> UsageStatus:
        record = await self.get_usage(user_id, action_kind)
        remaining = None if limit is None else max(0, limit - record.count)
        return UsageStatus(
            used=record.count, limit=limit, remaining=remaining, reset_at=record.reset_at
        )
