"""Repository for monthly usage record operations."""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.usage_record import UsageRecord
from src.repositories.ports import UsageSnapshot, UsageStore
from src.repositories.user_repository import as_uuid
from src.utils.logger import get_logger

log = get_logger(__name__)


def _snapshot(record) -> UsageSnapshot:
    return UsageSnapshot(
        user_id=str(record.user_id),
        action_kind=record.action_kind,
        count=record.count,
        period_start=record.period_start,
        reset_at=record.reset_at,
    )


_COLUMNS = (
    UsageRecord.user_id,
    UsageRecord.action_kind,
    UsageRecord.count,
    UsageRecord.period_start,
    UsageRecord.reset_at,
)


class UsageRecordRepository(UsageStore):
    """Atomic per-(user, action) counters.

    Creation is an INSERT ... ON CONFLICT DO NOTHING, resets are a
    compare-and-swap on ``reset_at`` and increments are conditional on the
    limit, so concurrent callers never double-reset or overshoot.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: str, action_kind: str) -> Optional[UsageSnapshot]:
        result = await self.session.execute(
            select(*_COLUMNS).where(
                UsageRecord.user_id == as_uuid(user_id),
                UsageRecord.action_kind == action_kind,
            )
        )
        row = result.one_or_none()
        return _snapshot(row) if row is not None else None

    async def create(
        self, user_id: str, action_kind: str, period_start: datetime, reset_at: datetime
    ) -> UsageSnapshot:
        await self.session.execute(
            insert(UsageRecord)
            .values(
                user_id=as_uuid(user_id),
                action_kind=action_kind,
                count=0,
                period_start=period_start,
                reset_at=reset_at,
            )
            .on_conflict_do_nothing(index_elements=["user_id", "action_kind"])
        )
        await self.session.commit()
        record = await self.get(user_id, action_kind)
        log.debug("usage record ensured", user_id=str(user_id), action_kind=action_kind)
        return record

    async def reset(
        self,
        user_id: str,
        action_kind: str,
        expected_reset_at: datetime,
        period_start: datetime,
        reset_at: datetime,
    ) -> Optional[UsageSnapshot]:
        result = await self.session.execute(
            update(UsageRecord)
            .where(
                UsageRecord.user_id == as_uuid(user_id),
                UsageRecord.action_kind == action_kind,
                UsageRecord.reset_at == expected_reset_at,
            )
            .values(count=0, period_start=period_start, reset_at=reset_at, updated_at=func.now())
            .returning(*_COLUMNS)
        )
        row = result.one_or_none()
        await self.session.commit()
        return _snapshot(row) if row is not None else None

    async def increment(
        self,
        user_id: str,
        action_kind: str,
        limit: Optional[int],
        expected_reset_at: datetime,
        now: datetime,
    ) -> Optional[UsageSnapshot]:
        conditions = [
            UsageRecord.user_id == as_uuid(user_id),
            UsageRecord.action_kind == action_kind,
            UsageRecord.reset_at == expected_reset_at,
            UsageRecord.reset_at > now,
        ]
        if limit is not None:
            conditions.append(UsageRecord.count < limit)

        result = await self.session.execute(
            update(UsageRecord)
            .where(*conditions)
            .values(count=UsageRecord.count + 1, updated_at=func.now())
            .returning(*_COLUMNS)
        )
        row = result.one_or_none()
        await self.session.commit()
        return _snapshot(row) if row is not None else None

