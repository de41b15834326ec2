"""Repository for held generation grants."""

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.grant import Grant
from src.repositories.ports import GrantStatus, GrantStore, HeldGrant
from src.repositories.user_repository import as_uuid

_COLUMNS = (
    Grant.token,
    Grant.user_id,
    Grant.tier,
    Grant.credits_consumed,
    Grant.free_trial_consumed,
    Grant.expires_at,
)


def _held(row) -> HeldGrant:
    return HeldGrant(
        token=row.token,
        user_id=str(row.user_id),
        tier=row.tier,
        credits_consumed=row.credits_consumed,
        free_trial_consumed=row.free_trial_consumed,
        expires_at=row.expires_at,
    )


class GrantRepository(GrantStore):
    """Held grants.

    Every status change is a conditional UPDATE on ``status = 'held'``, so a
    grant leaves the held state at most once.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def save(self, grant: HeldGrant) -> None:
        self.session.add(
            Grant(
                token=grant.token,
                user_id=as_uuid(grant.user_id),
                tier=grant.tier,
                credits_consumed=grant.credits_consumed,
                free_trial_consumed=grant.free_trial_consumed,
                status=GrantStatus.HELD.value,
                expires_at=grant.expires_at,
            )
        )
        await self.session.commit()

    async def settle(
        self, token: str, user_id: str, status: GrantStatus, now: datetime
    ) -> Optional[HeldGrant]:
        owner = as_uuid(user_id)
        if owner is None:
            return None
        result = await self.session.execute(
            update(Grant)
            .where(
                Grant.token == token,
                Grant.user_id == owner,
                Grant.status == GrantStatus.HELD.value,
                Grant.expires_at > now,
            )
            .values(status=status.value, settled_at=now)
            .returning(*_COLUMNS)
        )
        row = result.one_or_none()
        await self.session.commit()
        return _held(row) if row is not None else None

    async def expire(self, now: datetime, limit: int) -> list[HeldGrant]:
        overdue = (
            select(Grant.token)
            .where(Grant.status == GrantStatus.HELD.value, Grant.expires_at <= now)
            .limit(limit)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        result = await self.session.execute(
            update(Grant)
            .where(Grant.token.in_(overdue), Grant.status == GrantStatus.HELD.value)
            .values(status=GrantStatus.EXPIRED.value, settled_at=now)
            .returning(*_COLUMNS)
        )
        rows = result.fetchall()
        await self.session.commit()
        return [_held(row) for row in rows]
