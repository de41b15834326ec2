"""Repository for the generation usage audit log."""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.models.usage_event import UsageEvent
from src.repositories.ports import UsageEventStore
from src.repositories.user_repository import as_uuid


class UsageEventRepository(UsageEventStore):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        user_id: Optional[str],
        action: str,
        tier: Optional[str] = None,
        credits_used: int = 0,
        cached: bool = False,
        success: bool = True,
        grant_token: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        event = UsageEvent(
            user_id=as_uuid(user_id) if user_id else None,
            action=action,
            tier=tier,
            credits_used=credits_used,
            cached=cached,
            success=success,
            grant_token=grant_token,
            event_metadata=metadata or {},
        )
        self.session.add(event)
        await self.session.commit()

