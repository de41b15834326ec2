"""Repository for saved design systems."""

from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.design_system import DesignSystem
from src.repositories.ports import DesignSystemStore, SavedDesignSystem
from src.repositories.user_repository import as_uuid


def _saved(record: DesignSystem) -> SavedDesignSystem:
    return SavedDesignSystem(
        id=str(record.id),
        user_id=str(record.user_id),
        name=record.name,
        brand_description=record.brand_description,
        industry=record.industry,
        audience=record.audience,
        tier=record.tier,
        design_system=record.payload,
        cached=record.cached,
        created_at=record.created_at,
    )


class DesignSystemRepository(DesignSystemStore):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def save(
        self,
        user_id: str,
        name: str,
        brand_description: str,
        design_system: dict[str, Any],
        industry: Optional[str] = None,
        audience: Optional[str] = None,
        tier: Optional[str] = None,
        cached: bool = False,
    ) -> SavedDesignSystem:
        record = DesignSystem(
            user_id=as_uuid(user_id),
            name=name,
            brand_description=brand_description,
            industry=industry,
            audience=audience,
            tier=tier,
            payload=design_system,
            cached=cached,
        )
        self.session.add(record)
        await self.session.commit()
        await self.session.refresh(record)
        return _saved(record)

    async def list_for_user(
        self, user_id: str, limit: int = 20, offset: int = 0
    ) -> list[SavedDesignSystem]:
        owner = as_uuid(user_id)
        if owner is None:
            return []
        result = await self.session.execute(
            select(DesignSystem)
            .where(DesignSystem.user_id == owner)
            .order_by(DesignSystem.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return [_saved(record) for record in result.scalars().all()]

    async def get_for_user(self, user_id: str, design_system_id: str) -> Optional[SavedDesignSystem]:
        owner = as_uuid(user_id)
        record_id = as_uuid(design_system_id)
        if owner is None or record_id is None:
            return None
        result = await self.session.execute(
            select(DesignSystem).where(DesignSystem.id == record_id, DesignSystem.user_id == owner)
        )
        record = result.scalar_one_or_none()
        return _saved(record) if record is not None else None
