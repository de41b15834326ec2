"""Usage event model: audit row per metered generation outcome."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Integer, String, ForeignKey, func
from sqlalchemy.dialects.postgresql import UUID, TIMESTAMP, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from src.database import Base


class UsageEvent(Base):
    """Audit log of generation attempts (granted, cached, failed)."""

    __tablename__ = "usage_events"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), index=True
    )
    action: Mapped[str] = mapped_column(String(50))
    tier: Mapped[str | None] = mapped_column(String(20))
    credits_used: Mapped[int] = mapped_column(Integer, server_default="0")
    cached: Mapped[bool] = mapped_column(Boolean, server_default="false")
    success: Mapped[bool] = mapped_column(Boolean, server_default="true")
    grant_token: Mapped[str | None] = mapped_column(String(64), index=True)
    event_metadata: Mapped[dict | None] = mapped_column("metadata", JSONB, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), index=True
    )

    def __repr__(self):
        return (
            f"<UsageEvent(user_id='{self.user_id}', action='{self.action}', "
            f"tier='{self.tier}', success={self.success})>"
        )
