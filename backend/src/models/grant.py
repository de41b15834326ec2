"""Grant model: budget reserved by /generation/authorize until it is committed or released."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column
from src.database import Base


class Grant(Base):
    __tablename__ = "generation_grants"
    __table_args__ = (Index("ix_generation_grants_status_expires_at", "status", "expires_at"),)

    token: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    tier: Mapped[str] = mapped_column(String(20))
    credits_consumed: Mapped[int] = mapped_column(Integer, server_default="0")
    free_trial_consumed: Mapped[bool] = mapped_column(Boolean, server_default="false")
    # held | committed | released | expired
    status: Mapped[str] = mapped_column(String(20), server_default="held")

    expires_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))
    settled_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )

    def __repr__(self):
        return f"<Grant(token='{self.token}', user_id='{self.user_id}', status='{self.status}')>"
