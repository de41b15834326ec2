"""Usage record model for monthly metering."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Integer, String, ForeignKey, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column
from src.database import Base


class UsageRecord(Base):
    """Per-user, per-action counter for the current calendar-month period."""

    __tablename__ = "usage_records"
    __table_args__ = (
        UniqueConstraint("user_id", "action_kind", name="uq_usage_records_user_action"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    action_kind: Mapped[str] = mapped_column(String(50))
    count: Mapped[int] = mapped_column(Integer, server_default="0")
    period_start: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))
    reset_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), index=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self):
        return (
            f"<UsageRecord(user_id='{self.user_id}', action='{self.action_kind}', "
            f"count={self.count}, reset_at='{self.reset_at}')>"
        )
