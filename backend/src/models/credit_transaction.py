"""Credit transaction model: audit trail and idempotency guard for balance changes."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Integer, String, ForeignKey, func
from sqlalchemy.dialects.postgresql import UUID, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column
from src.database import Base


class CreditTransaction(Base):
    """One applied credit mutation (grant, balance reset, refund)."""

    __tablename__ = "credit_transactions"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    kind: Mapped[str] = mapped_column(String(20))  # credit | set_balance | refund
    amount: Mapped[int] = mapped_column(Integer)
    balance_after: Mapped[int | None] = mapped_column(Integer)
    idempotency_key: Mapped[str | None] = mapped_column(String(255), unique=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )

    def __repr__(self):
        return (
            f"<CreditTransaction(user_id='{self.user_id}', kind='{self.kind}', "
            f"amount={self.amount}, key='{self.idempotency_key}')>"
        )
