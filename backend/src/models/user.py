"""User model for Clerk-synced principals."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Integer, String, Text, TIMESTAMP, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from src.database import Base


class User(Base):
    """User synced with Clerk authentication. Owns the credit balance."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_users_credits_non_negative"),
        CheckConstraint("free_generations_used >= 0", name="ck_users_free_used_non_negative"),
    )

    # Primary key
    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Clerk identity
    clerk_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)

    # Billing / entitlement state
    plan: Mapped[str] = mapped_column(String(20), server_default="free")
    credits: Mapped[int] = mapped_column(Integer, server_default="0")
    free_generations_used: Mapped[int] = mapped_column(Integer, server_default="0")
    free_generations_limit: Mapped[int] = mapped_column(Integer, server_default="3")
    banned: Mapped[bool] = mapped_column(Boolean, server_default="false")
    role: Mapped[str] = mapped_column(String(20), server_default="user")
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), index=True)

    # Profile information (from Clerk)
    email: Mapped[str | None] = mapped_column(String(255), index=True)
    first_name: Mapped[str | None] = mapped_column(String(255))
    last_name: Mapped[str | None] = mapped_column(String(255))
    profile_image_url: Mapped[str | None] = mapped_column(Text)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    last_login_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True))

    def __repr__(self):
        return f"<User(clerk_id='{self.clerk_id}', plan='{self.plan}', credits={self.credits})>"

    @property
    def full_name(self) -> str:
        """Get user's full name."""
        parts = [self.first_name, self.last_name]
        return " ".join(p for p in parts if p) or ""
