"""Ops operation schemas."""

from uuid import UUID

from pydantic import BaseModel, Field


class SetCreditsRequest(BaseModel):
    """Admin override: set the balance to an exact value."""

    balance: int = Field(..., ge=0)
    idempotency_key: str | None = Field(None, max_length=255)


class GrantCreditsRequest(BaseModel):
    amount: int = Field(..., gt=0)
    idempotency_key: str | None = Field(None, max_length=255)


class CreditsUpdateResponse(BaseModel):
    user_id: UUID
    balance: int


class UpdatePlanRequest(BaseModel):
    """Request to change a user's plan."""

    plan: str  # Validated against Plan enum in handler


class UpdatePlanResponse(BaseModel):
    user_id: UUID
    plan: str
    email: str | None = None


class UpdateBanRequest(BaseModel):
    banned: bool


class UpdateBanResponse(BaseModel):
    user_id: UUID
    banned: bool


class ClearCacheResponse(BaseModel):
    deleted: int


class InvalidateCacheResponse(BaseModel):
    key: str
    deleted: bool
