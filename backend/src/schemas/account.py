"""Usage and credit balance schemas."""

from datetime import datetime

from pydantic import BaseModel


class UsageResponse(BaseModel):
    """Monthly usage for one action kind."""

    action_kind: str
    used: int
    limit: int | None = None  # None = unlimited
    remaining: int | None = None
    reset_at: datetime


class CreditsResponse(BaseModel):
    balance: int
    plan: str
    free_generations_used: int
    free_generations_limit: int
    can_generate: bool
    tier: str | None = None
    reason: str | None = None
