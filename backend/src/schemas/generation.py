"""Generation request / response schemas."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class DesignSystemRequest(BaseModel):
    """Brand brief for one design-system generation."""

    brand_description: str = Field(..., min_length=10, max_length=500)
    industry: str | None = Field(None, max_length=100)
    audience: str | None = Field(None, max_length=200)
    # Redeem a grant from /generation/authorize instead of authorizing again
    grant_token: str | None = Field(None, min_length=1, max_length=64)


class GrantBody(BaseModel):
    tier: str
    grant_token: str
    credits_consumed: int
    free_trial_consumed: bool
    max_tokens: int
    temperature: float
    color_count: int
    font_pairings: int
    expires_at: datetime | None = None


class DenialBody(BaseModel):
    reason: Literal["rate_limited", "no_credits", "internal_error", "invalid_principal"]
    message: str
    retry_after_seconds: int | None = None
    upgrade_required: bool = False


class AuthorizeResponse(BaseModel):
    """Exactly one of ``granted`` / ``denied`` is set."""

    granted: GrantBody | None = None
    denied: DenialBody | None = None


class DesignSystemResponse(BaseModel):
    design_system: dict[str, Any]
    cached: bool
    tier: str | None = None
    credits_consumed: int = 0
    free_trial_consumed: bool = False
    design_system_id: str | None = None


class GrantTokenRequest(BaseModel):
    grant_token: str = Field(..., min_length=1, max_length=64)


class GrantCommitResponse(BaseModel):
    grant_token: str
    tier: str
    credits_consumed: int
    free_trial_consumed: bool


class GrantReleaseResponse(BaseModel):
    grant_token: str
    released: bool
