"""Saved design system schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class DesignSystemItem(BaseModel):
    id: str
    name: str
    brand_description: str
    industry: str | None = None
    audience: str | None = None
    tier: str | None = None
    cached: bool = False
    design_system: dict[str, Any]
    created_at: datetime


class DesignSystemListResponse(BaseModel):
    """One page of the signed-in user's design systems, newest first."""

    systems: list[DesignSystemItem]
    limit: int
    offset: int
