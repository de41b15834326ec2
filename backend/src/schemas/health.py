"""Health check schemas."""

from typing import Any, Literal

from pydantic import BaseModel, Field

ComponentState = Literal["healthy", "unhealthy"]


class ServiceStatus(BaseModel):
    """One backing dependency. ``details`` says how the API degrades without it."""

    status: ComponentState
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    """``degraded`` when any backing dependency is unhealthy."""

    status: Literal["ok", "degraded"]
    version: str
    services: dict[str, ServiceStatus]
    timestamp: str
