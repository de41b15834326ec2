"""Health check router."""

import asyncio

from fastapi import APIRouter
from datetime import datetime, timezone
from sqlalchemy import text

from src.schemas.health import HealthResponse, ServiceStatus
from src.dependencies import DbSession, RedisDep, SettingsDep
from src.utils.logger import get_logger

router = APIRouter()
log = get_logger(__name__)

APP_VERSION = "0.1.0"


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DbSession, redis: RedisDep, settings: SettingsDep) -> HealthResponse:
    """
    Health check for the backing services.

    Checks:
    - Database connectivity (credits and usage fail closed without it)
    - Redis reachability (rate limiting fails open and the cache misses without it)
    - LLM provider configuration

    Returns:
        HealthResponse with status and service details
    """
    services = {}
    overall_status = "ok"

    try:
        await db.execute(text("SELECT 1"))
        services["database"] = ServiceStatus(status="healthy", message="Connected")
    except Exception as e:
        log.error("health check failed", service="database", error=str(e))
        services["database"] = ServiceStatus(status="unhealthy", message="Service unavailable")
        overall_status = "degraded"

    try:
        if redis is None:
            raise ValueError("Redis client not configured")
        await asyncio.wait_for(redis.ping(), timeout=settings.redis_timeout_seconds)
        services["redis"] = ServiceStatus(status="healthy", message="Connected")
    except Exception as e:
        log.error("health check failed", service="redis", error=str(e))
        services["redis"] = ServiceStatus(
            status="unhealthy",
            message="Service unavailable",
            details={"rate_limiting": "fail-open", "cache": "disabled"},
        )
        overall_status = "degraded"

    default_model = settings.default_llm_model
    provider = default_model.split("/", 1)[0] if "/" in default_model else "openai"
    if provider != "openai" or settings.openai_api_key:
        services["llm"] = ServiceStatus(
            status="healthy",
            message=f"LLM provider configured: {provider}",
            details={"default_model": default_model},
        )
    else:
        log.error("health check failed", service="llm", error="no api key configured")
        services["llm"] = ServiceStatus(status="unhealthy", message="Service unavailable")
        overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        version=APP_VERSION,
        services=services,
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    )
