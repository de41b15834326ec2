"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from src.config import get_settings
from src.database import engine, init_db

# Import routers
from src.routers import design_systems, generation, health, ops, users, webhooks

# Import middleware
from src.middleware import logging_middleware, register_exception_handlers
from src.utils.logger import configure_logging, get_logger

settings = get_settings()

# Configure logging early
configure_logging(log_level=settings.log_level, debug=settings.debug)
log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    log.info("starting application", debug=settings.debug, log_level=settings.log_level)
    await init_db()
    log.info("database initialized")

    # Configure LiteLLM
    import litellm

    litellm.suppress_debug_info = True
    litellm.set_verbose = False

    # Redis for rate limiting and the generation cache. Both degrade without it.
    import redis.asyncio as aioredis

    app.state.redis = aioredis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_timeout=settings.redis_timeout_seconds,
        socket_connect_timeout=settings.redis_timeout_seconds,
    )

    yield

    await app.state.redis.aclose()

    log.info("shutting down application")
    await engine.dispose()
    log.info("database connections closed")


app = FastAPI(
    title="DesignForge API",
    description="DesignForge - AI design-system generation with metered entitlements",
    version="0.1.0",
    lifespan=lifespan,
)

# Register exception handlers first
register_exception_handlers(app)

# CORS middleware (must be first in middleware stack)
_cors_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins or ["*"],
    allow_credentials=bool(_cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[
        "X-Request-ID",
        "X-RateLimit-Limit",
        "X-RateLimit-Remaining",
        "X-RateLimit-Reset",
        "Retry-After",
    ],
)

# Request logging middleware
app.middleware("http")(logging_middleware)

# Register routers
app.include_router(health.router, prefix="/api/v1", tags=["Health"])
app.include_router(generation.router, prefix="/api/v1", tags=["Generation"])
app.include_router(users.router, prefix="/api/v1", tags=["Account"])
app.include_router(design_systems.router, prefix="/api/v1", tags=["Design Systems"])
app.include_router(webhooks.router, prefix="/api/v1", tags=["Webhooks"])
app.include_router(ops.router, prefix="/api/v1", tags=["Ops"])


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "DesignForge API",
        "version": "0.1.0",
        "features": [
            "AI design-system generation via LiteLLM",
            "Quality tiers by plan (starter, basic, professional, enterprise)",
            "Credit accounting and monthly usage metering",
            "Sliding-window rate limiting",
            "Generation cache",
        ],
        "endpoints": {
            "health": "/api/v1/health",
            "authorize": "/api/v1/generation/authorize",
            "generate": "/api/v1/generation/design-system",
            "usage": "/api/v1/usage",
            "credits": "/api/v1/credits",
            "stripe_webhook": "/api/v1/webhooks/stripe",
            "ops": "/api/v1/ops",
        },
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
