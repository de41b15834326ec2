"""FastAPI dependency injection providers."""

import hmac
from typing import Annotated, Optional

from fastapi import Depends, Header, Request
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from src.database import get_db
from src.services.auth_service import get_auth_service
from src.services.billing_service import BillingService
from src.services.credit_account import CreditAccount
from src.services.entitlement_service import EntitlementGate
from src.services.generation_cache import GenerationCache
from src.services.generation_service import GenerationService
from src.services.usage_ledger import UsageLedger
from src.repositories.design_system_repository import DesignSystemRepository
from src.repositories.user_repository import UserRepository
from src.models.user import User
from src.config import Settings, get_settings
from src.exceptions import InvalidApiKeyError, MissingTokenError

from src.utils.logger import get_logger
from src.factories.service_factories import (
    get_billing_service,
    get_credit_account,
    get_entitlement_gate,
    get_generation_cache,
    get_generation_service,
    get_usage_ledger,
)

log = get_logger(__name__)


# Type aliases for cleaner router signatures
DbSession = Annotated[AsyncSession, Depends(get_db)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


# ============================================================================
# Redis Dependency
# ============================================================================


async def get_redis(request: Request) -> Optional[Redis]:
    """Get async Redis client from app state (None when Redis was not configured)."""
    return getattr(request.app.state, "redis", None)


RedisDep = Annotated[Optional[Redis], Depends(get_redis)]


def get_client_ip(request: Request) -> str:
    """Client address, honouring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


ClientIp = Annotated[str, Depends(get_client_ip)]


# ============================================================================
# Repository / Service Dependencies (request-scoped)
# ============================================================================


def get_user_repository(db: DbSession) -> UserRepository:
    """Get UserRepository with database session."""
    return UserRepository(db)


def get_design_system_repository(db: DbSession) -> DesignSystemRepository:
    return DesignSystemRepository(db)


def get_entitlement_gate_dep(db: DbSession, redis: RedisDep) -> EntitlementGate:
    return get_entitlement_gate(db, redis)


def get_generation_service_dep(db: DbSession, redis: RedisDep) -> GenerationService:
    return get_generation_service(db, redis)


def get_credit_account_dep(db: DbSession) -> CreditAccount:
    return get_credit_account(db)


def get_usage_ledger_dep(db: DbSession) -> UsageLedger:
    return get_usage_ledger(db)


def get_billing_service_dep(db: DbSession) -> BillingService:
    return get_billing_service(db)


def get_generation_cache_dep(redis: RedisDep) -> GenerationCache:
    return get_generation_cache(redis)


UserRepoDep = Annotated[UserRepository, Depends(get_user_repository)]
DesignSystemRepoDep = Annotated[DesignSystemRepository, Depends(get_design_system_repository)]
EntitlementGateDep = Annotated[EntitlementGate, Depends(get_entitlement_gate_dep)]
GenerationServiceDep = Annotated[GenerationService, Depends(get_generation_service_dep)]
CreditAccountDep = Annotated[CreditAccount, Depends(get_credit_account_dep)]
UsageLedgerDep = Annotated[UsageLedger, Depends(get_usage_ledger_dep)]
BillingServiceDep = Annotated[BillingService, Depends(get_billing_service_dep)]
GenerationCacheDep = Annotated[GenerationCache, Depends(get_generation_cache_dep)]


# ============================================================================
# Authentication Dependencies
# ============================================================================


async def _sync_user(authorization: str, db: AsyncSession) -> User:
    """Verify token and sync user to database."""
    auth_service = get_auth_service()
    auth_user = await auth_service.verify_token(authorization)
    user_repo = UserRepository(db)
    user, _ = await user_repo.get_or_create(
        clerk_id=auth_user.clerk_id,
        email=auth_user.email,
        first_name=auth_user.first_name,
        last_name=auth_user.last_name,
        profile_image_url=auth_user.profile_image_url,
        free_generations_limit=get_settings().free_generations_limit,
    )
    await db.commit()
    return user


async def get_current_user_optional(
    db: DbSession,
    authorization: Annotated[str | None, Header(alias="Authorization")] = None,
) -> User | None:
    """Get current user if authenticated, None otherwise."""
    if not authorization:
        return None

    try:
        return await _sync_user(authorization, db)
    except Exception as e:
        log.debug("optional auth failed", error=str(e))
        return None


async def get_current_user_required(
    db: DbSession,
    authorization: Annotated[str | None, Header(alias="Authorization")] = None,
) -> User:
    """Get current user, raise 401 if not authenticated."""
    if not authorization:
        raise MissingTokenError()

    return await _sync_user(authorization, db)


# Type aliases for auth dependencies
CurrentUserOptional = Annotated[User | None, Depends(get_current_user_optional)]
CurrentUserRequired = Annotated[User, Depends(get_current_user_required)]


# ============================================================================
# API Key Dependencies
# ============================================================================


def verify_api_key(
    settings: SettingsDep,
    x_api_key: Annotated[str | None, Header()] = None,
) -> None:
    """Verify the X-Api-Key header matches the configured API key."""
    if not settings.api_key or not x_api_key:
        log.warning("ops api key rejected", reason="missing key or unconfigured")
        raise InvalidApiKeyError()
    if not hmac.compare_digest(x_api_key, settings.api_key):
        log.warning("ops api key rejected", reason="key mismatch")
        raise InvalidApiKeyError()


ApiKeyCheck = Annotated[None, Depends(verify_api_key)]
