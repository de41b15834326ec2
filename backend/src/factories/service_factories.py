"""Factory functions for business logic services.

Nothing here is cached: every service below depends on the request-scoped
database session.
"""

from typing import Optional

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import get_settings
from src.factories.client_factories import get_llm_client
from src.repositories.credit_repository import CreditRepository
from src.repositories.design_system_repository import DesignSystemRepository
from src.repositories.grant_repository import GrantRepository
from src.repositories.usage_event_repository import UsageEventRepository
from src.repositories.usage_record_repository import UsageRecordRepository
from src.repositories.user_repository import UserRepository
from src.services.billing_service import BillingService
from src.services.credit_account import CreditAccount
from src.services.design_generator import DesignSystemGenerator
from src.services.entitlement_service import EntitlementGate
from src.services.generation_cache import GenerationCache
from src.services.generation_service import GenerationService
from src.services.rate_limiter import RateLimiter, RedisRateLimiter
from src.services.usage_ledger import UsageLedger


def get_rate_limiter(redis: Optional[Redis]) -> RateLimiter:
    settings = get_settings()
    return RedisRateLimiter(redis, timeout_seconds=settings.redis_timeout_seconds)


def get_generation_cache(redis: Optional[Redis]) -> GenerationCache:
    settings = get_settings()
    return GenerationCache(
        redis,
        timeout_seconds=settings.redis_timeout_seconds,
        enabled=settings.cache_enabled,
        default_ttl_seconds=settings.cache_ttl_seconds,
    )


def get_credit_account(db_session: AsyncSession) -> CreditAccount:
    return CreditAccount(CreditRepository(db_session))


def get_usage_ledger(db_session: AsyncSession) -> UsageLedger:
    return UsageLedger(UsageRecordRepository(db_session))


def get_entitlement_gate(db_session: AsyncSession, redis: Optional[Redis]) -> EntitlementGate:
    """
    Create EntitlementGate wired to Postgres (credits, trials, grants) and Redis (rate limits).

    Args:
        db_session: Database session
        redis: Shared Redis client, or None to run without rate limiting (fail open)
    """
    return EntitlementGate(
        rate_limiter=get_rate_limiter(redis),
        principals=UserRepository(db_session),
        credits=get_credit_account(db_session),
        settings=get_settings(),
        grants=GrantRepository(db_session),
    )


def get_generation_service(
    db_session: AsyncSession, redis: Optional[Redis], model: str | None = None
) -> GenerationService:
    """
    Create GenerationService with dependencies.

    Args:
        db_session: Database session
        redis: Shared Redis client
        model: LiteLLM model string. Uses default_llm_model if None.

    Raises:
        InvalidModelError: If model is not in the allowed list
    """
    return GenerationService(
        gate=get_entitlement_gate(db_session, redis),
        generator=DesignSystemGenerator(get_llm_client(model)),
        cache=get_generation_cache(redis),
        ledger=get_usage_ledger(db_session),
        principals=UserRepository(db_session),
        events=UsageEventRepository(db_session),
        settings=get_settings(),
        designs=DesignSystemRepository(db_session),
    )


def get_billing_service(db_session: AsyncSession) -> BillingService:
    return BillingService(users=UserRepository(db_session), credits=get_credit_account(db_session))
