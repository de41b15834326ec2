"""Ops operations router. Every route is protected by the X-Api-Key header."""

from uuid import UUID

from fastapi import APIRouter

from src.schemas.ops import (
    ClearCacheResponse,
    CreditsUpdateResponse,
    InvalidateCacheResponse,
    GrantCreditsRequest,
    SetCreditsRequest,
    UpdateBanRequest,
    UpdateBanResponse,
    UpdatePlanRequest,
    UpdatePlanResponse,
)
from src.dependencies import (
    ApiKeyCheck,
    CreditAccountDep,
    DbSession,
    GenerationCacheDep,
    UserRepoDep,
)
from src.exceptions import BaseAPIException, ResourceNotFoundError
from src.tiers import Plan
from src.utils.logger import get_logger

log = get_logger(__name__)

router = APIRouter(prefix="/ops", tags=["Ops"])


async def _require_user(user_repo, user_id: UUID):
    user = await user_repo.get_by_id(user_id)
    if user is None:
        raise ResourceNotFoundError("User", str(user_id))
    return user


@router.put("/users/{user_id}/credits", response_model=CreditsUpdateResponse)
async def set_user_credits(
    user_id: UUID,
    request: SetCreditsRequest,
    user_repo: UserRepoDep,
    credits: CreditAccountDep,
    _api_key: ApiKeyCheck,
) -> CreditsUpdateResponse:
    """Admin override: set the balance to an exact value."""
    await _require_user(user_repo, user_id)
    balance = await credits.set_balance(str(user_id), request.balance, request.idempotency_key)
    log.info("admin credit override", user_id=str(user_id), balance=balance)
    return CreditsUpdateResponse(user_id=user_id, balance=balance)


@router.post("/users/{user_id}/credits", response_model=CreditsUpdateResponse)
async def grant_user_credits(
    user_id: UUID,
    request: GrantCreditsRequest,
    user_repo: UserRepoDep,
    credits: CreditAccountDep,
    _api_key: ApiKeyCheck,
) -> CreditsUpdateResponse:
    """Add credits on top of the current balance."""
    await _require_user(user_repo, user_id)
    balance = await credits.credit(str(user_id), request.amount, request.idempotency_key)
    log.info("admin credit grant", user_id=str(user_id), amount=request.amount, balance=balance)
    return CreditsUpdateResponse(user_id=user_id, balance=balance)


@router.patch("/users/{user_id}/plan", response_model=UpdatePlanResponse)
async def update_user_plan(
    user_id: UUID,
    request: UpdatePlanRequest,
    user_repo: UserRepoDep,
    db: DbSession,
    _api_key: ApiKeyCheck,
) -> UpdatePlanResponse:
    """Change a user's plan. Credits are left untouched."""
    try:
        plan = Plan(request.plan)
    except ValueError:
        raise BaseAPIException(
            f"Unknown plan: {request.plan}",
            details={"valid_plans": [p.value for p in Plan]},
            status_code=400,
            error_code="INVALID_PLAN",
        )

    user = await _require_user(user_repo, user_id)
    user = await user_repo.update_plan(user, plan.value)
    await db.commit()

    return UpdatePlanResponse(user_id=user_id, plan=user.plan, email=user.email)


@router.patch("/users/{user_id}/ban", response_model=UpdateBanResponse)
async def update_user_ban(
    user_id: UUID,
    request: UpdateBanRequest,
    user_repo: UserRepoDep,
    db: DbSession,
    _api_key: ApiKeyCheck,
) -> UpdateBanResponse:
    """Ban or unban a user. Banned users are denied every generation."""
    user = await _require_user(user_repo, user_id)
    user = await user_repo.set_banned(user, request.banned)
    await db.commit()
    return UpdateBanResponse(user_id=user_id, banned=user.banned)


@router.delete("/cache", response_model=ClearCacheResponse)
async def clear_generation_cache(
    cache: GenerationCacheDep,
    _api_key: ApiKeyCheck,
) -> ClearCacheResponse:
    """Drop every cached design system."""
    deleted = await cache.clear_all()
    return ClearCacheResponse(deleted=deleted)


@router.delete("/cache/{key}", response_model=InvalidateCacheResponse)
async def invalidate_cache_entry(
    key: str,
    cache: GenerationCacheDep,
    _api_key: ApiKeyCheck,
) -> InvalidateCacheResponse:
    """Drop one cached design system by key (with or without the ``design-system:`` prefix)."""
    deleted = await cache.invalidate(key)
    return InvalidateCacheResponse(key=key, deleted=deleted)
