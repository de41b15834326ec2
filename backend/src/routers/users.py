"""Account router: monthly usage and credit balance for the signed-in user."""

from fastapi import APIRouter, Query

from src.dependencies import CurrentUserRequired, SettingsDep, UsageLedgerDep
from src.repositories.user_repository import to_snapshot
from src.schemas.account import CreditsResponse, UsageResponse
from src.tiers import ActionKind, check_access, monthly_limit_for

router = APIRouter(tags=["Account"])


@router.get("/usage", response_model=UsageResponse)
async def get_usage(
    user: CurrentUserRequired,
    ledger: UsageLedgerDep,
    settings: SettingsDep,
    action_kind: ActionKind = Query(ActionKind.GENERATE_DESIGN_SYSTEM),
) -> UsageResponse:
    """Usage for the current calendar month. ``limit`` is null for unlimited plans."""
    snapshot = to_snapshot(user)
    limit = monthly_limit_for(snapshot, settings.get_super_admin_id())
    status = await ledger.usage_status(snapshot.id, action_kind, limit)
    return UsageResponse(
        action_kind=action_kind,
        used=status.used,
        limit=status.limit,
        remaining=status.remaining,
        reset_at=status.reset_at,
    )


@router.get("/credits", response_model=CreditsResponse)
async def get_credits(user: CurrentUserRequired, settings: SettingsDep) -> CreditsResponse:
    """Balance, plan, free-trial counters and whether the next generation would be allowed."""
    snapshot = to_snapshot(user)
    access = check_access(snapshot, settings.get_super_admin_id())
    return CreditsResponse(
        balance=snapshot.credits,
        plan=snapshot.plan,
        free_generations_used=snapshot.free_generations_used,
        free_generations_limit=snapshot.free_generations_limit,
        can_generate=access.allowed and not snapshot.banned,
        tier=access.tier,
        reason=access.reason,
    )
