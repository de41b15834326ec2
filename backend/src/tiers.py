"""Plan, quality tier and entitlement policy definitions.

Single source of truth for tier-related logic: generation parameters per
quality tier, plan credit grants, monthly limits, and the pure tier
resolution that decides whether a principal may generate and at what grade.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from src.exceptions import NoAccessError


class Plan(StrEnum):
    FREE = "free"
    BASIC = "basic"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"


class QualityTier(StrEnum):
    STARTER = "starter"
    BASIC = "basic"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"


class ActionKind(StrEnum):
    GENERATE_DESIGN_SYSTEM = "generate_design_system"


@dataclass(frozen=True, slots=True)
class TierConfig:
    tier: QualityTier
    max_tokens: int
    temperature: float
    color_count: int
    font_pairings: int
    description: str


QUALITY_TIERS: dict[QualityTier, TierConfig] = {
    # Free trial grade, below Basic
    QualityTier.STARTER: TierConfig(
        tier=QualityTier.STARTER,
        max_tokens=1500,
        temperature=0.7,
        color_count=30,
        font_pairings=3,
        description="Starter - Free Trial",
    ),
    QualityTier.BASIC: TierConfig(
        tier=QualityTier.BASIC,
        max_tokens=2500,
        temperature=1.4,
        color_count=88,
        font_pairings=10,
        description="Basic - Paid",
    ),
    QualityTier.PROFESSIONAL: TierConfig(
        tier=QualityTier.PROFESSIONAL,
        max_tokens=3000,
        temperature=1.2,
        color_count=225,
        font_pairings=20,
        description="Professional - Paid",
    ),
    QualityTier.ENTERPRISE: TierConfig(
        tier=QualityTier.ENTERPRISE,
        max_tokens=3500,
        temperature=0.9,
        color_count=300,
        font_pairings=50,
        description="Enterprise - Paid",
    ),
}

# Credits set on purchase / renewal
PLAN_CREDIT_GRANTS: dict[Plan, int] = {
    Plan.FREE: 10,
    Plan.BASIC: 50,
    Plan.PROFESSIONAL: 200,
    Plan.ENTERPRISE: 1000,
}

# Balance after cancellation or downgrade to free
CANCELLATION_CREDIT_FLOOR = PLAN_CREDIT_GRANTS[Plan.FREE]

# Generations per calendar month. None = unlimited.
MONTHLY_GENERATION_LIMITS: dict[Plan, int | None] = {
    Plan.FREE: 3,
    Plan.BASIC: 50,
    Plan.PROFESSIONAL: 200,
    Plan.ENTERPRISE: None,
}

# Paid plans, highest grade first. Order matters for resolution.
_PAID_PLAN_TIERS: tuple[tuple[Plan, QualityTier], ...] = (
    (Plan.ENTERPRISE, QualityTier.ENTERPRISE),
    (Plan.PROFESSIONAL, QualityTier.PROFESSIONAL),
    (Plan.BASIC, QualityTier.BASIC),
)

NO_ACCESS_REASON = "Out of free trials and credits. Please upgrade to continue."


@dataclass(frozen=True, slots=True)
class PrincipalSnapshot:
    """Point-in-time view of a principal, as read from the account store."""

    id: str
    plan: str
    credits: int
    free_generations_used: int
    free_generations_limit: int
    banned: bool = False
    clerk_id: str | None = None

    @property
    def free_trials_remaining(self) -> int:
        return max(0, self.free_generations_limit - self.free_generations_used)


@dataclass(frozen=True, slots=True)
class TierDecision:
    tier: QualityTier
    consumes_credit: bool
    consumes_free_trial: bool = False

    @property
    def config(self) -> TierConfig:
        return QUALITY_TIERS[self.tier]

    @property
    def credits_consumed(self) -> int:
        return 1 if self.consumes_credit else 0


@dataclass(frozen=True, slots=True)
class AccessCheck:
    allowed: bool
    tier: QualityTier | None
    reason: str | None = None
    free_trials_remaining: int | None = None


def is_super_admin(principal: PrincipalSnapshot, super_admin_id: str | None) -> bool:
    if not super_admin_id:
        return False
    return super_admin_id in (principal.id, principal.clerk_id)


def resolve_tier(principal: PrincipalSnapshot, super_admin_id: str | None = None) -> TierDecision:
    """Decide the quality tier for one generation. First match wins.

    Pure: no I/O, no caching. Must be re-evaluated for every request because
    balances and trial counters move between calls.

    Raises:
        NoAccessError: no paid credit for the plan and no free trial left
    """
    if is_super_admin(principal, super_admin_id):
        return TierDecision(tier=QualityTier.ENTERPRISE, consumes_credit=False)

    if principal.credits > 0:
        for plan, tier in _PAID_PLAN_TIERS:
            if principal.plan == plan:
                return TierDecision(tier=tier, consumes_credit=True)

    if principal.free_generations_used < principal.free_generations_limit:
        return TierDecision(
            tier=QualityTier.STARTER, consumes_credit=False, consumes_free_trial=True
        )

    raise NoAccessError(NO_ACCESS_REASON)


def check_access(principal: PrincipalSnapshot, super_admin_id: str | None = None) -> AccessCheck:
    """Non-raising variant of resolve_tier for display purposes."""
    try:
        decision = resolve_tier(principal, super_admin_id)
    except NoAccessError as e:
        return AccessCheck(allowed=False, tier=None, reason=e.reason, free_trials_remaining=0)

    remaining = principal.free_trials_remaining if decision.consumes_free_trial else None
    return AccessCheck(allowed=True, tier=decision.tier, free_trials_remaining=remaining)


def monthly_limit_for(principal: PrincipalSnapshot, super_admin_id: str | None = None) -> int | None:
    """Monthly generation ceiling for the principal's plan. None = unlimited."""
    if is_super_admin(principal, super_admin_id):
        return None
    try:
        return MONTHLY_GENERATION_LIMITS[Plan(principal.plan)]
    except ValueError:
        return MONTHLY_GENERATION_LIMITS[Plan.FREE]


def credit_grant_for(plan: str) -> int:
    """Credits granted for a plan purchase or renewal (unknown plans get the basic grant)."""
    try:
        return PLAN_CREDIT_GRANTS[Plan(plan)]
    except ValueError:
        return PLAN_CREDIT_GRANTS[Plan.BASIC]
