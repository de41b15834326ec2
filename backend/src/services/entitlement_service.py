"""Entitlement gate: the single decision point for generation access.

Composes the rate limiter, tier resolver, principal store and credit account
into one ``authorize`` call that either returns a ``GenerationGrant`` with the
budget already reserved, or raises a ``GenerationDeniedError`` carrying a
public reason code. Component errors never escape; anything unexpected is
turned into an ``internal_error`` denial (fail closed).

Stages: RECEIVED -> RATE_CHECKED -> TIER_RESOLVED -> BUDGET_RESERVED -> GRANTED,
or DENIED from any of them.

A grant handed to a client (``hold``) is persisted as held and settles once:
committed by ``redeem``, given back by ``release_held``, or expired and given
back by the grant sweep.
"""

import asyncio
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import Awaitable, Callable, Optional, TypeVar

from src.config import Settings
from src.exceptions import (
    EntitlementInternalError,
    GenerationDeniedError,
    GrantNotFoundError,
    InsufficientCreditsError,
    InvalidPrincipalError,
    NoAccessError,
    NoCreditsError,
    RateLimitedError,
)
from src.repositories.ports import GrantStatus, GrantStore, HeldGrant, PrincipalStore
from src.services.credit_account import CreditAccount
from src.services.rate_limiter import RateLimiter, RateLimitResult, select_rate_limit
from src.tiers import (
    QUALITY_TIERS,
    ActionKind,
    PrincipalSnapshot,
    QualityTier,
    TierConfig,
    TierDecision,
    resolve_tier,
)
from src.utils.logger import get_logger

log = get_logger(__name__)

T = TypeVar("T")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class GateStage(StrEnum):
    RECEIVED = "received"
    RATE_CHECKED = "rate_checked"
    TIER_RESOLVED = "tier_resolved"
    BUDGET_RESERVED = "budget_reserved"
    GRANTED = "granted"
    DENIED = "denied"


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    """Who is asking. ``principal_id`` is None for anonymous callers."""

    principal_id: Optional[str]
    client_ip: Optional[str] = None
    action_kind: str = ActionKind.GENERATE_DESIGN_SYSTEM

    @property
    def authenticated(self) -> bool:
        return self.principal_id is not None

    @property
    def rate_limit_identity(self) -> str:
        if self.principal_id is not None:
            return f"user:{self.principal_id}"
        return f"ip:{self.client_ip or 'unknown'}"


@dataclass(frozen=True, slots=True)
class GenerationGrant:
    principal_id: str
    tier: QualityTier
    tier_config: TierConfig
    credits_consumed: int
    free_trial_consumed: bool
    grant_token: str
    rate_limit: Optional[RateLimitResult] = None
    expires_at: Optional[datetime] = None


class EntitlementGate:
    def __init__(
        self,
        rate_limiter: RateLimiter,
        principals: PrincipalStore,
        credits: CreditAccount,
        settings: Settings,
        grants: Optional[GrantStore] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self._rate_limiter = rate_limiter
        self._principals = principals
        self._credits = credits
        self._settings = settings
        self._grants = grants
        self._clock = clock

    async def authorize(self, request: GenerationRequest) -> GenerationGrant:
        """Admit one generation and reserve its budget.

        Raises:
            RateLimitedError: window full for this identity
            InvalidPrincipalError: unknown, anonymous or banned principal
            NoCreditsError: no paid credit and no free trial (also on a lost reservation race)
            EntitlementInternalError: a backing store failed or timed out
        """
        stage = GateStage.RECEIVED
        try:
            rate = await self._rate_limiter.check_and_consume(
                request.rate_limit_identity,
                select_rate_limit(request.authenticated, self._settings),
                self._settings.rate_limit_window_ms,
            )
            if not rate.allowed:
                raise RateLimitedError(rate.retry_after_seconds, rate.limit)
            stage = GateStage.RATE_CHECKED

            if request.principal_id is None:
                raise InvalidPrincipalError("Sign in to generate a design system")

            decision = None
            snapshot = None
            for attempt in range(1, max(1, self._settings.reservation_attempts) + 1):
                snapshot = await self._load_principal(request.principal_id)
                try:
                    decision = resolve_tier(snapshot, self._settings.get_super_admin_id())
                except NoAccessError as e:
                    raise NoCreditsError(e.reason) from e
                stage = GateStage.TIER_RESOLVED

                if await self._reserve(snapshot, decision):
                    stage = GateStage.BUDGET_RESERVED
                    break
                log.warning(
                    "insufficient_credits",
                    principal_id=snapshot.id,
                    tier=decision.tier,
                    attempt=attempt,
                )
            else:
                raise NoCreditsError()

            grant = GenerationGrant(
                principal_id=snapshot.id,
                tier=decision.tier,
                tier_config=decision.config,
                credits_consumed=decision.credits_consumed,
                free_trial_consumed=decision.consumes_free_trial,
                grant_token=uuid.uuid4().hex,
                rate_limit=rate,
            )
        except GenerationDeniedError as e:
            log.info(
                "generation denied",
                principal_id=request.principal_id,
                reason=e.reason,
                stage=stage,
            )
            raise
        except Exception as e:
            log.error(
                "entitlement check failed",
                principal_id=request.principal_id,
                stage=stage,
                error=str(e) or type(e).__name__,
                exc_info=True,
            )
            raise EntitlementInternalError() from e

        log.info(
            "generation granted",
            principal_id=grant.principal_id,
            tier=grant.tier,
            credits_consumed=grant.credits_consumed,
            free_trial_consumed=grant.free_trial_consumed,
            grant_token=grant.grant_token,
            stage=GateStage.GRANTED,
        )
        return grant

    async def release(self, grant: GenerationGrant) -> bool:
        """Give back what ``authorize`` reserved. Returns False if compensation failed.

        Credit refunds are keyed on the grant token, so releasing the same grant
        twice refunds once.
        """
        try:
            if grant.credits_consumed:
                await self._bounded(
                    self._credits.refund(
                        grant.principal_id,
                        grant.credits_consumed,
                        idempotency_key=f"release:{grant.grant_token}",
                    )
                )
            elif grant.free_trial_consumed:
                await self._bounded(self._principals.release_free_generation(grant.principal_id))
        except Exception:
            log.error(
                "grant release failed",
                principal_id=grant.principal_id,
                grant_token=grant.grant_token,
                exc_info=True,
            )
            return False
        log.info(
            "grant released",
            principal_id=grant.principal_id,
            grant_token=grant.grant_token,
            credits_refunded=grant.credits_consumed,
            free_trial_released=grant.free_trial_consumed,
        )
        return True

    async def hold(self, request: GenerationRequest) -> GenerationGrant:
        """Authorize, then keep the grant open until it is committed or released.

        Held grants expire after ``grant_hold_seconds``; the grant sweep gives
        back whatever an expired grant reserved.

        Raises:
            Everything ``authorize`` raises.
            EntitlementInternalError: the grant could not be stored (budget is released)
        """
        if self._grants is None:
            raise RuntimeError("EntitlementGate.hold needs a grant store")
        grant = await self.authorize(request)
        expires_at = self._clock() + timedelta(seconds=self._settings.grant_hold_seconds)
        held = HeldGrant(
            token=grant.grant_token,
            user_id=grant.principal_id,
            tier=grant.tier,
            credits_consumed=grant.credits_consumed,
            free_trial_consumed=grant.free_trial_consumed,
            expires_at=expires_at,
        )
        try:
            await self._bounded(self._grants.save(held))
        except Exception as e:
            log.error(
                "grant hold failed",
                principal_id=grant.principal_id,
                grant_token=grant.grant_token,
                error=str(e) or type(e).__name__,
            )
            await self.release(grant)
            raise EntitlementInternalError() from e
        log.info(
            "grant held",
            principal_id=grant.principal_id,
            grant_token=grant.grant_token,
            expires_at=expires_at.isoformat(),
        )
        return replace(grant, expires_at=expires_at)

    async def redeem(self, grant_token: str, principal_id: Optional[str]) -> GenerationGrant:
        """Consume a held grant. The budget it reserved now pays for one generation.

        Raises:
            GrantNotFoundError: unknown, foreign, expired or already settled token
        """
        held = await self._settle(grant_token, principal_id, GrantStatus.COMMITTED)
        log.info("grant committed", principal_id=held.user_id, grant_token=grant_token)
        return self._from_held(held)

    async def release_held(self, grant_token: str, principal_id: Optional[str]) -> bool:
        """Cancel a held grant and give its budget back.

        Raises:
            GrantNotFoundError: unknown, foreign, expired or already settled token
        """
        held = await self._settle(grant_token, principal_id, GrantStatus.RELEASED)
        return await self.release(self._from_held(held))

    async def release_expired(self, limit: int = 500) -> int:
        """Expire overdue held grants and release them. Returns how many were released."""
        if self._grants is None:
            return 0
        expired = await self._grants.expire(self._clock(), limit)
        released = 0
        for held in expired:
            if await self.release(self._from_held(held)):
                released += 1
        if expired:
            log.info("expired grants released", expired=len(expired), released=released)
        return released

    async def _settle(
        self, grant_token: str, principal_id: Optional[str], status: GrantStatus
    ) -> HeldGrant:
        if self._grants is None or principal_id is None:
            raise GrantNotFoundError(grant_token)
        held = await self._bounded(
            self._grants.settle(grant_token, principal_id, status, self._clock())
        )
        if held is None:
            log.info(
                "grant not settleable",
                principal_id=principal_id,
                grant_token=grant_token,
                status=status,
            )
            raise GrantNotFoundError(grant_token)
        return held

    @staticmethod
    def _from_held(held: HeldGrant) -> GenerationGrant:
        tier = QualityTier(held.tier)
        return GenerationGrant(
            principal_id=held.user_id,
            tier=tier,
            tier_config=QUALITY_TIERS[tier],
            credits_consumed=held.credits_consumed,
            free_trial_consumed=held.free_trial_consumed,
            grant_token=held.token,
            expires_at=held.expires_at,
        )

    async def _load_principal(self, principal_id: str) -> PrincipalSnapshot:
        snapshot = await self._bounded(self._principals.load_snapshot(principal_id))
        if snapshot is None:
            raise InvalidPrincipalError("Unknown account")
        if snapshot.banned:
            raise InvalidPrincipalError("Account is suspended")
        return snapshot

    async def _reserve(self, snapshot: PrincipalSnapshot, decision: TierDecision) -> bool:
        """Take the budget for ``decision``. False when a concurrent request got there first."""
        if decision.consumes_credit:
            try:
                await self._bounded(self._credits.debit(snapshot.id, decision.credits_consumed))
            except InsufficientCreditsError:
                return False
            return True
        if decision.consumes_free_trial:
            used = await self._bounded(self._principals.reserve_free_generation(snapshot.id))
            return used is not None
        return True

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self._settings.store_timeout_seconds)
