"""End-to-end design-system generation: gate, cache, generator, metering."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from src.config import Settings
from src.exceptions import GenerationFailedError, LLMTimeoutError, UsageLimitReachedError
from src.repositories.ports import DesignSystemStore, PrincipalStore, UsageEventStore
from src.services.design_generator import DesignSystemGenerator
from src.services.entitlement_service import EntitlementGate, GenerationGrant, GenerationRequest
from src.services.generation_cache import GenerationCache, cache_key
from src.services.rate_limiter import RateLimitResult
from src.services.usage_ledger import UsageLedger
from src.tiers import ActionKind, monthly_limit_for
from src.utils.logger import get_logger

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class DesignBrief:
    brand_description: str
    industry: Optional[str] = None
    audience: Optional[str] = None

    @property
    def cache_key(self) -> str:
        return cache_key(self.brand_description, self.industry, self.audience)


@dataclass(frozen=True, slots=True)
class GenerationResult:
    design_system: dict[str, Any]
    cached: bool
    tier: Optional[str] = None
    credits_consumed: int = 0
    free_trial_consumed: bool = False
    grant_token: Optional[str] = None
    rate_limit: Optional[RateLimitResult] = None
    design_system_id: Optional[str] = None


def design_system_name(tier: Optional[str], now: Optional[datetime] = None) -> str:
    """``"Professional Design System - 2026-10-18"``; the tier is left out when unknown."""
    day = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d")
    if tier:
        return f"{str(tier).capitalize()} Design System - {day}"
    return f"Design System - {day}"


class GenerationService:
    """Runs one generation under the configured cache policy.

    ``entitlement_first``: authorize, then look in the cache. A hit releases
    the reservation, so cached results cost nothing but still count against
    the rate limit and still require access.

    ``cache_first``: look in the cache before the gate. A hit skips the gate
    entirely.

    A request carrying a ``grant_token`` from ``/generation/authorize`` redeems
    that grant instead of authorizing again, and always checks the cache after
    redeeming (a hit gives the grant back).

    A grant is consumed only when the generator returns a payload. Generator
    failures release the reservation when ``refund_on_generation_failure`` is on.
    Results for signed-in callers are saved to their design-system library.
    """

    def __init__(
        self,
        gate: EntitlementGate,
        generator: DesignSystemGenerator,
        cache: GenerationCache,
        ledger: UsageLedger,
        principals: PrincipalStore,
        events: UsageEventStore,
        settings: Settings,
        designs: Optional[DesignSystemStore] = None,
    ):
        self.gate = gate
        self.generator = generator
        self.cache = cache
        self.ledger = ledger
        self.principals = principals
        self.events = events
        self.settings = settings
        self.designs = designs

    async def generate(
        self,
        request: GenerationRequest,
        brief: DesignBrief,
        grant_token: Optional[str] = None,
    ) -> GenerationResult:
        key = brief.cache_key

        if grant_token is None and self.settings.cache_policy == "cache_first":
            cached = await self.cache.get(key)
            if cached is not None:
                await self._record_event(request.principal_id, request.action_kind, cached=True)
                design_system_id = await self._save_design(
                    request.principal_id, brief, None, cached, cached=True
                )
                return GenerationResult(
                    design_system=cached, cached=True, design_system_id=design_system_id
                )

        if grant_token is not None:
            grant = await self.gate.redeem(grant_token, request.principal_id)
        else:
            grant = await self.gate.authorize(request)

        if grant_token is not None or self.settings.cache_policy == "entitlement_first":
            cached = await self.cache.get(key)
            if cached is not None:
                await self.gate.release(grant)
                await self._record_event(
                    grant.principal_id,
                    request.action_kind,
                    tier=grant.tier,
                    cached=True,
                    grant_token=grant.grant_token,
                )
                design_system_id = await self._save_design(
                    grant.principal_id, brief, grant.tier, cached, cached=True
                )
                return GenerationResult(
                    design_system=cached,
                    cached=True,
                    tier=grant.tier,
                    grant_token=grant.grant_token,
                    rate_limit=grant.rate_limit,
                    design_system_id=design_system_id,
                )

        try:
            payload = await self.generator.generate(
                brief.brand_description,
                grant.tier_config,
                industry=brief.industry,
                audience=brief.audience,
            )
        except Exception as e:
            refunded = False
            if self.settings.refund_on_generation_failure:
                refunded = await self.gate.release(grant)
            log.error(
                "design generation failed",
                principal_id=grant.principal_id,
                tier=grant.tier,
                grant_token=grant.grant_token,
                refunded=refunded,
                error=str(e) or type(e).__name__,
            )
            await self._record_event(
                grant.principal_id,
                request.action_kind,
                tier=grant.tier,
                credits_used=0 if refunded else grant.credits_consumed,
                success=False,
                grant_token=grant.grant_token,
                metadata={"error": type(e).__name__, "refunded": refunded},
            )
            message = (
                "Design system generation timed out"
                if isinstance(e, LLMTimeoutError)
                else "Design system generation failed"
            )
            raise GenerationFailedError(message, refunded=refunded) from e

        design_system = payload.model_dump()
        await self._meter(grant, request.action_kind)
        await self._record_event(
            grant.principal_id,
            request.action_kind,
            tier=grant.tier,
            credits_used=grant.credits_consumed,
            grant_token=grant.grant_token,
            metadata={"free_trial": grant.free_trial_consumed},
        )
        await self.cache.put(key, design_system, self.settings.cache_ttl_seconds)
        design_system_id = await self._save_design(
            grant.principal_id, brief, grant.tier, design_system
        )

        return GenerationResult(
            design_system=design_system,
            cached=False,
            tier=grant.tier,
            credits_consumed=grant.credits_consumed,
            free_trial_consumed=grant.free_trial_consumed,
            grant_token=grant.grant_token,
            rate_limit=grant.rate_limit,
            design_system_id=design_system_id,
        )

    async def commit(
        self,
        principal_id: str,
        grant_token: str,
        action_kind: str = ActionKind.GENERATE_DESIGN_SYSTEM,
    ) -> GenerationGrant:
        """Settle a held grant for a generation that ran outside this service.

        Raises:
            GrantNotFoundError: unknown, foreign, expired or already settled token
        """
        grant = await self.gate.redeem(grant_token, principal_id)
        await self._meter(grant, action_kind)
        await self._record_event(
            grant.principal_id,
            action_kind,
            tier=grant.tier,
            credits_used=grant.credits_consumed,
            grant_token=grant.grant_token,
            metadata={"free_trial": grant.free_trial_consumed, "committed": True},
        )
        return grant

    async def _meter(self, grant: GenerationGrant, action_kind: str) -> None:
        """Count the generation against the monthly ledger. Never fails the request."""
        try:
            snapshot = await self.principals.load_snapshot(grant.principal_id)
            limit = (
                monthly_limit_for(snapshot, self.settings.get_super_admin_id())
                if snapshot
                else None
            )
            await self.ledger.increment(grant.principal_id, action_kind, limit)
        except UsageLimitReachedError as e:
            log.warning(
                "monthly usage limit reached",
                principal_id=grant.principal_id,
                action_kind=action_kind,
                limit=e.limit,
            )
        except Exception:
            log.error(
                "usage metering failed",
                principal_id=grant.principal_id,
                action_kind=action_kind,
                exc_info=True,
            )

    async def _save_design(
        self,
        user_id: Optional[str],
        brief: DesignBrief,
        tier: Optional[str],
        design_system: dict[str, Any],
        cached: bool = False,
    ) -> Optional[str]:
        """Add the result to the caller's library. Anonymous results are not kept."""
        if user_id is None or self.designs is None:
            return None
        try:
            saved = await self.designs.save(
                user_id,
                name=design_system_name(tier),
                brand_description=brief.brand_description,
                design_system=design_system,
                industry=brief.industry,
                audience=brief.audience,
                tier=str(tier) if tier else None,
                cached=cached,
            )
        except Exception:
            log.error("design system save failed", user_id=user_id, tier=tier, exc_info=True)
            return None
        log.info("design system saved", user_id=user_id, design_system_id=saved.id, cached=cached)
        return saved.id

    async def _record_event(
        self,
        user_id: Optional[str],
        action: str,
        tier: Optional[str] = None,
        credits_used: int = 0,
        cached: bool = False,
        success: bool = True,
        grant_token: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        try:
            await self.events.record(
                user_id,
                action,
                tier=tier,
                credits_used=credits_used,
                cached=cached,
                success=success,
                grant_token=grant_token,
                metadata=metadata,
            )
        except Exception as e:
            log.warning("usage event write failed", user_id=user_id, action=action, error=str(e))
