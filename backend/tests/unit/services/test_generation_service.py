"""Unit tests for GenerationService: cache policies, compensation and metering."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from src.exceptions import (
    GenerationFailedError,
    GrantNotFoundError,
    LLMTimeoutError,
    NoCreditsError,
)
from src.services.design_generator import DesignSystemPayload
from src.services.entitlement_service import EntitlementGate, GenerationRequest
from src.services.generation_cache import GenerationCache
from src.services.generation_service import (
    DesignBrief,
    GenerationService,
    design_system_name,
)
from src.services.usage_ledger import UsageLedger


class DictRedis:
    """Minimal async stand-in for the three Redis calls the cache makes."""

    def __init__(self):
        self.data = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        return True

    async def delete(self, *keys):
        return sum(1 for k in keys if self.data.pop(k, None) is not None)


def _palette(name, main):
    return {"name": name, "main": main, "shades": {"500": main}}


@pytest.fixture
def payload():
    return DesignSystemPayload.model_validate(
        {
            "colors": {
                "primary": _palette("Harbor", "#1F6F8B"),
                "secondary": _palette("Sand", "#D9C5A0"),
                "accent": _palette("Coral", "#E4572E"),
                "neutral": _palette("Slate", "#4A5560"),
                "semantic": {
                    "success": _palette("Moss", "#3C7A3B"),
                    "error": _palette("Brick", "#A23B2A"),
                    "warning": _palette("Amber", "#D99A1E"),
                    "info": _palette("Sky", "#3A7CA5"),
                },
            },
            "typography": {
                "font_pairs": [
                    {
                        "name": "Editorial",
                        "heading": {"family": "Fraunces"},
                        "body": {"family": "Inter"},
                    }
                ],
                "type_scale": {"base": "1rem"},
            },
            "brand_summary": "Calm coastal roastery.",
        }
    )


@pytest.fixture
def generator(payload):
    generator = AsyncMock()
    generator.generate = AsyncMock(return_value=payload)
    return generator


@pytest.fixture
def cache():
    return GenerationCache(DictRedis())


@pytest.fixture
def make_service(
    settings,
    rate_limiter,
    account_store,
    credit_account,
    usage_store,
    event_store,
    generator,
    grant_store,
    design_store,
):
    def _make(cache, **overrides):
        for name, value in overrides.items():
            setattr(settings, name, value)
        return GenerationService(
            gate=EntitlementGate(
                rate_limiter, account_store, credit_account, settings, grants=grant_store
            ),
            generator=generator,
            cache=cache,
            ledger=UsageLedger(usage_store),
            principals=account_store,
            events=event_store,
            settings=settings,
            designs=design_store,
        )

    return _make


@pytest.fixture
def service(make_service, cache):
    return make_service(cache)


BRIEF = DesignBrief("Calm coastal coffee roastery", industry="Food", audience="Commuters")
REQUEST = GenerationRequest(principal_id="u1", client_ip="10.0.0.1")


class TestGenerate:
    @pytest.mark.asyncio
    async def test_success_charges_meters_and_caches(
        self, service, account_store, usage_store, event_store, generator, cache
    ):
        account_store.add("u1", plan="basic", credits=3)

        result = await service.generate(REQUEST, BRIEF)

        assert result.cached is False
        assert result.tier == "basic"
        assert result.credits_consumed == 1
        assert result.design_system["brand_summary"] == "Calm coastal roastery."
        assert await account_store.get_balance("u1") == 2
        assert (await usage_store.get("u1", "generate_design_system")).count == 1
        assert event_store.events[-1]["success"] is True
        assert await cache.get(BRIEF.cache_key) == result.design_system

        tier_config = generator.generate.await_args.args[1]
        assert tier_config.max_tokens == 2500

    @pytest.mark.asyncio
    async def test_denial_propagates_without_generation(self, service, account_store, generator):
        account_store.add("u1", free_generations_used=3)

        with pytest.raises(NoCreditsError):
            await service.generate(REQUEST, BRIEF)

        generator.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_generator_failure_refunds_credit(
        self, service, account_store, event_store, generator
    ):
        account_store.add("u1", plan="basic", credits=3)
        generator.generate.side_effect = RuntimeError("provider exploded")

        with pytest.raises(GenerationFailedError) as exc_info:
            await service.generate(REQUEST, BRIEF)

        assert exc_info.value.refunded is True
        assert exc_info.value.status_code == 502
        assert await account_store.get_balance("u1") == 3
        assert event_store.events[-1]["success"] is False
        assert event_store.events[-1]["credits_used"] == 0

    @pytest.mark.asyncio
    async def test_generator_timeout_returns_free_trial(self, service, account_store, generator):
        account_store.add("u1", free_generations_used=1)
        generator.generate.side_effect = LLMTimeoutError("openai", 60)

        with pytest.raises(GenerationFailedError) as exc_info:
            await service.generate(REQUEST, BRIEF)

        assert "timed out" in exc_info.value.message
        assert (await account_store.load_snapshot("u1")).free_generations_used == 1

    @pytest.mark.asyncio
    async def test_failure_without_refund_keeps_charge(
        self, make_service, cache, account_store, generator
    ):
        service = make_service(cache, refund_on_generation_failure=False)
        account_store.add("u1", plan="basic", credits=3)
        generator.generate.side_effect = RuntimeError("provider exploded")

        with pytest.raises(GenerationFailedError) as exc_info:
            await service.generate(REQUEST, BRIEF)

        assert exc_info.value.refunded is False
        assert await account_store.get_balance("u1") == 2

    @pytest.mark.asyncio
    async def test_monthly_limit_does_not_fail_request(self, service, account_store, usage_store):
        """Metering past the plan ceiling is logged; the delivered result stands."""
        account_store.add("u1", free_generations_limit=10)
        for i in range(3):
            await service.generate(REQUEST, DesignBrief(f"Brand number {i} with a story"))

        result = await service.generate(REQUEST, DesignBrief("Yet another fresh brand"))

        assert result.cached is False
        assert (await usage_store.get("u1", "generate_design_system")).count == 3

    @pytest.mark.asyncio
    async def test_event_store_failure_does_not_fail_request(
        self, service, account_store, event_store
    ):
        account_store.add("u1", plan="basic", credits=3)
        event_store.record = AsyncMock(side_effect=ConnectionError("down"))

        result = await service.generate(REQUEST, BRIEF)

        assert result.cached is False


class TestCachePolicies:
    @pytest.mark.asyncio
    async def test_entitlement_first_hit_is_free_but_gated(self, service, account_store, generator):
        account_store.add("u1", plan="basic", credits=3)
        await service.generate(REQUEST, BRIEF)

        same_brief = DesignBrief("  CALM coastal coffee roastery", "food", "commuters")
        result = await service.generate(REQUEST, same_brief)

        assert result.cached is True
        assert result.tier == "basic"
        assert result.credits_consumed == 0
        assert generator.generate.await_count == 1
        assert await account_store.get_balance("u1") == 2

    @pytest.mark.asyncio
    async def test_entitlement_first_hit_still_requires_access(
        self, service, account_store, cache, payload
    ):
        account_store.add("u1", free_generations_used=3)
        await cache.put(BRIEF.cache_key, payload.model_dump())

        with pytest.raises(NoCreditsError):
            await service.generate(REQUEST, BRIEF)

    @pytest.mark.asyncio
    async def test_cache_first_hit_skips_gate(
        self, make_service, cache, account_store, event_store, generator, payload
    ):
        service = make_service(cache, cache_policy="cache_first")
        account_store.add("u1", free_generations_used=3)
        await cache.put(BRIEF.cache_key, payload.model_dump())

        result = await service.generate(REQUEST, BRIEF)

        assert result.cached is True
        assert result.tier is None
        generator.generate.assert_not_awaited()
        assert event_store.events[-1]["cached"] is True

    @pytest.mark.asyncio
    async def test_cache_first_miss_goes_through_gate(self, make_service, cache, account_store):
        service = make_service(cache, cache_policy="cache_first")
        account_store.add("u1", plan="professional", credits=1)

        result = await service.generate(REQUEST, BRIEF)

        assert result.cached is False
        assert result.tier == "professional"
        assert await account_store.get_balance("u1") == 0

    @pytest.mark.asyncio
    async def test_cache_unavailable_still_generates(self, make_service, account_store, generator):
        service = make_service(GenerationCache(None))
        account_store.add("u1", plan="basic", credits=2)

        first = await service.generate(REQUEST, BRIEF)
        second = await service.generate(REQUEST, BRIEF)

        assert first.cached is False
        assert second.cached is False
        assert generator.generate.await_count == 2


class TestHeldGrantRedemption:
    @pytest.mark.asyncio
    async def test_grant_token_is_not_charged_twice(
        self, service, account_store, usage_store, generator
    ):
        account_store.add("u1", plan="basic", credits=3)
        held = await service.gate.hold(REQUEST)

        result = await service.generate(REQUEST, BRIEF, grant_token=held.grant_token)

        assert result.cached is False
        assert result.grant_token == held.grant_token
        assert result.credits_consumed == 1
        assert await account_store.get_balance("u1") == 2
        assert (await usage_store.get("u1", "generate_design_system")).count == 1
        generator.generate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_grant_token_is_single_use(self, service, account_store, generator):
        account_store.add("u1", plan="basic", credits=3)
        held = await service.gate.hold(REQUEST)
        await service.generate(REQUEST, BRIEF, grant_token=held.grant_token)

        with pytest.raises(GrantNotFoundError):
            await service.generate(
                REQUEST, DesignBrief("Another brand entirely"), grant_token=held.grant_token
            )
        assert generator.generate.await_count == 1
        assert await account_store.get_balance("u1") == 2

    @pytest.mark.asyncio
    async def test_cache_hit_gives_grant_back(
        self, make_service, cache, account_store, payload, generator
    ):
        service = make_service(cache, cache_policy="cache_first")
        account_store.add("u1", plan="basic", credits=3)
        await cache.put(BRIEF.cache_key, payload.model_dump())
        held = await service.gate.hold(REQUEST)

        result = await service.generate(REQUEST, BRIEF, grant_token=held.grant_token)

        assert result.cached is True
        assert result.credits_consumed == 0
        assert await account_store.get_balance("u1") == 3
        generator.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_generator_failure_refunds_held_grant(self, service, account_store, generator):
        account_store.add("u1", plan="basic", credits=3)
        held = await service.gate.hold(REQUEST)
        generator.generate.side_effect = RuntimeError("provider exploded")

        with pytest.raises(GenerationFailedError):
            await service.generate(REQUEST, BRIEF, grant_token=held.grant_token)

        assert await account_store.get_balance("u1") == 3


class TestCommit:
    @pytest.mark.asyncio
    async def test_commit_meters_and_records(
        self, service, account_store, usage_store, event_store
    ):
        account_store.add("u1", plan="basic", credits=3)
        held = await service.gate.hold(REQUEST)

        grant = await service.commit("u1", held.grant_token)

        assert grant.credits_consumed == 1
        assert await account_store.get_balance("u1") == 2
        assert (await usage_store.get("u1", "generate_design_system")).count == 1
        assert event_store.events[-1]["metadata"]["committed"] is True
        assert event_store.events[-1]["grant_token"] == held.grant_token

    @pytest.mark.asyncio
    async def test_commit_of_released_grant_fails(self, service, account_store, usage_store):
        account_store.add("u1", plan="basic", credits=3)
        held = await service.gate.hold(REQUEST)
        await service.gate.release_held(held.grant_token, "u1")

        with pytest.raises(GrantNotFoundError):
            await service.commit("u1", held.grant_token)
        assert await usage_store.get("u1", "generate_design_system") is None


class TestDesignLibrary:
    @pytest.mark.asyncio
    async def test_result_saved_for_signed_in_caller(self, service, account_store, design_store):
        account_store.add("u1", plan="professional", credits=3)

        result = await service.generate(REQUEST, BRIEF)

        saved = design_store.saved[-1]
        assert result.design_system_id == saved.id
        assert saved.user_id == "u1"
        assert saved.tier == "professional"
        assert saved.industry == "Food"
        assert saved.cached is False
        assert saved.name.startswith("Professional Design System - ")

    @pytest.mark.asyncio
    async def test_cached_result_saved_as_cached(self, service, account_store, design_store):
        account_store.add("u1", plan="basic", credits=3)
        await service.generate(REQUEST, BRIEF)

        result = await service.generate(REQUEST, BRIEF)

        assert result.cached is True
        assert design_store.saved[-1].cached is True
        assert len(design_store.saved) == 2

    @pytest.mark.asyncio
    async def test_anonymous_result_not_saved(self, make_service, cache, payload, design_store):
        service = make_service(cache, cache_policy="cache_first")
        await cache.put(BRIEF.cache_key, payload.model_dump())
        anonymous = GenerationRequest(principal_id=None, client_ip="10.0.0.9")

        result = await service.generate(anonymous, BRIEF)

        assert result.cached is True
        assert result.design_system_id is None
        assert design_store.saved == []

    @pytest.mark.asyncio
    async def test_save_failure_does_not_fail_request(self, service, account_store, design_store):
        account_store.add("u1", plan="basic", credits=3)
        design_store.save = AsyncMock(side_effect=ConnectionError("db down"))

        result = await service.generate(REQUEST, BRIEF)

        assert result.cached is False
        assert result.design_system_id is None
        assert await account_store.get_balance("u1") == 2


class TestDesignSystemName:
    def test_with_tier(self):
        now = datetime(2026, 10, 18, tzinfo=timezone.utc)

        assert design_system_name("basic", now) == "Basic Design System - 2026-10-18"
        assert design_system_name(None, now) == "Design System - 2026-10-18"
