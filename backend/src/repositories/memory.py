"""In-process store adapters.

Single-process implementations of the storage ports for tests and local
development. Each store serializes mutations behind one asyncio.Lock, which
gives the same per-principal atomicity the SQL repositories get from
conditional updates.
"""

import asyncio
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Optional

from src.exceptions import PrincipalNotFoundError
from src.repositories.ports import (
    CreditResult,
    CreditStore,
    DesignSystemStore,
    GrantStatus,
    GrantStore,
    HeldGrant,
    PrincipalStore,
    SavedDesignSystem,
    UsageEventStore,
    UsageSnapshot,
    UsageStore,
)
from src.tiers import PrincipalSnapshot


class InMemoryAccountStore(PrincipalStore, CreditStore):
    """Principals, balances and free-trial counters held in a dict."""

    def __init__(self):
        self._principals: dict[str, PrincipalSnapshot] = {}
        self._applied_keys: set[str] = set()
        self._lock = asyncio.Lock()

    def add(
        self,
        user_id: str,
        plan: str = "free",
        credits: int = 0,
        free_generations_used: int = 0,
        free_generations_limit: int = 3,
        banned: bool = False,
        clerk_id: Optional[str] = None,
    ) -> PrincipalSnapshot:
        snapshot = PrincipalSnapshot(
            id=user_id,
            plan=plan,
            credits=credits,
            free_generations_used=free_generations_used,
            free_generations_limit=free_generations_limit,
            banned=banned,
            clerk_id=clerk_id,
        )
        self._principals[user_id] = snapshot
        return snapshot

    def update(self, user_id: str, **changes) -> PrincipalSnapshot:
        """Overwrite fields directly (plan changes, bans)."""
        snapshot = replace(self._principals[user_id], **changes)
        self._principals[user_id] = snapshot
        return snapshot

    async def load_snapshot(self, user_id: str) -> Optional[PrincipalSnapshot]:
        return self._principals.get(user_id)

    async def reserve_free_generation(self, user_id: str) -> Optional[int]:
        async with self._lock:
            current = self._principals.get(user_id)
            if current is None or current.free_generations_used >= current.free_generations_limit:
                return None
            used = current.free_generations_used + 1
            self._principals[user_id] = replace(current, free_generations_used=used)
            return used

    async def release_free_generation(self, user_id: str) -> Optional[int]:
        async with self._lock:
            current = self._principals.get(user_id)
            if current is None or current.free_generations_used == 0:
                return None
            used = current.free_generations_used - 1
            self._principals[user_id] = replace(current, free_generations_used=used)
            return used

    async def get_balance(self, user_id: str) -> Optional[int]:
        current = self._principals.get(user_id)
        return current.credits if current else None

    async def debit(self, user_id: str, amount: int) -> Optional[int]:
        async with self._lock:
            current = self._principals.get(user_id)
            if current is None or current.credits < amount:
                return None
            balance = current.credits - amount
            self._principals[user_id] = replace(current, credits=balance)
            return balance

    async def credit(
        self,
        user_id: str,
        amount: int,
        idempotency_key: Optional[str] = None,
        kind: str = "credit",
    ) -> CreditResult:
        async with self._lock:
            return self._apply(user_id, idempotency_key, lambda credits: credits + amount)

    async def set_balance(
        self, user_id: str, amount: int, idempotency_key: Optional[str] = None
    ) -> CreditResult:
        async with self._lock:
            return self._apply(user_id, idempotency_key, lambda _: amount)

    def _apply(self, user_id, idempotency_key, compute) -> CreditResult:
        current = self._principals.get(user_id)
        if current is None:
            raise PrincipalNotFoundError(user_id)
        if idempotency_key is not None:
            if idempotency_key in self._applied_keys:
                return CreditResult(balance=current.credits, applied=False)
            self._applied_keys.add(idempotency_key)
        balance = compute(current.credits)
        self._principals[user_id] = replace(current, credits=balance)
        return CreditResult(balance=balance, applied=True)


@dataclass
class _Record:
    count: int
    period_start: datetime
    reset_at: datetime


class InMemoryUsageStore(UsageStore):
    def __init__(self):
        self._records: dict[tuple[str, str], _Record] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _view(key: tuple[str, str], record: _Record) -> UsageSnapshot:
        return UsageSnapshot(
            user_id=key[0],
            action_kind=key[1],
            count=record.count,
            period_start=record.period_start,
            reset_at=record.reset_at,
        )

    async def get(self, user_id: str, action_kind: str) -> Optional[UsageSnapshot]:
        key = (user_id, action_kind)
        record = self._records.get(key)
        return self._view(key, record) if record else None

    async def create(
        self, user_id: str, action_kind: str, period_start: datetime, reset_at: datetime
    ) -> UsageSnapshot:
        key = (user_id, action_kind)
        async with self._lock:
            record = self._records.setdefault(key, _Record(0, period_start, reset_at))
            return self._view(key, record)

    async def reset(
        self,
        user_id: str,
        action_kind: str,
        expected_reset_at: datetime,
        period_start: datetime,
        reset_at: datetime,
    ) -> Optional[UsageSnapshot]:
        key = (user_id, action_kind)
        async with self._lock:
            record = self._records.get(key)
            if record is None or record.reset_at != expected_reset_at:
                return None
            record.count = 0
            record.period_start = period_start
            record.reset_at = reset_at
            return self._view(key, record)

    async def increment(
        self,
        user_id: str,
        action_kind: str,
        limit: Optional[int],
        expected_reset_at: datetime,
        now: datetime,
    ) -> Optional[UsageSnapshot]:
        key = (user_id, action_kind)
        async with self._lock:
            record = self._records.get(key)
            if record is None:
                return None
            if record.reset_at != expected_reset_at or record.reset_at <= now:
                return None
            if limit is not None and record.count >= limit:
                return None
            record.count += 1
            return self._view(key, record)


class InMemoryUsageEventStore(UsageEventStore):
    def __init__(self):
        self.events: list[dict] = []

    async def record(
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
        self.events.append(
            {
                "user_id": user_id,
                "action": action,
                "tier": tier,
                "credits_used": credits_used,
                "cached": cached,
                "success": success,
                "grant_token": grant_token,
                "metadata": metadata or {},
            }
        )


class InMemoryGrantStore(GrantStore):
    def __init__(self):
        self.grants: dict[str, HeldGrant] = {}
        self.statuses: dict[str, GrantStatus] = {}
        self._lock = asyncio.Lock()

    async def save(self, grant: HeldGrant) -> None:
        async with self._lock:
            self.grants[grant.token] = grant
            self.statuses[grant.token] = GrantStatus.HELD

    async def settle(
        self, token: str, user_id: str, status: GrantStatus, now: datetime
    ) -> Optional[HeldGrant]:
        async with self._lock:
            grant = self.grants.get(token)
            if (
                grant is None
                or grant.user_id != user_id
                or self.statuses[token] != GrantStatus.HELD
                or grant.expires_at <= now
            ):
                return None
            self.statuses[token] = status
            return grant

    async def expire(self, now: datetime, limit: int) -> list[HeldGrant]:
        async with self._lock:
            overdue = [
                grant
                for token, grant in self.grants.items()
                if self.statuses[token] == GrantStatus.HELD and grant.expires_at <= now
            ][:limit]
            for grant in overdue:
                self.statuses[grant.token] = GrantStatus.EXPIRED
            return overdue


class InMemoryDesignSystemStore(DesignSystemStore):
    def __init__(self):
        self.saved: list[SavedDesignSystem] = []

    async def save(
        self,
        user_id: str,
        name: str,
        brand_description: str,
        design_system: dict[str, Any],
        industry: Optional[str] = None,
        audience: Optional[str] = None,
        tier: Optional[str] = None,
        cached: bool = False,
    ) -> SavedDesignSystem:
        record = SavedDesignSystem(
            id=str(uuid.uuid4()),
            user_id=user_id,
            name=name,
            brand_description=brand_description,
            industry=industry,
            audience=audience,
            tier=tier,
            design_system=design_system,
            cached=cached,
            created_at=datetime.now(timezone.utc),
        )
        self.saved.append(record)
        return record

    async def list_for_user(
        self, user_id: str, limit: int = 20, offset: int = 0
    ) -> list[SavedDesignSystem]:
        mine = [record for record in reversed(self.saved) if record.user_id == user_id]
        return mine[offset : offset + limit]

    async def get_for_user(self, user_id: str, design_system_id: str) -> Optional[SavedDesignSystem]:
        for record in self.saved:
            if record.id == design_system_id and record.user_id == user_id:
                return record
        return None
