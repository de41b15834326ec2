"""Storage ports for the entitlement core.

The ledger, credit account and entitlement gate depend only on these
interfaces. Production wires the SQLAlchemy repositories; tests and local
development can wire the in-memory adapters from ``src.repositories.memory``.
Every mutating method must be atomic per principal.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

from src.tiers import PrincipalSnapshot


@dataclass(frozen=True, slots=True)
class UsageSnapshot:
    """Point-in-time view of one usage record."""

    user_id: str
    action_kind: str
    count: int
    period_start: datetime
    reset_at: datetime


@dataclass(frozen=True, slots=True)
class CreditResult:
    """Outcome of a credit / set-balance call. ``applied`` is False on idempotent replay."""

    balance: int
    applied: bool = True


class GrantStatus(StrEnum):
    HELD = "held"
    COMMITTED = "committed"
    RELEASED = "released"
    EXPIRED = "expired"


@dataclass(frozen=True, slots=True)
class HeldGrant:
    """A reserved budget waiting for a commit or a release."""

    token: str
    user_id: str
    tier: str
    credits_consumed: int
    free_trial_consumed: bool
    expires_at: datetime


@dataclass(frozen=True, slots=True)
class SavedDesignSystem:
    id: str
    user_id: str
    name: str
    brand_description: str
    industry: Optional[str]
    audience: Optional[str]
    tier: Optional[str]
    design_system: dict[str, Any]
    cached: bool
    created_at: datetime


class PrincipalStore(ABC):
    """Read principal snapshots and move the free-trial counter."""

    @abstractmethod
    async def load_snapshot(self, user_id: str) -> Optional[PrincipalSnapshot]:
        """Return the current snapshot, or None if the principal does not exist."""

    @abstractmethod
    async def reserve_free_generation(self, user_id: str) -> Optional[int]:
        """Increment free_generations_used iff it is below the limit.

        Returns the new used count, or None when no free trial is left.
        """

    @abstractmethod
    async def release_free_generation(self, user_id: str) -> Optional[int]:
        """Give back one free trial (never below zero). Returns the new used count."""


class CreditStore(ABC):
    """Atomic balance primitives."""

    @abstractmethod
    async def get_balance(self, user_id: str) -> Optional[int]:
        """Current balance, or None if the principal does not exist."""

    @abstractmethod
    async def debit(self, user_id: str, amount: int) -> Optional[int]:
        """Subtract iff balance >= amount. Returns new balance, or None if insufficient."""

    @abstractmethod
    async def credit(
        self, user_id: str, amount: int, idempotency_key: Optional[str] = None, kind: str = "credit"
    ) -> CreditResult:
        """Add to the balance. A replayed idempotency key leaves the balance untouched.

        Raises:
            PrincipalNotFoundError: unknown user
        """

    @abstractmethod
    async def set_balance(
        self, user_id: str, amount: int, idempotency_key: Optional[str] = None
    ) -> CreditResult:
        """Overwrite the balance. A replayed idempotency key leaves the balance untouched.

        Raises:
            PrincipalNotFoundError: unknown user
        """


class UsageStore(ABC):
    """Per-(principal, action) usage counters."""

    @abstractmethod
    async def get(self, user_id: str, action_kind: str) -> Optional[UsageSnapshot]:
        """Return the record, or None if it has never been created."""

    @abstractmethod
    async def create(
        self, user_id: str, action_kind: str, period_start: datetime, reset_at: datetime
    ) -> UsageSnapshot:
        """Create the record with count 0, or return the existing one if another caller won."""

    @abstractmethod
    async def reset(
        self,
        user_id: str,
        action_kind: str,
        expected_reset_at: datetime,
        period_start: datetime,
        reset_at: datetime,
    ) -> Optional[UsageSnapshot]:
        """Zero the count iff the stored reset_at still equals expected_reset_at.

        Returns the reset record, or None if another caller already reset it.
        """

    @abstractmethod
    async def increment(
        self,
        user_id: str,
        action_kind: str,
        limit: Optional[int],
        expected_reset_at: datetime,
        now: datetime,
    ) -> Optional[UsageSnapshot]:
        """Add one iff count < limit (always when limit is None) and the period is current.

        The period is current when the stored reset_at still equals
        expected_reset_at and lies after ``now``.

        Returns the updated record, or None when the limit is reached or the
        period has moved on.
        """


class UsageEventStore(ABC):
    """Append-only audit of generation outcomes."""

    @abstractmethod
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
        """Persist one event."""


class GrantStore(ABC):
    """Grants issued by ``/generation/authorize`` that are still open."""

    @abstractmethod
    async def save(self, grant: HeldGrant) -> None:
        """Persist a new grant in status ``held``."""

    @abstractmethod
    async def settle(
        self, token: str, user_id: str, status: GrantStatus, now: datetime
    ) -> Optional[HeldGrant]:
        """Move a grant from ``held`` to ``status``.

        Only succeeds while the grant is held, owned by ``user_id`` and not yet
        expired at ``now``. Returns the grant, or None when any of that fails.
        """

    @abstractmethod
    async def expire(self, now: datetime, limit: int) -> list[HeldGrant]:
        """Mark up to ``limit`` held grants with ``expires_at <= now`` as expired and return them."""


class DesignSystemStore(ABC):
    """Generated design systems kept per user."""

    @abstractmethod
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
        """Insert one design system."""

    @abstractmethod
    async def list_for_user(
        self, user_id: str, limit: int = 20, offset: int = 0
    ) -> list[SavedDesignSystem]:
        """Newest first."""

    @abstractmethod
    async def get_for_user(self, user_id: str, design_system_id: str) -> Optional[SavedDesignSystem]:
        """None when the id does not exist or belongs to someone else."""
