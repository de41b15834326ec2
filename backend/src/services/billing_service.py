"""Payment events: plan changes and credit grants.

Every event claims the idempotency key ``payment:<event_id>`` through
``CreditAccount.apply_balance``. Plan changes ride on that claim: a
redelivered webhook changes neither the balance nor the plan.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Optional

from src.models.user import User
from src.repositories.user_repository import UserRepository
from src.services.credit_account import CreditAccount
from src.tiers import CANCELLATION_CREDIT_FLOOR, Plan, credit_grant_for
from src.utils.logger import get_logger

log = get_logger(__name__)


class PaymentEventKind(StrEnum):
    CHECKOUT_COMPLETED = "checkout_completed"
    RENEWAL = "renewal"
    CANCELLATION = "cancellation"


@dataclass(frozen=True, slots=True)
class PaymentEvent:
    event_id: str
    kind: PaymentEventKind
    plan: Optional[str] = None
    principal_id: Optional[str] = None
    clerk_id: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    credit_grant: Optional[int] = None


@dataclass(frozen=True, slots=True)
class BillingOutcome:
    user_id: str
    plan: str
    balance: int
    applied: bool = True


def _field(obj: Any, name: str, default=None):
    """Read a field from a Stripe object or a plain dict."""
    try:
        value = obj[name]
    except (KeyError, TypeError):
        return default
    return default if value is None else value


def payment_event_from_stripe(event: Any) -> Optional[PaymentEvent]:
    """Map a verified Stripe event to a PaymentEvent. None for event types we ignore."""
    event_type = _field(event, "type")
    obj = _field(_field(event, "data", {}), "object", {})
    event_id = _field(event, "id")
    customer = _field(obj, "customer")

    if event_type == "checkout.session.completed":
        metadata = _field(obj, "metadata", {})
        return PaymentEvent(
            event_id=event_id,
            kind=PaymentEventKind.CHECKOUT_COMPLETED,
            plan=_field(metadata, "plan"),
            clerk_id=_field(metadata, "clerkId") or _field(metadata, "clerk_id"),
            stripe_customer_id=customer,
        )
    if event_type == "invoice.payment_succeeded":
        return PaymentEvent(
            event_id=event_id, kind=PaymentEventKind.RENEWAL, stripe_customer_id=customer
        )
    if event_type == "customer.subscription.deleted":
        return PaymentEvent(
            event_id=event_id, kind=PaymentEventKind.CANCELLATION, stripe_customer_id=customer
        )
    return None


class BillingService:
    def __init__(self, users: UserRepository, credits: CreditAccount):
        self.users = users
        self.credits = credits

    async def apply_event(self, event: PaymentEvent) -> Optional[BillingOutcome]:
        """Apply one payment event. Returns None when the account cannot be found.

        The balance write claims ``payment:<event_id>`` first. Plan and
        customer id are only written when that claim is won, so a redelivered
        event leaves the account exactly as later events left it.
        """
        user = await self._find_user(event)
        if user is None:
            log.warning(
                "payment event for unknown account",
                event_id=event.event_id,
                kind=event.kind,
                clerk_id=event.clerk_id,
                stripe_customer_id=event.stripe_customer_id,
            )
            return None

        user_id = str(user.id)
        current_plan = user.plan

        if event.kind == PaymentEventKind.CHECKOUT_COMPLETED:
            plan = self._valid_plan(event.plan, event.event_id)
            grant = event.credit_grant if event.credit_grant is not None else credit_grant_for(plan)
        elif event.kind == PaymentEventKind.RENEWAL:
            plan = current_plan
            grant = event.credit_grant if event.credit_grant is not None else credit_grant_for(plan)
        else:
            plan = Plan.FREE.value
            grant = CANCELLATION_CREDIT_FLOOR

        result = await self.credits.apply_balance(user_id, grant, f"payment:{event.event_id}")
        if not result.applied:
            log.info(
                "payment event replayed",
                event_id=event.event_id,
                kind=event.kind,
                user_id=user_id,
                plan=current_plan,
                balance=result.balance,
            )
            return BillingOutcome(
                user_id=user_id, plan=current_plan, balance=result.balance, applied=False
            )

        if (
            event.kind == PaymentEventKind.CHECKOUT_COMPLETED
            and event.stripe_customer_id
            and user.stripe_customer_id != event.stripe_customer_id
        ):
            await self.users.set_stripe_customer_id(user, event.stripe_customer_id)
        if current_plan != plan:
            await self.users.update_plan(user, plan)

        log.info(
            "payment event applied",
            event_id=event.event_id,
            kind=event.kind,
            user_id=user_id,
            plan=plan,
            balance=result.balance,
        )
        return BillingOutcome(user_id=user_id, plan=plan, balance=result.balance)

    async def _find_user(self, event: PaymentEvent) -> Optional[User]:
        if event.principal_id:
            user = await self.users.get_by_id(event.principal_id)
            if user:
                return user
        if event.clerk_id:
            user = await self.users.get_by_clerk_id(event.clerk_id)
            if user:
                return user
        if event.stripe_customer_id:
            return await self.users.get_by_stripe_customer_id(event.stripe_customer_id)
        return None

    @staticmethod
    def _valid_plan(plan: Optional[str], event_id: str) -> str:
        try:
            return Plan(plan).value
        except ValueError:
            log.warning("unknown plan in payment event", plan=plan, event_id=event_id)
            return Plan.BASIC.value
