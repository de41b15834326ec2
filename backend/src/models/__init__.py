"""Database models."""

from src.models.user import User
from src.models.usage_record import UsageRecord
from src.models.credit_transaction import CreditTransaction
from src.models.usage_event import UsageEvent
from src.models.grant import Grant
from src.models.design_system import DesignSystem

__all__ = [
    "User",
    "UsageRecord",
    "CreditTransaction",
    "UsageEvent",
    "Grant",
    "DesignSystem",
]
