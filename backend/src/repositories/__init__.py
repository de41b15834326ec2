"""Repository layer for data access."""

from src.repositories.user_repository import UserRepository
from src.repositories.credit_repository import CreditRepository
from src.repositories.usage_record_repository import UsageRecordRepository
from src.repositories.usage_event_repository import UsageEventRepository
from src.repositories.grant_repository import GrantRepository
from src.repositories.design_system_repository import DesignSystemRepository

__all__ = [
    "UserRepository",
    "CreditRepository",
    "UsageRecordRepository",
    "UsageEventRepository",
    "GrantRepository",
    "DesignSystemRepository",
]
