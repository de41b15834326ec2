"""Repository for User model operations."""

import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.user import User
from src.repositories.ports import PrincipalStore
from src.tiers import PrincipalSnapshot
from src.utils.logger import get_logger

log = get_logger(__name__)


def as_uuid(user_id: str | uuid.UUID) -> Optional[uuid.UUID]:
    """Parse a principal id, returning None for malformed input."""
    if isinstance(user_id, uuid.UUID):
        return user_id
    try:
        return uuid.UUID(str(user_id))
    except ValueError:
        return None


def to_snapshot(user: User) -> PrincipalSnapshot:
    return PrincipalSnapshot(
        id=str(user.id),
        plan=user.plan,
        credits=user.credits,
        free_generations_used=user.free_generations_used,
        free_generations_limit=user.free_generations_limit,
        banned=user.banned,
        clerk_id=user.clerk_id,
    )


class UserRepository(PrincipalStore):
    """Repository for User CRUD operations and principal snapshots.

    The free-trial reservation methods commit immediately so the row lock is
    released before the caller goes on to the (slow) generation call.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: str | uuid.UUID) -> Optional[User]:
        """Get user by UUID."""
        uid = as_uuid(user_id)
        if uid is None:
            return None
        log.debug("query user by id", user_id=str(uid))
        result = await self.session.execute(select(User).where(User.id == uid))
        user = result.scalar_one_or_none()
        log.debug("query result", found=user is not None)
        return user

    async def get_by_clerk_id(self, clerk_id: str) -> Optional[User]:
        """Get user by Clerk ID."""
        log.debug("query user by clerk_id", clerk_id=clerk_id)
        result = await self.session.execute(select(User).where(User.clerk_id == clerk_id))
        user = result.scalar_one_or_none()
        log.debug("query result", found=user is not None)
        return user

    async def get_by_stripe_customer_id(self, customer_id: str) -> Optional[User]:
        result = await self.session.execute(
            select(User).where(User.stripe_customer_id == customer_id)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        clerk_id: str,
        email: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        profile_image_url: Optional[str] = None,
        free_generations_limit: Optional[int] = None,
    ) -> User:
        """
        Create a new user on the free plan with zero credits.

        Caller is responsible for committing the transaction.
        """
        user = User(
            clerk_id=clerk_id,
            email=email,
            first_name=first_name,
            last_name=last_name,
            profile_image_url=profile_image_url,
            last_login_at=datetime.now(timezone.utc),
        )
        if free_generations_limit is not None:
            user.free_generations_limit = free_generations_limit
        self.session.add(user)
        await self.session.flush()
        await self.session.refresh(user)
        log.info("user created", clerk_id=clerk_id, email=email)
        return user

    async def get_or_create(
        self,
        clerk_id: str,
        email: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        profile_image_url: Optional[str] = None,
        free_generations_limit: Optional[int] = None,
    ) -> tuple[User, bool]:
        """
        Get existing user or create a new one.

        Syncs the Clerk profile on every authenticated request.

        Returns:
            Tuple of (user, created) where created is True if user was newly created
        """
        user = await self.get_by_clerk_id(clerk_id)
        if user:
            await self.update_on_login(
                user,
                email=email,
                first_name=first_name,
                last_name=last_name,
                profile_image_url=profile_image_url,
            )
            return user, False

        user = await self.create(
            clerk_id=clerk_id,
            email=email,
            first_name=first_name,
            last_name=last_name,
            profile_image_url=profile_image_url,
            free_generations_limit=free_generations_limit,
        )
        return user, True

    async def update_on_login(
        self,
        user: User,
        email: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        profile_image_url: Optional[str] = None,
    ) -> User:
        """
        Update user's last login time and sync profile data from Clerk.

        Caller is responsible for committing the transaction.
        """
        update_data = {
            "last_login_at": datetime.now(timezone.utc),
            "updated_at": datetime.now(timezone.utc),
        }

        # Only overwrite fields Clerk actually sent
        if email is not None:
            update_data["email"] = email
        if first_name is not None:
            update_data["first_name"] = first_name
        if last_name is not None:
            update_data["last_name"] = last_name
        if profile_image_url is not None:
            update_data["profile_image_url"] = profile_image_url

        await self.session.execute(update(User).where(User.id == user.id).values(**update_data))
        await self.session.flush()
        await self.session.refresh(user)
        log.debug("user login updated", clerk_id=user.clerk_id)
        return user

    async def update_plan(self, user: User, plan: str) -> User:
        """Change the user's plan. Caller is responsible for committing."""
        await self.session.execute(
            update(User)
            .where(User.id == user.id)
            .values(plan=plan, updated_at=datetime.now(timezone.utc))
        )
        await self.session.flush()
        await self.session.refresh(user)
        log.info("user plan updated", user_id=str(user.id), plan=plan)
        return user

    async def set_banned(self, user: User, banned: bool) -> User:
        """Ban or unban the user. Caller is responsible for committing."""
        await self.session.execute(
            update(User)
            .where(User.id == user.id)
            .values(banned=banned, updated_at=datetime.now(timezone.utc))
        )
        await self.session.flush()
        await self.session.refresh(user)
        log.info("user ban updated", user_id=str(user.id), banned=banned)
        return user

    async def set_stripe_customer_id(self, user: User, customer_id: str) -> None:
        await self.session.execute(
            update(User).where(User.id == user.id).values(stripe_customer_id=customer_id)
        )
        await self.session.flush()

    # ------------------------------------------------------------------
    # PrincipalStore
    # ------------------------------------------------------------------

    async def load_snapshot(self, user_id: str) -> Optional[PrincipalSnapshot]:
        uid = as_uuid(user_id)
        if uid is None:
            return None
        result = await self.session.execute(
            select(
                User.id,
                User.clerk_id,
                User.plan,
                User.credits,
                User.free_generations_used,
                User.free_generations_limit,
                User.banned,
            ).where(User.id == uid)
        )
        row = result.one_or_none()
        if row is None:
            return None
        return PrincipalSnapshot(
            id=str(row.id),
            plan=row.plan,
            credits=row.credits,
            free_generations_used=row.free_generations_used,
            free_generations_limit=row.free_generations_limit,
            banned=row.banned,
            clerk_id=row.clerk_id,
        )

    async def reserve_free_generation(self, user_id: str) -> Optional[int]:
        uid = as_uuid(user_id)
        if uid is None:
            return None
        result = await self.session.execute(
            update(User)
            .where(
                User.id == uid,
                User.free_generations_used < User.free_generations_limit,
            )
            .values(
                free_generations_used=User.free_generations_used + 1,
                updated_at=datetime.now(timezone.utc),
            )
            .returning(User.free_generations_used)
        )
        used = result.scalar_one_or_none()
        await self.session.commit()
        log.debug("free generation reserve", user_id=str(uid), used=used)
        return used

    async def release_free_generation(self, user_id: str) -> Optional[int]:
        uid = as_uuid(user_id)
        if uid is None:
            return None
        result = await self.session.execute(
            update(User)
            .where(User.id == uid, User.free_generations_used > 0)
            .values(
                free_generations_used=User.free_generations_used - 1,
                updated_at=datetime.now(timezone.utc),
            )
            .returning(User.free_generations_used)
        )
        used = result.scalar_one_or_none()
        await self.session.commit()
        log.debug("free generation released", user_id=str(uid), used=used)
        return used
