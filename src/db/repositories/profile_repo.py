from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.diagnostics import track_db
from src.db.models import UserProfile
from src.db.repositories.base import BaseRepository

UPDATABLE_FIELDS = ("name", "email", "city", "bio", "avatar", "interests", "trusted_contacts")


class UserProfileRepository(BaseRepository[UserProfile]):
    """Repository for user profiles."""

    def __init__(self):
        super().__init__(UserProfile)

    @track_db
    async def save_profile(self, session: AsyncSession, user_id: str, **fields) -> UserProfile:
        """Create a profile or update the given fields of an existing one."""
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown profile fields: {sorted(unknown)}")

        profile = await self.get(session, user_id)
        if profile is None:
            data = {"interests": [], "trusted_contacts": []}
            data.update(fields)
            return await self.create(session, {"id": user_id, **data})

        for key, value in fields.items():
            setattr(profile, key, value)
        await session.flush()
        return profile

    @track_db
    async def get_profile(self, session: AsyncSession, user_id: str, email: Optional[str] = None) -> UserProfile:
        """
        Get a profile, or an unsaved placeholder when the user has none yet.

        Args:
            session: Database session
            user_id: ID of the user
            email: Email from the identity provider, used as a display name fallback

        Returns:
            The stored profile or a transient placeholder
        """
        profile = await self.get(session, user_id)
        if profile is not None:
            return profile
        return UserProfile(
            id=user_id,
            name=email or "Anonymous",
            email=email,
            city="",
            interests=[],
            trusted_contacts=[],
        )

    @track_db
    async def get_in_city(self, session: AsyncSession, city: str, exclude_ids: Iterable[str] = ()) -> list[UserProfile]:
        """Get all profiles in a city except the excluded ids, ordered by id."""
        query = select(UserProfile).where(UserProfile.city == city)
        excluded = list(exclude_ids)
        if excluded:
            query = query.where(UserProfile.id.not_in(excluded))
        result = await session.execute(query.order_by(UserProfile.id))
        return list(result.scalars().all())


profile_repo = UserProfileRepository()
