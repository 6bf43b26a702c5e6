from dataclasses import dataclass, field
from typing import List, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import async_sessionmaker

from src.core.config import get_settings
from src.db.models import UserProfile, VoteDirection
from src.db.repositories import block_repo, get_partner_ids, profile_repo, vote_repo

settings = get_settings()


@dataclass
class PotentialFriend:
    """Candidate card shown in discovery."""
    id: str
    name: str
    city: str
    interests: List[str] = field(default_factory=list)
    bio: Optional[str] = None
    avatar: Optional[str] = None

    @classmethod
    def from_profile(cls, profile: UserProfile) -> "PotentialFriend":
        return cls(
            id=profile.id,
            name=profile.name or profile.email or "Anonymous",
            city=profile.city or "",
            interests=list(profile.interests or []),
            bio=profile.bio,
            avatar=profile.avatar,
        )


class Discovery:
    """City-based candidate lists with blocks and existing matches removed."""

    def __init__(self, session_factory: async_sessionmaker, exclude_passed: Optional[bool] = None):
        self._session_factory = session_factory
        self._exclude_passed = settings.DISCOVERY_EXCLUDE_PASSED if exclude_passed is None else exclude_passed

    async def candidates(self, user_id: str, city: Optional[str] = None) -> List[PotentialFriend]:
        """
        Get discovery candidates for a user.

        Args:
            user_id: ID of the user browsing
            city: City to search; defaults to the city on the user's profile

        Returns:
            Candidates ordered by id; empty when no city is known
        """
        async with self._session_factory() as session:
            if city is None:
                city = (await profile_repo.get_profile(session, user_id)).city
            if not city:
                logger.info(f"No city for user {user_id}, discovery is empty")
                return []

            excluded = {user_id}
            excluded |= await block_repo.get_blocked_ids(session, user_id)
            excluded |= await block_repo.get_blocker_ids(session, user_id)
            excluded |= await get_partner_ids(session, user_id)
            if self._exclude_passed:
                excluded |= await vote_repo.get_targets_by_direction(session, user_id, VoteDirection.PASS)

            profiles = await profile_repo.get_in_city(session, city, exclude_ids=excluded)

        logger.debug(f"Discovery for {user_id} in {city}: {len(profiles)} candidates")
        return [PotentialFriend.from_profile(profile) for profile in profiles]
