"""
Unmatching and blocking.

Unmatch is a hard delete: the match row, its messages and its proposals go in
one transaction, and the pair's likes are downgraded to passes so a late or
retried evaluation cannot bring the match back. Observers of the match get a
final empty state and are then detached.
"""
from typing import Optional

from loguru import logger
from sqlalchemy.ext.asyncio import async_sessionmaker

from src.core.config import get_settings
from src.core.errors import InvalidReference, PermissionDenied
from src.db.repositories import block_repo, match_repo, vote_repo
from src.db.utils.session_management import transaction, with_retry
from src.matchmaking.dispatch import MATCHES_TOPIC, MESSAGES_TOPIC, PROPOSALS_TOPIC, SubscriptionHub

settings = get_settings()


class AccessController:
    """Revokes shared access between two users."""

    def __init__(self, session_factory: async_sessionmaker, hub: SubscriptionHub):
        self._session_factory = session_factory
        self._hub = hub

    @with_retry(max_attempts=settings.DB_RETRY_ATTEMPTS)
    async def unmatch(self, match_id: str, user_id: Optional[str] = None) -> bool:
        """
        Delete a match and everything in it. Unmatching a missing match is a no-op.

        Args:
            match_id: ID of the match
            user_id: Acting user; when given they must be a member

        Returns:
            True if a match was deleted
        """
        async with transaction(self._session_factory) as session:
            match = await match_repo.get_by_id(session, match_id)
            if match is None:
                logger.debug(f"Unmatch of missing match {match_id} ignored")
                return False
            if user_id is not None and not match.has_member(user_id):
                raise PermissionDenied(f"User {user_id} is not a member of match {match_id}")

            members = match.users
            await match_repo.delete_match_cascade(session, match_id)
            await vote_repo.downgrade_pair(session, *members)

        logger.info(f"Match {match_id} between {members[0]} and {members[1]} removed")
        self._hub.retire(MESSAGES_TOPIC, match_id)
        self._hub.retire(PROPOSALS_TOPIC, match_id)
        for member in members:
            self._hub.publish(MATCHES_TOPIC, member)
        return True

    async def block(self, blocker_id: str, blocked_id: str, match_id: Optional[str] = None) -> None:
        """
        Block a user for good, and unmatch them when a match id is given.

        There is no unblock. The block applies whether or not the two users
        were ever matched. A given match must be the one between the two
        users; otherwise nothing is recorded.

        Raises:
            PermissionDenied: the blocker is not a member of the match
            InvalidReference: the match is not between the blocker and the blocked user
        """
        if blocker_id == blocked_id:
            raise ValueError("Users cannot block themselves")

        created = await self._record_block(blocker_id, blocked_id, match_id)
        if created:
            logger.info(f"User {blocker_id} blocked {blocked_id}")

        if match_id is not None:
            await self.unmatch(match_id, user_id=blocker_id)

    @with_retry(max_attempts=settings.DB_RETRY_ATTEMPTS)
    async def _record_block(self, blocker_id: str, blocked_id: str, match_id: Optional[str]) -> bool:
        async with transaction(self._session_factory) as session:
            if match_id is not None:
                match = await match_repo.get_by_id(session, match_id)
                if match is not None:
                    if not match.has_member(blocker_id):
                        raise PermissionDenied(f"User {blocker_id} is not a member of match {match_id}")
                    if match.partner_of(blocker_id) != blocked_id:
                        raise InvalidReference(f"Match {match_id} is not between {blocker_id} and {blocked_id}")
            return await block_repo.block_user(session, blocker_id, blocked_id)

    async def blocked_ids(self, user_id: str) -> set[str]:
        """Get the ids of everyone the user blocked."""
        async with self._session_factory() as session:
            return await block_repo.get_blocked_ids(session, user_id)

    async def is_blocked_between(self, user_x: str, user_y: str) -> bool:
        """Whether either user blocked the other."""
        async with self._session_factory() as session:
            return await block_repo.exists_between(session, user_x, user_y)
