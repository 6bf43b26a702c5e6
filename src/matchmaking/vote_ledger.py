from typing import Optional

from loguru import logger
from sqlalchemy.ext.asyncio import async_sessionmaker

from src.core.config import get_settings
from src.db.models import SwipeVote, VoteDirection
from src.db.repositories import vote_repo
from src.db.utils.session_management import transaction, with_retry

settings = get_settings()


class VoteLedger:
    """Stores each user's latest vote on each other user."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    @with_retry(max_attempts=settings.DB_RETRY_ATTEMPTS)
    async def record(self, voter_id: str, target_id: str, direction: VoteDirection) -> SwipeVote:
        """Record a vote. Repeating or changing a vote overwrites the old one."""
        if not voter_id or not target_id:
            raise ValueError("Both voter_id and target_id are required")
        if voter_id == target_id:
            raise ValueError("Users cannot vote on themselves")
        direction = VoteDirection(direction)

        async with transaction(self._session_factory) as session:
            vote = await vote_repo.record_vote(session, voter_id, target_id, direction)
        logger.info(f"Vote recorded: {voter_id} -> {target_id} ({direction.value})")
        return vote

    async def get(self, voter_id: str, target_id: str) -> Optional[SwipeVote]:
        """Get the current vote of voter_id on target_id."""
        async with self._session_factory() as session:
            return await vote_repo.get_vote(session, voter_id, target_id)
