from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.clock import utcnow
from src.core.diagnostics import track_db
from src.db.models import SwipeVote, VoteDirection
from src.db.repositories.base import BaseRepository


class SwipeVoteRepository(BaseRepository[SwipeVote]):
    """Repository for swipe votes."""

    def __init__(self):
        super().__init__(SwipeVote)

    @track_db
    async def record_vote(
        self,
        session: AsyncSession,
        voter_id: str,
        target_id: str,
        direction: VoteDirection,
    ) -> SwipeVote:
        """
        Record a vote, overwriting any earlier vote for the same pair.

        Args:
            session: Database session
            voter_id: ID of the user voting
            target_id: ID of the user being voted on
            direction: like or pass

        Returns:
            The stored vote
        """
        await self.upsert(
            session,
            data={
                "voter_id": voter_id,
                "target_id": target_id,
                "direction": VoteDirection(direction).value,
                "voted_at": utcnow(),
            },
            index_elements=("voter_id", "target_id"),
            update_fields=("direction", "voted_at"),
        )
        return await self.get_vote(session, voter_id, target_id)

    @track_db
    async def get_vote(self, session: AsyncSession, voter_id: str, target_id: str) -> SwipeVote | None:
        """Get the vote cast by voter_id on target_id, if any."""
        return await session.get(SwipeVote, (voter_id, target_id), populate_existing=True)

    @track_db
    async def get_targets_by_direction(self, session: AsyncSession, voter_id: str, direction: VoteDirection) -> set[str]:
        """Get the ids a voter has voted on with the given direction."""
        votes = await self.list_where(
            session,
            SwipeVote.voter_id == voter_id,
            SwipeVote.direction == VoteDirection(direction).value,
        )
        return {vote.target_id for vote in votes}

    @track_db
    async def downgrade_pair(self, session: AsyncSession, user_x: str, user_y: str) -> int:
        """
        Turn both directions' likes between two users into passes.

        Returns:
            Number of votes changed
        """
        stmt = (
            update(SwipeVote)
            .where(
                (
                    ((SwipeVote.voter_id == user_x) & (SwipeVote.target_id == user_y)) |
                    ((SwipeVote.voter_id == user_y) & (SwipeVote.target_id == user_x))
                ) &
                (SwipeVote.direction == VoteDirection.LIKE.value)
            )
            .values(direction=VoteDirection.PASS.value, voted_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount


vote_repo = SwipeVoteRepository()
