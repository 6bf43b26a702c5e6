from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.clock import utcnow
from src.core.diagnostics import track_db
from src.db.models import BlockRecord
from src.db.repositories.base import BaseRepository


class BlockRecordRepository(BaseRepository[BlockRecord]):
    """Repository for blocked users."""

    def __init__(self):
        super().__init__(BlockRecord)

    @track_db
    async def block_user(
        self,
        session: AsyncSession,
        blocker_id: str,
        blocked_id: str,
    ) -> bool:
        """
        Block a user. Blocking twice keeps the original record.

        Args:
            session: Database session
            blocker_id: ID of the user doing the blocking
            blocked_id: ID of the user being blocked

        Returns:
            True if a new block was recorded
        """
        return await self.insert_ignore(
            session,
            data={
                "blocker_id": blocker_id,
                "blocked_id": blocked_id,
                "created_at": utcnow(),
            },
            index_elements=("blocker_id", "blocked_id"),
        )

    @track_db
    async def exists_between(self, session: AsyncSession, user_x: str, user_y: str) -> bool:
        """Check whether either user has blocked the other."""
        query = select(BlockRecord.blocker_id).where(
            or_(
                (BlockRecord.blocker_id == user_x) & (BlockRecord.blocked_id == user_y),
                (BlockRecord.blocker_id == user_y) & (BlockRecord.blocked_id == user_x),
            )
        ).limit(1)
        result = await session.execute(query)
        return result.first() is not None

    @track_db
    async def get_blocked_ids(self, session: AsyncSession, blocker_id: str) -> set[str]:
        """Get the ids of all users blocked by a user."""
        query = select(BlockRecord.blocked_id).where(BlockRecord.blocker_id == blocker_id)
        result = await session.execute(query)
        return set(result.scalars().all())

    @track_db
    async def get_blocker_ids(self, session: AsyncSession, blocked_id: str) -> set[str]:
        """Get the ids of all users who blocked a user."""
        query = select(BlockRecord.blocker_id).where(BlockRecord.blocked_id == blocked_id)
        result = await session.execute(query)
        return set(result.scalars().all())


block_repo = BlockRecordRepository()
