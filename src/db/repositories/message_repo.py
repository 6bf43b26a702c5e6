from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.diagnostics import track_db
from src.db.models import ConversationMessage
from src.db.repositories.base import BaseRepository


class ConversationMessageRepository(BaseRepository[ConversationMessage]):
    """Repository for conversation messages."""

    def __init__(self):
        super().__init__(ConversationMessage)

    @track_db
    async def create_message(
        self,
        session: AsyncSession,
        message_id: str,
        match_id: str,
        sender_id: str,
        text: str,
        sent_at: datetime,
        meetup_proposal_id: Optional[str] = None,
    ) -> ConversationMessage:
        """
        Append a message to a match's conversation.

        Args:
            session: Database session
            message_id: Client-generated id of the message
            match_id: ID of the match
            sender_id: ID of the sender, or "system"
            text: Message body
            sent_at: Ordering timestamp, already made monotonic by the caller
            meetup_proposal_id: Proposal this message announces, if any

        Returns:
            The created message
        """
        return await self.create(
            session,
            data={
                "id": message_id,
                "match_id": match_id,
                "sender_id": sender_id,
                "text": text,
                "sent_at": sent_at,
                "meetup_proposal_id": meetup_proposal_id,
            }
        )

    @track_db
    async def get_match_messages(self, session: AsyncSession, match_id: str) -> list[ConversationMessage]:
        """
        Get all messages of a match, oldest first.

        Args:
            session: Database session
            match_id: ID of the match

        Returns:
            List of messages ordered by sent_at
        """
        return await self.list_where(
            session,
            ConversationMessage.match_id == match_id,
            order_by=(ConversationMessage.sent_at.asc(), ConversationMessage.id.asc()),
        )

    @track_db
    async def get_latest_sent_at(self, session: AsyncSession, match_id: str) -> datetime | None:
        """Get the send time of the newest message in a match."""
        query = select(func.max(ConversationMessage.sent_at)).where(ConversationMessage.match_id == match_id)
        result = await session.execute(query)
        return result.scalar_one_or_none()

    @track_db
    async def count_unread(
        self,
        session: AsyncSession,
        match_id: str,
        user_id: str,
        read_at: Optional[datetime],
    ) -> int:
        """
        Count messages not written by user_id that are newer than their cursor.

        Args:
            session: Database session
            match_id: ID of the match
            user_id: ID of the reader
            read_at: The reader's cursor, None if they never opened the chat

        Returns:
            Number of unread messages
        """
        query = select(func.count()).select_from(ConversationMessage).where(
            ConversationMessage.match_id == match_id,
            ConversationMessage.sender_id != user_id,
        )
        if read_at is not None:
            query = query.where(ConversationMessage.sent_at > read_at)
        result = await session.execute(query)
        return result.scalar_one() or 0


message_repo = ConversationMessageRepository()
