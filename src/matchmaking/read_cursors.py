from datetime import datetime
from typing import Optional

from loguru import logger
from sqlalchemy.ext.asyncio import async_sessionmaker

from src.core.clock import Clock, utcnow
from src.core.config import get_settings
from src.db.models import ConversationMessage, Match
from src.db.repositories import match_repo, message_repo
from src.db.utils.session_management import transaction, with_retry
from src.matchmaking.dispatch import MATCHES_TOPIC, MESSAGES_TOPIC, SubscriptionHub
from src.matchmaking.match_detector import require_match

settings = get_settings()


def is_read(match: Match, message: ConversationMessage) -> bool:
    """
    Whether the recipient has seen a message.

    A member's message counts as read once the OTHER member's cursor reaches
    its send time. System messages count as read once either member saw them.
    """
    if message.is_system:
        cursors = [c for c in match.read_cursors.values() if c is not None]
    else:
        cursor = match.cursor_of(match.partner_of(message.sender_id))
        cursors = [cursor] if cursor is not None else []
    return any(cursor >= message.sent_at for cursor in cursors)


class ReadCursorTracker:
    """Per-member read cursors stored on the match record."""

    def __init__(self, session_factory: async_sessionmaker, hub: SubscriptionHub, clock: Clock = utcnow):
        self._session_factory = session_factory
        self._hub = hub
        self._clock = clock

    @with_retry(max_attempts=settings.DB_RETRY_ATTEMPTS)
    async def mark_read(self, match_id: str, user_id: str, at: Optional[datetime] = None) -> bool:
        """
        Move the user's cursor to `at` (default: now). Earlier times are ignored.

        Returns:
            True if the cursor advanced
        """
        read_at = at or self._clock()
        async with transaction(self._session_factory) as session:
            match = await require_match(session, match_id, user_id)
            advanced = await match_repo.advance_read_cursor(session, match, user_id, read_at)

        if advanced:
            logger.debug(f"Read cursor of {user_id} in match {match_id} moved to {read_at}")
            # Read receipts are derived from cursors, so both views change
            self._hub.publish(MESSAGES_TOPIC, match_id)
            for member in match.users:
                self._hub.publish(MATCHES_TOPIC, member)
        return advanced

    async def get_cursor(self, match_id: str, user_id: str) -> Optional[datetime]:
        """Get the user's read cursor, None if they never marked the chat read."""
        async with self._session_factory() as session:
            match = await require_match(session, match_id, user_id)
            return match.cursor_of(user_id)

    async def unread_count(self, match_id: str, user_id: str) -> int:
        """Count messages the user has not seen yet, excluding their own."""
        async with self._session_factory() as session:
            match = await require_match(session, match_id, user_id)
            return await message_repo.count_unread(session, match_id, user_id, match.cursor_of(user_id))
