"""
Ordered, append-only conversation per match.

sent_at is strictly increasing within a match: appends to one match are
serialized by a per-match lock, and a timestamp that does not advance past the
previous message is bumped by one microsecond.
"""
import asyncio
import uuid
from collections import defaultdict
from typing import Dict, Optional, Tuple

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.clock import Clock, next_after, utcnow
from src.core.config import get_settings
from src.core.errors import InvalidReference, PermissionDenied
from src.db.models import ConversationMessage, SYSTEM_SENDER_ID
from src.db.repositories import block_repo, match_repo, message_repo, proposal_repo
from src.db.utils.session_management import transaction, with_retry
from src.matchmaking.dispatch import (
    MATCHES_TOPIC,
    MESSAGES_TOPIC,
    Observer,
    Subscription,
    SubscriptionHub,
)
from src.matchmaking.match_detector import require_match

settings = get_settings()


def make_snippet(text: str, limit: int) -> str:
    """Single-line preview of a message for the match list."""
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    return flat[:limit - 1].rstrip() + "…"


class ConversationStream:
    """Appends messages to a match and pushes the ordered list to observers."""

    def __init__(self, session_factory: async_sessionmaker, hub: SubscriptionHub, clock: Clock = utcnow):
        self._session_factory = session_factory
        self._hub = hub
        self._clock = clock
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        hub.register_topic(MESSAGES_TOPIC, self._load_messages)

    async def append(
        self,
        match_id: str,
        sender_id: str,
        text: str,
        meetup_proposal_id: Optional[str] = None,
        message_id: Optional[str] = None,
    ) -> ConversationMessage:
        """
        Append a message to a match's conversation.

        Args:
            match_id: ID of the match
            sender_id: A member of the match, or "system"
            text: Message body
            meetup_proposal_id: Proposal of the same match this message announces
            message_id: Client-generated id; retrying with the same id never duplicates

        Returns:
            The stored message (the earlier one if message_id was already used)

        Raises:
            NotFound: the match does not exist
            PermissionDenied: the sender is not a member, or a block is in place
            InvalidReference: the proposal belongs to another match
            TransientIO: storage stayed unavailable; safe to retry with the same message_id
        """
        text = (text or "").strip()
        if not text:
            raise ValueError("Message text cannot be empty")
        message_id = message_id or uuid.uuid4().hex

        async with self.lock_for(match_id):
            message, created, members = await self._append(
                match_id, sender_id, text, meetup_proposal_id, message_id
            )

        if created:
            logger.debug(f"Message {message.id} appended to match {match_id} by {sender_id}")
            self.publish_change(match_id, members)
        else:
            logger.info(f"Duplicate append of message {message_id} ignored")
        return message

    def lock_for(self, match_id: str) -> asyncio.Lock:
        """Lock serializing every write that appends to a match's conversation."""
        return self._locks[match_id]

    def publish_change(self, match_id: str, members: tuple) -> None:
        """Notify message observers and both members' match lists."""
        self._hub.publish(MESSAGES_TOPIC, match_id)
        for user_id in members:
            self._hub.publish(MATCHES_TOPIC, user_id)

    @with_retry(max_attempts=settings.DB_RETRY_ATTEMPTS)
    async def _append(
        self,
        match_id: str,
        sender_id: str,
        text: str,
        meetup_proposal_id: Optional[str],
        message_id: str,
    ) -> Tuple[ConversationMessage, bool, tuple]:
        async with transaction(self._session_factory) as session:
            is_system = sender_id == SYSTEM_SENDER_ID
            match = await require_match(session, match_id, None if is_system else sender_id)

            if not is_system and await block_repo.exists_between(session, *match.users):
                raise PermissionDenied(f"Match {match_id} is blocked")

            message, created = await self.write_message(
                session, match_id, sender_id, text, meetup_proposal_id, message_id
            )
        return message, created, match.users

    async def write_message(
        self,
        session: AsyncSession,
        match_id: str,
        sender_id: str,
        text: str,
        meetup_proposal_id: Optional[str],
        message_id: str,
    ) -> Tuple[ConversationMessage, bool]:
        """
        Store a message inside the caller's transaction.

        The caller must hold lock_for(match_id), must have checked the match and
        the sender, and publishes with publish_change() after committing.

        Returns:
            (message, True if it was written by this call)
        """
        existing = await message_repo.get(session, message_id)
        if existing is not None:
            if existing.match_id != match_id:
                raise InvalidReference(f"Message id {message_id} belongs to another match")
            return existing, False

        if meetup_proposal_id is not None:
            proposal = await proposal_repo.get(session, meetup_proposal_id)
            if proposal is None or proposal.match_id != match_id:
                raise InvalidReference(
                    f"Proposal {meetup_proposal_id} does not belong to match {match_id}"
                )

        previous = await message_repo.get_latest_sent_at(session, match_id)
        sent_at = next_after(self._clock(), previous)
        message = await message_repo.create_message(
            session,
            message_id=message_id,
            match_id=match_id,
            sender_id=sender_id,
            text=text,
            sent_at=sent_at,
            meetup_proposal_id=meetup_proposal_id,
        )
        await match_repo.touch_last_message(
            session, match_id, make_snippet(text, settings.SNIPPET_MAX_LENGTH), sent_at
        )
        return message, True

    async def list_messages(self, match_id: str, viewer_id: Optional[str] = None) -> list[ConversationMessage]:
        """Get the ordered conversation, checking the viewer's membership when given."""
        async with self._session_factory() as session:
            await require_match(session, match_id, viewer_id)
            return await message_repo.get_match_messages(session, match_id)

    async def subscribe(self, match_id: str, observer: Observer, viewer_id: Optional[str] = None) -> Subscription:
        """
        Push the full ordered message list to `observer` on every change.

        The observer also receives the current list right after subscribing,
        and an empty list once the match is gone.
        """
        if viewer_id is not None:
            async with self._session_factory() as session:
                await require_match(session, match_id, viewer_id)
        return self._hub.subscribe(MESSAGES_TOPIC, match_id, observer)

    async def _load_messages(self, match_id: str) -> list[ConversationMessage]:
        async with self._session_factory() as session:
            return await message_repo.get_match_messages(session, match_id)
