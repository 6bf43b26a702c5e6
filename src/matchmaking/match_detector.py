"""
Mutual-like detection and match creation.

Both members' clients may detect reciprocity at the same moment. Instead of a
lock, the match id is a pure function of the unordered pair and creation is a
merge-write (INSERT ... ON CONFLICT DO NOTHING): every evaluation that sees
both likes writes the same row, so exactly one match exists per pair.
"""
import hashlib
from typing import Optional, Tuple

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.clock import Clock, utcnow
from src.core.config import get_settings
from src.core.errors import NotFound, PermissionDenied
from src.db.models import Match, VoteDirection
from src.db.repositories import block_repo, match_repo, vote_repo
from src.db.utils.session_management import transaction, with_retry
from src.matchmaking.dispatch import MATCHES_TOPIC, SubscriptionHub, Subscription, Observer

settings = get_settings()


def match_id_for(user_x: str, user_y: str) -> str:
    """Deterministic match id for an unordered pair of user ids."""
    if user_x == user_y:
        raise ValueError("A match needs two different users")
    low, high = sorted((user_x, user_y))
    # Length prefix keeps the encoding unambiguous for ids containing separators
    key = f"{len(low)}:{low}|{high}".encode("utf-8")
    return hashlib.sha256(key).hexdigest()[:40]


async def require_match(session: AsyncSession, match_id: str, user_id: Optional[str] = None) -> Match:
    """
    Load a match, checking membership when a user is given.

    Raises:
        NotFound: the match does not exist
        PermissionDenied: user_id is not one of its members
    """
    match = await match_repo.get_by_id(session, match_id)
    if match is None:
        raise NotFound(f"Match {match_id} not found")
    if user_id is not None and not match.has_member(user_id):
        raise PermissionDenied(f"User {user_id} is not a member of match {match_id}")
    return match


class MatchDetector:
    """Turns reciprocal likes into a single canonical match record."""

    def __init__(self, session_factory: async_sessionmaker, hub: SubscriptionHub, clock: Clock = utcnow):
        self._session_factory = session_factory
        self._hub = hub
        self._clock = clock
        hub.register_topic(MATCHES_TOPIC, self._load_matches)

    async def evaluate(self, voter_id: str, target_id: str, direction: VoteDirection) -> Optional[Match]:
        """Return the match for the pair if both users like each other, else None."""
        match, _ = await self.evaluate_and_create(voter_id, target_id, direction)
        return match

    @with_retry(max_attempts=settings.DB_RETRY_ATTEMPTS)
    async def evaluate_and_create(
        self,
        voter_id: str,
        target_id: str,
        direction: VoteDirection,
    ) -> Tuple[Optional[Match], bool]:
        """
        Evaluate a vote and merge-write the match when it is mutual.

        Returns:
            (match or None, True if this call created the match row)
        """
        if VoteDirection(direction) is VoteDirection.PASS:
            return None, False

        match_id = match_id_for(voter_id, target_id)
        async with transaction(self._session_factory) as session:
            own = await vote_repo.get_vote(session, voter_id, target_id)
            reciprocal = await vote_repo.get_vote(session, target_id, voter_id)
            if own is None or not own.is_like or reciprocal is None or not reciprocal.is_like:
                return None, False

            if await block_repo.exists_between(session, voter_id, target_id):
                logger.info(f"Mutual like between {voter_id} and {target_id} ignored: block in place")
                return None, False

            user_a_id, user_b_id = sorted((voter_id, target_id))
            created = await match_repo.insert_match_if_absent(
                session,
                match_id=match_id,
                user_a_id=user_a_id,
                user_b_id=user_b_id,
                created_at=self._clock(),
                greeting=settings.MATCH_GREETING,
            )
            match = await match_repo.get_by_id(session, match_id)

        if created:
            logger.info(f"Match {match_id} created between {user_a_id} and {user_b_id}")
            self.publish_membership(match)
        else:
            logger.debug(f"Match {match_id} already existed, evaluation converged")
        return match, created

    async def get_match(self, match_id: str, viewer_id: Optional[str] = None) -> Match:
        """Get a match, optionally checking that the viewer belongs to it."""
        async with self._session_factory() as session:
            return await require_match(session, match_id, viewer_id)

    async def list_matches(self, user_id: str) -> list[Match]:
        """Get the user's matches, most recent activity first."""
        return await self._load_matches(user_id)

    def subscribe(self, user_id: str, observer: Observer) -> Subscription:
        """Push the user's full match list on every change to it."""
        return self._hub.subscribe(MATCHES_TOPIC, user_id, observer)

    def publish_membership(self, match: Match) -> None:
        """Notify both members that their match list changed."""
        for user_id in match.users:
            self._hub.publish(MATCHES_TOPIC, user_id)

    async def _load_matches(self, user_id: str) -> list[Match]:
        async with self._session_factory() as session:
            return await match_repo.get_matches_for_user(session, user_id)
