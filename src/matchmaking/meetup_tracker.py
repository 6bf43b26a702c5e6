import uuid
from datetime import datetime
from typing import Optional, Tuple, Union

from loguru import logger
from sqlalchemy.ext.asyncio import async_sessionmaker

from src.core.clock import Clock, utcnow
from src.core.config import get_settings
from src.core.errors import InvalidReference, InvalidTransition, NotFound, PermissionDenied
from src.db.models import MeetupProposal, ProposalStatus, SYSTEM_SENDER_ID
from src.db.repositories import block_repo, proposal_repo
from src.db.utils.session_management import transaction, with_retry
from src.matchmaking.conversation_stream import ConversationStream
from src.matchmaking.dispatch import PROPOSALS_TOPIC, Observer, Subscription, SubscriptionHub
from src.matchmaking.match_detector import require_match

settings = get_settings()

# Statuses each transition may start from
TRANSITIONS = {
    ProposalStatus.ACCEPTED: (ProposalStatus.PROPOSED,),
    ProposalStatus.CANCELLED: (ProposalStatus.PROPOSED, ProposalStatus.ACCEPTED),
    ProposalStatus.COMPLETED: (ProposalStatus.ACCEPTED,),
}


def _parse_when(value: Union[datetime, str]) -> datetime:
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid meetup time: {value!r}")


class MeetupProposalTracker:
    """Meetup proposals of a match and their status lifecycle."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        hub: SubscriptionHub,
        stream: ConversationStream,
        clock: Clock = utcnow,
    ):
        self._session_factory = session_factory
        self._hub = hub
        self._stream = stream
        self._clock = clock
        hub.register_topic(PROPOSALS_TOPIC, self._load_proposals)

    async def propose(
        self,
        match_id: str,
        place: str,
        scheduled_at: Union[datetime, str],
        proposed_by: Optional[str] = None,
        notes: Optional[str] = None,
        proposal_id: Optional[str] = None,
    ) -> MeetupProposal:
        """
        Create a proposal and announce it in the conversation.

        The proposal and its announcement (a system message carrying the
        proposal id) are written in one transaction, so either both exist or
        neither does. Retrying with the same proposal_id returns the stored
        proposal instead of creating a second one.

        Raises:
            NotFound: the match does not exist
            PermissionDenied: the proposer is not a member, or a block is in place
            InvalidReference: proposal_id is already used by another match
            TransientIO: storage stayed unavailable; safe to retry with the same proposal_id
        """
        place = (place or "").strip()
        if not place:
            raise ValueError("A meetup needs a place")
        when = _parse_when(scheduled_at)
        proposal_id = proposal_id or uuid.uuid4().hex

        async with self._stream.lock_for(match_id):
            proposal, created, members = await self._create(
                match_id, proposal_id, place, when, proposed_by, notes
            )

        if not created:
            logger.info(f"Duplicate proposal {proposal_id} ignored")
            return proposal

        logger.info(f"Meetup {proposal.id} proposed in match {match_id} at {place}")
        self._stream.publish_change(match_id, members)
        self._hub.publish(PROPOSALS_TOPIC, match_id)
        return proposal

    @with_retry(max_attempts=settings.DB_RETRY_ATTEMPTS)
    async def _create(
        self,
        match_id: str,
        proposal_id: str,
        place: str,
        when: datetime,
        proposed_by: Optional[str],
        notes: Optional[str],
    ) -> Tuple[MeetupProposal, bool, tuple]:
        async with transaction(self._session_factory) as session:
            match = await require_match(session, match_id, proposed_by)
            if await block_repo.exists_between(session, *match.users):
                raise PermissionDenied(f"Match {match_id} is blocked")

            existing = await proposal_repo.get(session, proposal_id)
            if existing is not None:
                if existing.match_id != match_id:
                    raise InvalidReference(f"Proposal id {proposal_id} belongs to another match")
                return existing, False, match.users

            proposal = await proposal_repo.create_proposal(
                session,
                proposal_id=proposal_id,
                match_id=match_id,
                place=place,
                scheduled_at=when,
                created_at=self._clock(),
                proposed_by=proposed_by,
                notes=notes,
            )
            await self._stream.write_message(
                session,
                match_id,
                SYSTEM_SENDER_ID,
                f"Meetup proposed: {place}",
                meetup_proposal_id=proposal.id,
                message_id=f"meetup_{proposal.id}",
            )
        return proposal, True, match.users

    async def accept(self, match_id: str, proposal_id: str, user_id: Optional[str] = None) -> MeetupProposal:
        """Move a proposal from proposed to accepted."""
        return await self._transition(match_id, proposal_id, ProposalStatus.ACCEPTED, user_id)

    async def cancel(self, match_id: str, proposal_id: str, user_id: Optional[str] = None) -> MeetupProposal:
        """Cancel a proposed or accepted meetup."""
        return await self._transition(match_id, proposal_id, ProposalStatus.CANCELLED, user_id)

    async def complete(self, match_id: str, proposal_id: str, user_id: Optional[str] = None) -> MeetupProposal:
        """Mark an accepted meetup as having happened."""
        return await self._transition(match_id, proposal_id, ProposalStatus.COMPLETED, user_id)

    async def _transition(
        self,
        match_id: str,
        proposal_id: str,
        to_status: ProposalStatus,
        user_id: Optional[str],
    ) -> MeetupProposal:
        attempts = 0

        @with_retry(max_attempts=settings.DB_RETRY_ATTEMPTS)
        async def apply() -> MeetupProposal:
            nonlocal attempts
            attempts += 1
            async with transaction(self._session_factory) as session:
                await require_match(session, match_id, user_id)
                proposal = await proposal_repo.get(session, proposal_id)
                if proposal is None or proposal.match_id != match_id:
                    raise NotFound(f"Proposal {proposal_id} not found in match {match_id}")

                moved = await proposal_repo.transition(session, proposal_id, TRANSITIONS[to_status], to_status)
                if not moved:
                    # A failed attempt may have committed before losing its connection
                    if attempts > 1 and proposal.status == to_status.value:
                        return proposal
                    raise InvalidTransition(proposal_id, proposal.status, to_status.value)
                await session.refresh(proposal)
            return proposal

        proposal = await apply()
        logger.info(f"Meetup {proposal_id} in match {match_id} is now {to_status.value}")
        self._hub.publish(PROPOSALS_TOPIC, match_id)
        return proposal

    async def list_proposals(self, match_id: str, viewer_id: Optional[str] = None) -> list[MeetupProposal]:
        """Get the proposals of a match, oldest first."""
        async with self._session_factory() as session:
            await require_match(session, match_id, viewer_id)
            return await proposal_repo.get_match_proposals(session, match_id)

    async def latest_proposal(self, match_id: str) -> Optional[MeetupProposal]:
        """Get the most recent proposal of a match, if any."""
        proposals = await self._load_proposals(match_id)
        return proposals[-1] if proposals else None

    async def subscribe(self, match_id: str, observer: Observer, viewer_id: Optional[str] = None) -> Subscription:
        """Push the full proposal list of a match to `observer` on every change."""
        if viewer_id is not None:
            async with self._session_factory() as session:
                await require_match(session, match_id, viewer_id)
        return self._hub.subscribe(PROPOSALS_TOPIC, match_id, observer)

    async def _load_proposals(self, match_id: str) -> list[MeetupProposal]:
        async with self._session_factory() as session:
            return await proposal_repo.get_match_proposals(session, match_id)
