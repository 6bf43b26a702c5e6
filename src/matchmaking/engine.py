from typing import Awaitable, Callable, List, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import async_sessionmaker

from src.core.clock import Clock, utcnow
from src.core.errors import MatchEngineError
from src.core.text_generation import generate_icebreakers
from src.db.models import Match, SYSTEM_SENDER_ID, VoteDirection
from src.db.repositories import profile_repo
from src.matchmaking.access_control import AccessController
from src.matchmaking.conversation_stream import ConversationStream
from src.matchmaking.discovery import Discovery
from src.matchmaking.dispatch import SubscriptionHub
from src.matchmaking.match_detector import MatchDetector
from src.matchmaking.meetup_tracker import MeetupProposalTracker
from src.matchmaking.read_cursors import ReadCursorTracker
from src.matchmaking.reporting import ReportService
from src.matchmaking.safety import AlertDelivery, SafetyAlertService
from src.matchmaking.vote_ledger import VoteLedger

IcebreakerGenerator = Callable[[List[str], List[str]], Awaitable[List[str]]]


def format_icebreakers(icebreakers: List[str]) -> str:
    return "💡 Icebreaker ideas:\n" + "\n".join(f"• {line}" for line in icebreakers)


class MatchEngine:
    """Wires the matchmaking components around one session factory and hub."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        hub: Optional[SubscriptionHub] = None,
        clock: Clock = utcnow,
        alert_delivery: Optional[AlertDelivery] = None,
        icebreakers: IcebreakerGenerator = generate_icebreakers,
    ):
        self.session_factory = session_factory
        self.hub = hub or SubscriptionHub()
        self.votes = VoteLedger(session_factory)
        self.matches = MatchDetector(session_factory, self.hub, clock)
        self.conversations = ConversationStream(session_factory, self.hub, clock)
        self.meetups = MeetupProposalTracker(session_factory, self.hub, self.conversations, clock)
        self.read_cursors = ReadCursorTracker(session_factory, self.hub, clock)
        self.access = AccessController(session_factory, self.hub)
        self.discovery = Discovery(session_factory)
        self.safety = SafetyAlertService(session_factory, alert_delivery)
        self.reports = ReportService(session_factory)
        self._icebreakers = icebreakers

    async def swipe(self, voter_id: str, target_id: str, direction: VoteDirection) -> Optional[Match]:
        """
        Record a vote and return the match if it completed a mutual like.

        Only the evaluation that actually created the match posts icebreakers,
        so they appear once even when both sides detect the match.
        """
        await self.votes.record(voter_id, target_id, direction)
        match, created = await self.matches.evaluate_and_create(voter_id, target_id, direction)
        if created:
            await self._post_icebreakers(match)
        return match

    async def _post_icebreakers(self, match: Match) -> None:
        async with self.session_factory() as session:
            profile_a = await profile_repo.get_profile(session, match.user_a_id)
            profile_b = await profile_repo.get_profile(session, match.user_b_id)

        icebreakers = await self._icebreakers(list(profile_a.interests or []), list(profile_b.interests or []))
        try:
            await self.conversations.append(
                match.id,
                SYSTEM_SENDER_ID,
                format_icebreakers(icebreakers),
                message_id=f"icebreakers_{match.id}",
            )
        except MatchEngineError as e:
            # The match stands even if the suggestions could not be posted
            logger.error(f"Could not post icebreakers to match {match.id}: {e}")

    async def close(self) -> None:
        await self.hub.close()
