"""
Client-side session state rebuilt purely from pushes.

A SessionStore lives from login (start) to logout (teardown). It never
mutates its own state on writes; everything it holds arrives through the
match-list, message and proposal subscriptions.
"""
from typing import Dict, List, Optional

from loguru import logger

from src.db.models import ConversationMessage, Match, MeetupProposal
from src.matchmaking.dispatch import Subscription
from src.matchmaking.engine import MatchEngine


class SessionStore:
    """Live view of one user's matches and open conversations."""

    def __init__(self, engine: MatchEngine):
        self._engine = engine
        self.user_id: Optional[str] = None
        self.matches: List[Match] = []
        self.messages: Dict[str, List[ConversationMessage]] = {}
        self.proposals: Dict[str, List[MeetupProposal]] = {}
        self._match_subscription: Optional[Subscription] = None
        self._open: Dict[str, List[Subscription]] = {}

    @property
    def is_active(self) -> bool:
        return self.user_id is not None

    @property
    def open_match_ids(self) -> List[str]:
        return list(self._open)

    async def start(self, user_id: str) -> None:
        """Begin a session for a freshly logged-in user."""
        if self.is_active:
            raise RuntimeError(f"Session already started for {self.user_id}")
        self.user_id = user_id
        self._match_subscription = self._engine.matches.subscribe(user_id, self._on_matches)
        logger.info(f"Session started for {user_id}")

    async def open_match(self, match_id: str) -> None:
        """Start following a match's messages and proposals."""
        self._require_active()
        if match_id in self._open:
            return
        # Registered first so the initial deliveries are not dropped
        subscriptions = self._open[match_id] = []
        try:
            subscriptions.append(
                await self._engine.conversations.subscribe(
                    match_id, lambda msgs, mid=match_id: self._on_messages(mid, msgs), viewer_id=self.user_id
                )
            )
            subscriptions.append(
                await self._engine.meetups.subscribe(
                    match_id, lambda props, mid=match_id: self._on_proposals(mid, props), viewer_id=self.user_id
                )
            )
        except Exception:
            self.close_match(match_id)
            raise

    def close_match(self, match_id: str) -> None:
        """Stop following a match and forget its cached state."""
        for subscription in self._open.pop(match_id, []):
            subscription.cancel()
        self.messages.pop(match_id, None)
        self.proposals.pop(match_id, None)

    async def teardown(self) -> None:
        """End the session on logout. Safe to call more than once."""
        for match_id in list(self._open):
            self.close_match(match_id)
        if self._match_subscription is not None:
            self._match_subscription.cancel()
            self._match_subscription = None
        if self.user_id is not None:
            logger.info(f"Session ended for {self.user_id}")
        self.user_id = None
        self.matches = []
        self.messages = {}
        self.proposals = {}

    def _require_active(self) -> None:
        if not self.is_active:
            raise RuntimeError("Session has not been started")

    def _on_matches(self, matches: List[Match]) -> None:
        self.matches = matches
        live = {match.id for match in matches}
        for match_id in list(self._open):
            if match_id not in live:
                logger.info(f"Match {match_id} is gone, detaching it from the session")
                self.close_match(match_id)

    def _on_messages(self, match_id: str, messages: List[ConversationMessage]) -> None:
        if match_id in self._open:
            self.messages[match_id] = messages

    def _on_proposals(self, match_id: str, proposals: List[MeetupProposal]) -> None:
        if match_id in self._open:
            self.proposals[match_id] = proposals
