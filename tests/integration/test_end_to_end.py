from datetime import datetime

import pytest

from src.core.errors import InvalidTransition, NotFound
from src.db.models import ProposalStatus, SYSTEM_SENDER_ID, VoteDirection
from src.matchmaking.match_detector import match_id_for
from src.matchmaking.session_store import SessionStore

LIKE = VoteDirection.LIKE
MEETUP_TIME = datetime(2025, 6, 7, 19, 0)


@pytest.mark.matching
@pytest.mark.meetups
async def test_like_match_propose_accept(match_engine, profiles):
    """Two likes make a match; a proposal reaches the other member and is accepted once."""
    bob = SessionStore(match_engine)
    await bob.start("bob")

    assert await match_engine.swipe("alice", "bob", LIKE) is None
    match = await match_engine.swipe("bob", "alice", LIKE)
    assert match.id == match_id_for("alice", "bob")

    await bob.open_match(match.id)
    await match_engine.hub.drain()

    proposal = await match_engine.meetups.propose(match.id, "Coffee Shop", MEETUP_TIME, proposed_by="alice")
    await match_engine.hub.drain()

    assert [(p.id, p.status) for p in bob.proposals[match.id]] == [(proposal.id, ProposalStatus.PROPOSED.value)]
    announcement = bob.messages[match.id][-1]
    assert announcement.sender_id == SYSTEM_SENDER_ID
    assert announcement.meetup_proposal_id == proposal.id

    accepted = await match_engine.meetups.accept(match.id, proposal.id, user_id="bob")
    assert accepted.status == ProposalStatus.ACCEPTED.value
    await match_engine.hub.drain()
    assert bob.proposals[match.id][0].status == ProposalStatus.ACCEPTED.value

    with pytest.raises(InvalidTransition):
        await match_engine.meetups.accept(match.id, proposal.id, user_id="bob")

    await bob.teardown()


@pytest.mark.access
async def test_block_removes_match_and_hides_user(match_engine, matched_pair):
    """After a block the conversation is gone for both and the user never comes back in discovery."""
    alice = SessionStore(match_engine)
    await alice.start("alice")
    await alice.open_match(matched_pair.id)
    await match_engine.hub.drain()

    await match_engine.access.block("alice", "bob", match_id=matched_pair.id)
    await match_engine.hub.drain()

    for member in ("alice", "bob"):
        with pytest.raises(NotFound):
            await match_engine.conversations.list_messages(matched_pair.id, viewer_id=member)
        with pytest.raises(NotFound):
            await match_engine.conversations.append(matched_pair.id, member, "still there?")
    assert alice.open_match_ids == []

    # Even fresh likes from bob do not bring him back
    await match_engine.swipe("bob", "alice", LIKE)
    candidates = await match_engine.discovery.candidates("alice")
    assert "bob" not in [candidate.id for candidate in candidates]

    await alice.teardown()
