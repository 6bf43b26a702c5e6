import pytest

from src.db.models import VoteDirection
from src.db.repositories import profile_repo
from src.db.utils.session_management import transaction
from src.matchmaking.discovery import Discovery


def ids(candidates):
    return [candidate.id for candidate in candidates]


@pytest.mark.access
async def test_candidates_come_from_the_users_city(match_engine, profiles):
    candidates = await match_engine.discovery.candidates("alice")

    assert ids(candidates) == ["bob", "carol"]
    assert candidates[0].name == "Bob"
    assert candidates[0].interests == ["jazz", "chess"]


@pytest.mark.access
async def test_explicit_city_overrides_profile(match_engine, profiles):
    assert ids(await match_engine.discovery.candidates("alice", city="Porto")) == ["dave"]


@pytest.mark.access
async def test_unknown_user_without_city_gets_nothing(match_engine, profiles):
    assert await match_engine.discovery.candidates("newcomer") == []


@pytest.mark.access
async def test_current_matches_are_not_candidates(match_engine, matched_pair):
    assert ids(await match_engine.discovery.candidates("alice")) == ["carol"]


@pytest.mark.access
async def test_blocks_hide_users_both_ways(match_engine, profiles):
    await match_engine.access.block("carol", "alice")

    assert ids(await match_engine.discovery.candidates("alice")) == ["bob"]
    assert ids(await match_engine.discovery.candidates("carol")) == ["bob"]


@pytest.mark.access
async def test_passed_users_return_by_default(match_engine, profiles):
    await match_engine.votes.record("alice", "bob", VoteDirection.PASS)
    assert "bob" in ids(await match_engine.discovery.candidates("alice"))


@pytest.mark.access
async def test_passed_users_can_be_excluded(test_session_maker, match_engine, profiles):
    await match_engine.votes.record("alice", "bob", VoteDirection.PASS)

    discovery = Discovery(test_session_maker, exclude_passed=True)
    assert ids(await discovery.candidates("alice")) == ["carol"]


@pytest.mark.access
async def test_profile_without_name_falls_back_to_email(test_session_maker, match_engine, profiles):
    async with transaction(test_session_maker) as session:
        await profile_repo.save_profile(session, "erin", name="", email="erin@example.com", city="Lisbon")

    candidates = await match_engine.discovery.candidates("alice")
    assert candidates[-1].id == "erin"
    assert candidates[-1].name == "erin@example.com"
