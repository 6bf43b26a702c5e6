from datetime import datetime
from typing import Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.diagnostics import track_db
from src.db.models import ConversationMessage, Match, MeetupProposal
from src.db.repositories.base import dialect_insert


@track_db
async def insert_match_if_absent(
    session: AsyncSession,
    match_id: str,
    user_a_id: str,
    user_b_id: str,
    created_at: datetime,
    greeting: Optional[str] = None,
) -> bool:
    """
    Merge-write a match: create it if absent, otherwise leave it untouched.

    Returns:
        True if this call created the row
    """
    stmt = (
        dialect_insert(session, Match)
        .values(
            id=match_id,
            user_a_id=user_a_id,
            user_b_id=user_b_id,
            created_at=created_at,
            last_message_snippet=greeting,
            last_message_at=created_at if greeting else None,
        )
        .on_conflict_do_nothing(index_elements=["id"])
    )
    result = await session.execute(stmt)
    return result.rowcount > 0


@track_db
async def get_by_id(session: AsyncSession, match_id: str) -> Match | None:
    """Get a match by its ID."""
    query = select(Match).where(Match.id == match_id).execution_options(populate_existing=True)
    result = await session.execute(query)
    return result.scalar_one_or_none()


@track_db
async def get_matches_for_user(session: AsyncSession, user_id: str) -> list[Match]:
    """Get all matches for a user, most recent activity first."""
    query = (
        select(Match)
        .where(or_(Match.user_a_id == user_id, Match.user_b_id == user_id))
        .order_by(Match.last_message_at.desc(), Match.created_at.desc())
    )
    result = await session.execute(query)
    return list(result.scalars().all())


@track_db
async def get_partner_ids(session: AsyncSession, user_id: str) -> set[str]:
    """Get the ids of everyone the user is currently matched with."""
    return {match.partner_of(user_id) for match in await get_matches_for_user(session, user_id)}


@track_db
async def touch_last_message(
    session: AsyncSession,
    match_id: str,
    snippet: str,
    sent_at: datetime,
) -> bool:
    """
    Update the match's snippet unless a newer message already did.

    Returns:
        True if the snippet was updated
    """
    stmt = (
        update(Match)
        .where(
            Match.id == match_id,
            or_(Match.last_message_at.is_(None), Match.last_message_at <= sent_at),
        )
        .values(last_message_snippet=snippet, last_message_at=sent_at)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount > 0


@track_db
async def advance_read_cursor(
    session: AsyncSession,
    match: Match,
    user_id: str,
    read_at: datetime,
) -> bool:
    """
    Move a member's read cursor forward. Never moves it backwards.

    Returns:
        True if the cursor advanced
    """
    column = Match.user_a_read_at if user_id == match.user_a_id else Match.user_b_read_at
    stmt = (
        update(Match)
        .where(Match.id == match.id, or_(column.is_(None), column < read_at))
        .values({column.key: read_at})
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount > 0


@track_db
async def delete_match_cascade(session: AsyncSession, match_id: str) -> bool:
    """
    Delete a match together with its messages and proposals.

    Returns:
        True if a match was deleted
    """
    await session.execute(delete(ConversationMessage).where(ConversationMessage.match_id == match_id))
    await session.execute(delete(MeetupProposal).where(MeetupProposal.match_id == match_id))
    result = await session.execute(delete(Match).where(Match.id == match_id))
    return result.rowcount > 0
