from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.diagnostics import track_db
from src.db.models import MeetupProposal, ProposalStatus
from src.db.repositories.base import BaseRepository


class MeetupProposalRepository(BaseRepository[MeetupProposal]):
    """Repository for meetup proposals."""

    def __init__(self):
        super().__init__(MeetupProposal)

    @track_db
    async def create_proposal(
        self,
        session: AsyncSession,
        proposal_id: str,
        match_id: str,
        place: str,
        scheduled_at: datetime,
        created_at: datetime,
        proposed_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> MeetupProposal:
        """Create a proposal in the proposed status."""
        return await self.create(
            session,
            data={
                "id": proposal_id,
                "match_id": match_id,
                "place": place,
                "scheduled_at": scheduled_at,
                "status": ProposalStatus.PROPOSED.value,
                "proposed_by": proposed_by,
                "notes": notes,
                "created_at": created_at,
            }
        )

    @track_db
    async def get_match_proposals(self, session: AsyncSession, match_id: str) -> list[MeetupProposal]:
        """Get all proposals of a match, oldest first."""
        return await self.list_where(
            session,
            MeetupProposal.match_id == match_id,
            order_by=(MeetupProposal.created_at.asc(), MeetupProposal.id.asc()),
        )

    @track_db
    async def transition(
        self,
        session: AsyncSession,
        proposal_id: str,
        allowed_from: tuple,
        to_status: ProposalStatus,
    ) -> bool:
        """
        Compare-and-set the status of a proposal.

        Returns:
            True if the proposal was in one of `allowed_from` and has moved
        """
        stmt = (
            update(MeetupProposal)
            .where(
                MeetupProposal.id == proposal_id,
                MeetupProposal.status.in_([ProposalStatus(s).value for s in allowed_from]),
            )
            .values(status=ProposalStatus(to_status).value)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount > 0


proposal_repo = MeetupProposalRepository()
