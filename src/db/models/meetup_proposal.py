from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.core.clock import utcnow
from src.db.base import Base


class ProposalStatus(str, Enum):
    """Enum for meetup proposal statuses."""
    PROPOSED = "proposed"
    ACCEPTED = "accepted"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class MeetupProposal(Base):
    """Model representing a proposal to meet in person."""
    __tablename__ = "meetup_proposals"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    match_id: Mapped[str] = mapped_column(ForeignKey("matches.id"), index=True)
    place: Mapped[str] = mapped_column(String(255))
    scheduled_at: Mapped[datetime] = mapped_column(DateTime)
    status: Mapped[str] = mapped_column(String(20), default=ProposalStatus.PROPOSED.value)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    proposed_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<MeetupProposal {self.id} match={self.match_id} {self.status}>"
