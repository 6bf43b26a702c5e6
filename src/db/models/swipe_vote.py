from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.clock import utcnow
from src.db.base import Base


class VoteDirection(str, Enum):
    """Enum for swipe directions."""
    LIKE = "like"
    PASS = "pass"


class SwipeVote(Base):
    """A directional vote. One row per (voter, target); later votes overwrite."""

    __tablename__ = "swipe_votes"

    voter_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    target_id: Mapped[str] = mapped_column(String(128), primary_key=True, index=True)
    direction: Mapped[str] = mapped_column(String(10), nullable=False)
    voted_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        CheckConstraint("voter_id <> target_id", name="no_self_vote"),
    )

    @property
    def is_like(self) -> bool:
        return self.direction == VoteDirection.LIKE.value

    def __repr__(self) -> str:
        return f"<SwipeVote {self.voter_id}->{self.target_id} {self.direction}>"
