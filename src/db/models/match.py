from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import CheckConstraint, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.core.clock import utcnow
from src.db.base import Base


class Match(Base):
    """Model representing a match between two users.

    The id is derived from the sorted pair, so user_a_id is always the smaller
    id. Read cursors live on the record itself, one column per member, so the
    two members never overwrite each other's cursor.
    """
    __tablename__ = "matches"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_a_id: Mapped[str] = mapped_column(String(128), index=True)
    user_b_id: Mapped[str] = mapped_column(String(128), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    last_message_snippet: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_message_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    user_a_read_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    user_b_read_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("user_a_id < user_b_id", name="sorted_pair"),
    )

    @property
    def users(self) -> tuple:
        return (self.user_a_id, self.user_b_id)

    def has_member(self, user_id: str) -> bool:
        return user_id in (self.user_a_id, self.user_b_id)

    def partner_of(self, user_id: str) -> str:
        """Return the other member of the match."""
        if user_id == self.user_a_id:
            return self.user_b_id
        if user_id == self.user_b_id:
            return self.user_a_id
        raise ValueError(f"User {user_id} is not a member of match {self.id}")

    @property
    def read_cursors(self) -> Dict[str, Optional[datetime]]:
        return {
            self.user_a_id: self.user_a_read_at,
            self.user_b_id: self.user_b_read_at,
        }

    def cursor_of(self, user_id: str) -> Optional[datetime]:
        return self.read_cursors.get(user_id)

    def __repr__(self) -> str:
        return f"<Match {self.id} ({self.user_a_id}, {self.user_b_id})>"
