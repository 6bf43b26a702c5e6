from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base

SYSTEM_SENDER_ID = "system"


class ConversationMessage(Base):
    """Model representing one entry of a match's append-only conversation."""
    __tablename__ = "conversation_messages"

    # Client-generated id, doubles as the idempotency key for retried appends
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    match_id: Mapped[str] = mapped_column(ForeignKey("matches.id"), index=True)
    sender_id: Mapped[str] = mapped_column(String(128))
    text: Mapped[str] = mapped_column(Text)
    sent_at: Mapped[datetime] = mapped_column(DateTime)
    meetup_proposal_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("meetup_proposals.id"), nullable=True
    )

    __table_args__ = (
        Index("ix_conversation_messages_match_sent", "match_id", "sent_at"),
    )

    @property
    def is_system(self) -> bool:
        return self.sender_id == SYSTEM_SENDER_ID

    def __repr__(self) -> str:
        return f"<ConversationMessage {self.id} match={self.match_id} from={self.sender_id}>"
