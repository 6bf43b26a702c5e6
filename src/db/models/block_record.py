from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.clock import utcnow
from src.db.base import Base


class BlockRecord(Base):
    """Model representing a blocked user relationship."""
    __tablename__ = "block_records"

    blocker_id: Mapped[str] = mapped_column(String(128), primary_key=True)  # Who blocked
    blocked_id: Mapped[str] = mapped_column(String(128), primary_key=True, index=True)  # Who is blocked
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
