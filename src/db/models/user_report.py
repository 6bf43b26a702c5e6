from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.core.clock import utcnow
from src.db.base import Base


class ReportReason(str, Enum):
    """Enum for report reasons."""
    SPAM = "spam"
    HARASSMENT = "harassment"
    INAPPROPRIATE = "inappropriate"
    OTHER = "other"


class UserReport(Base):
    """A report filed by one user against another. Review happens elsewhere."""
    __tablename__ = "user_reports"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    reporter_id: Mapped[str] = mapped_column(String(128), index=True)
    reported_id: Mapped[str] = mapped_column(String(128), index=True)
    reason: Mapped[str] = mapped_column(String(20))
    details: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending, reviewed, resolved
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
