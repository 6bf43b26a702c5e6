from typing import List, Optional

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base


class UserProfile(Base):
    """Profile data used for discovery, icebreakers and safety alerts."""

    __tablename__ = "user_profiles"

    # Stable id issued by the identity provider
    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), default="Anonymous")
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    city: Mapped[str] = mapped_column(String(100), default="", index=True)
    bio: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    avatar: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    interests: Mapped[List[str]] = mapped_column(JSON, default=list)
    trusted_contacts: Mapped[List[str]] = mapped_column(JSON, default=list)  # email addresses

    def __repr__(self) -> str:
        return f"<UserProfile {self.id} ({self.city})>"
