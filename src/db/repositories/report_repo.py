import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.clock import utcnow
from src.core.diagnostics import track_db
from src.db.models import ReportReason, UserReport
from src.db.repositories.base import BaseRepository


class UserReportRepository(BaseRepository[UserReport]):
    """Repository for user reports."""

    def __init__(self):
        super().__init__(UserReport)

    @track_db
    async def create_report(
        self,
        session: AsyncSession,
        reporter_id: str,
        reported_id: str,
        reason: ReportReason,
        details: Optional[str] = None,
    ) -> UserReport:
        """Record a pending report."""
        return await self.create(
            session,
            data={
                "id": uuid.uuid4().hex,
                "reporter_id": reporter_id,
                "reported_id": reported_id,
                "reason": ReportReason(reason).value,
                "details": details or "",
                "status": "pending",
                "created_at": utcnow(),
            }
        )

    @track_db
    async def get_reports_against(self, session: AsyncSession, reported_id: str) -> list[UserReport]:
        """Get all reports filed against a user, newest first."""
        return await self.list_where(
            session,
            UserReport.reported_id == reported_id,
            order_by=(UserReport.created_at.desc(),),
        )


report_repo = UserReportRepository()
