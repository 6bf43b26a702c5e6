from typing import Optional

from loguru import logger
from sqlalchemy.ext.asyncio import async_sessionmaker

from src.core.config import get_settings
from src.db.models import ReportReason, UserReport
from src.db.repositories import report_repo
from src.db.utils.session_management import transaction, with_retry

settings = get_settings()


class ReportService:
    """Records reports for later review."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    @with_retry(max_attempts=settings.DB_RETRY_ATTEMPTS)
    async def report(
        self,
        reporter_id: str,
        reported_id: str,
        reason: ReportReason,
        details: Optional[str] = None,
    ) -> UserReport:
        """Record a pending report. Raises ValueError for an unknown reason."""
        if reporter_id == reported_id:
            raise ValueError("Users cannot report themselves")
        reason = ReportReason(reason)

        async with transaction(self._session_factory) as session:
            report = await report_repo.create_report(session, reporter_id, reported_id, reason, details)
        logger.info(f"User {reported_id} reported by {reporter_id} for {reason.value}")
        return report

    async def reports_against(self, user_id: str) -> list[UserReport]:
        async with self._session_factory() as session:
            return await report_repo.get_reports_against(session, user_id)
