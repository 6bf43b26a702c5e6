"""
Safety alerts sent to a user's trusted contacts before or during a meetup.
"""
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Protocol

import aiohttp
from loguru import logger
from sqlalchemy.ext.asyncio import async_sessionmaker

from src.core.config import Settings, get_settings
from src.core.text_generation import compose_safety_message
from src.db.repositories import profile_repo, proposal_repo
from src.matchmaking.match_detector import require_match

Composer = Callable[..., Awaitable[str]]

ALERT_SUBJECT = "Safety alert"


class AlertDelivery(Protocol):
    async def deliver(self, recipients: List[str], subject: str, body: str) -> bool:
        ...


class LoggingAlertDelivery:
    """Writes alerts to the log. Default when no webhook is configured."""

    async def deliver(self, recipients: List[str], subject: str, body: str) -> bool:
        logger.warning(f"[ALERT] To: {', '.join(recipients)} | {subject}\n{body}")
        return True


class WebhookAlertDelivery:
    """Posts alerts as JSON to a mail/SMS relay."""

    def __init__(self, url: str, timeout_seconds: float = 5.0):
        self.url = url
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def deliver(self, recipients: List[str], subject: str, body: str) -> bool:
        payload = {"recipients": recipients, "subject": subject, "body": body}
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(self.url, json=payload) as response:
                    if response.status < 300:
                        logger.info(f"Safety alert delivered to {len(recipients)} contacts")
                        return True
                    logger.error(f"Alert relay answered with status code {response.status}")
                    return False
        except (aiohttp.ClientError, TimeoutError) as e:
            logger.error(f"Alert relay unreachable: {e}")
            return False


def build_alert_delivery(settings: Optional[Settings] = None) -> AlertDelivery:
    """Pick the delivery channel from settings."""
    settings = settings or get_settings()
    if settings.ALERT_WEBHOOK_URL:
        return WebhookAlertDelivery(settings.ALERT_WEBHOOK_URL, settings.ALERT_TIMEOUT_SECONDS)
    return LoggingAlertDelivery()


@dataclass
class SafetyAlert:
    match_id: str
    user_id: str
    body: str
    recipients: List[str] = field(default_factory=list)
    delivered: bool = False


class SafetyAlertService:
    """Composes an alert about a match's latest meetup and hands it to delivery."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        delivery: Optional[AlertDelivery] = None,
        composer: Composer = compose_safety_message,
    ):
        self._session_factory = session_factory
        self._delivery = delivery or build_alert_delivery()
        self._composer = composer

    async def trigger(self, match_id: str, user_id: str) -> SafetyAlert:
        """
        Alert the user's trusted contacts about who they are meeting, where and when.

        Delivery problems are logged and reported through `delivered`, never raised.
        """
        async with self._session_factory() as session:
            match = await require_match(session, match_id, user_id)
            user = await profile_repo.get_profile(session, user_id)
            friend = await profile_repo.get_profile(session, match.partner_of(user_id))
            proposals = await proposal_repo.get_match_proposals(session, match_id)

        latest = proposals[-1] if proposals else None
        place = latest.place if latest else "Unknown Location"
        when = latest.scheduled_at.isoformat(sep=" ", timespec="minutes") if latest else "Now"
        friend_name = friend.name if friend.name != "Anonymous" else "your match"

        body = await self._composer(user.name, friend_name, place, when, latest.notes if latest else None)
        recipients = list(user.trusted_contacts or [])
        alert = SafetyAlert(match_id=match_id, user_id=user_id, body=body, recipients=recipients)

        if not recipients:
            logger.warning(f"User {user_id} triggered a safety alert with no trusted contacts")
            return alert

        try:
            alert.delivered = await self._delivery.deliver(recipients, ALERT_SUBJECT, body)
        except Exception as e:
            logger.error(f"Safety alert delivery failed for user {user_id}: {e}")
        return alert
