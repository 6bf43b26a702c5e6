from datetime import datetime

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from src.core.config import Settings
from src.core.errors import PermissionDenied
from src.db.models import ReportReason
from src.matchmaking.safety import (
    ALERT_SUBJECT,
    LoggingAlertDelivery,
    SafetyAlertService,
    WebhookAlertDelivery,
    build_alert_delivery,
)


@pytest.mark.safety
async def test_alert_without_meetup_uses_placeholders(match_engine, matched_pair, alert_delivery):
    alert = await match_engine.safety.trigger(matched_pair.id, "alice")

    assert alert.delivered is True
    assert alert.recipients == ["mum@example.com", "+351900000000"]
    assert "Alice" in alert.body
    assert "Meeting: Bob" in alert.body
    assert "Location: Unknown Location" in alert.body
    assert "Time: Now" in alert.body

    assert alert_delivery.sent == [
        {"recipients": alert.recipients, "subject": ALERT_SUBJECT, "body": alert.body}
    ]


@pytest.mark.safety
async def test_alert_describes_the_latest_meetup(match_engine, matched_pair, alert_delivery):
    await match_engine.meetups.propose(matched_pair.id, "Park", datetime(2025, 6, 1, 12, 0))
    await match_engine.meetups.propose(matched_pair.id, "Jazz Bar", datetime(2025, 6, 7, 19, 0))

    alert = await match_engine.safety.trigger(matched_pair.id, "alice")

    assert "Location: Jazz Bar" in alert.body
    assert "Time: 2025-06-07 19:00" in alert.body


@pytest.mark.safety
async def test_alert_without_trusted_contacts_is_not_sent(match_engine, matched_pair, alert_delivery):
    alert = await match_engine.safety.trigger(matched_pair.id, "bob")

    assert alert.delivered is False
    assert alert.recipients == []
    assert alert_delivery.sent == []


@pytest.mark.safety
async def test_delivery_failure_is_reported_not_raised(test_session_maker, matched_pair):
    class BrokenDelivery:
        async def deliver(self, recipients, subject, body):
            raise ConnectionError("relay down")

    service = SafetyAlertService(test_session_maker, delivery=BrokenDelivery())
    alert = await service.trigger(matched_pair.id, "alice")

    assert alert.delivered is False
    assert alert.body


@pytest.mark.safety
async def test_outsider_cannot_trigger_an_alert(match_engine, matched_pair):
    with pytest.raises(PermissionDenied):
        await match_engine.safety.trigger(matched_pair.id, "carol")


@pytest.mark.safety
async def test_webhook_delivery_posts_json():
    received = []

    async def relay(request):
        received.append(await request.json())
        return web.json_response({"ok": True})

    app = web.Application()
    app.router.add_post("/alerts", relay)
    server = TestServer(app)
    await server.start_server()
    try:
        delivery = WebhookAlertDelivery(str(server.make_url("/alerts")), timeout_seconds=2)
        assert await delivery.deliver(["mum@example.com"], "Safety alert", "body") is True
    finally:
        await server.close()

    assert received == [{"recipients": ["mum@example.com"], "subject": "Safety alert", "body": "body"}]


@pytest.mark.safety
async def test_webhook_delivery_reports_relay_errors():
    async def relay(request):
        return web.Response(status=502)

    app = web.Application()
    app.router.add_post("/alerts", relay)
    server = TestServer(app)
    await server.start_server()
    try:
        delivery = WebhookAlertDelivery(str(server.make_url("/alerts")), timeout_seconds=2)
        assert await delivery.deliver(["mum@example.com"], "Safety alert", "body") is False
    finally:
        await server.close()


@pytest.mark.safety
def test_delivery_channel_follows_settings():
    assert isinstance(build_alert_delivery(Settings(_env_file=None, ALERT_WEBHOOK_URL="")), LoggingAlertDelivery)
    webhook = build_alert_delivery(Settings(_env_file=None, ALERT_WEBHOOK_URL="http://relay.local/alerts"))
    assert isinstance(webhook, WebhookAlertDelivery)
    assert webhook.url == "http://relay.local/alerts"


@pytest.mark.safety
async def test_report_is_stored_as_pending(match_engine, profiles):
    report = await match_engine.reports.report("alice", "dave", ReportReason.SPAM, details="sells things")

    assert report.status == "pending"
    assert report.reason == ReportReason.SPAM.value

    reports = await match_engine.reports.reports_against("dave")
    assert [r.id for r in reports] == [report.id]
    assert reports[0].details == "sells things"


@pytest.mark.safety
async def test_report_reason_must_be_known(match_engine, profiles):
    with pytest.raises(ValueError):
        await match_engine.reports.report("alice", "dave", "boring")


@pytest.mark.safety
async def test_self_report_is_rejected(match_engine, profiles):
    with pytest.raises(ValueError):
        await match_engine.reports.report("alice", "alice", ReportReason.OTHER)
