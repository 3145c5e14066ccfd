import uuid
from datetime import datetime

import pytest

from app.config import settings
from app.core.emergency_alert import EmergencyAlertService
from app.core.geofencing import DestinationPoint
from app.models.emergency import PanicAlert
from app.utils import notifications as notifications_module
from app.utils.notifications import EmailService, WebhookService


class StubEmailService:
    def __init__(self, succeed=True):
        self.succeed = succeed
        self.sent = []

    async def send_bulk_email(self, recipients, subject, body, html_body=None):
        self.sent.append((list(recipients), subject, body))
        return {recipient: self.succeed for recipient in recipients}


class StubWebhookService:
    def __init__(self, succeed=True):
        self.succeed = succeed
        self.payloads = []

    async def post(self, payload):
        self.payloads.append(payload)
        return self.succeed


REPORTER = {"full_name": "Asha Rao", "phone": "+919812345678", "emergency_contact": "+919800000000"}


def _alert(message=None):
    return PanicAlert(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        latitude=15.5553,
        longitude=73.7517,
        message=message,
        created_at=datetime(2024, 5, 1, 9, 30),
    )


def test_build_alert_data_labels_location():
    service = EmergencyAlertService(StubEmailService(), StubWebhookService())
    beach = DestinationPoint("d1", "Baga Beach", 15.5553, 73.7517)
    alert = _alert()

    data = service.build_alert_data(alert, REPORTER, [beach])

    assert data["alert_id"] == str(alert.id)
    assert data["status"] == "active"
    assert data["location"]["label"] == "At Baga Beach"
    assert data["message"] == "Panic button pressed"
    assert data["timestamp"] == "2024-05-01T09:30:00+00:00"


def test_alert_text_includes_reporter_and_coordinates():
    service = EmergencyAlertService(StubEmailService(), StubWebhookService())
    data = service.build_alert_data(_alert("Lost near the cliff"), REPORTER)

    text = service.format_alert_text(data)
    html = service.format_alert_html(data)

    assert "Asha Rao" in text
    assert "15.5553, 73.7517" in text
    assert "Lost near the cliff" in html
    assert f"Helpline: {settings.HELPLINE_PHONE}" in text


@pytest.mark.asyncio
async def test_panic_alert_reaches_email_and_webhook(monkeypatch):
    monkeypatch.setattr(settings, "RESPONDER_EMAILS", ["control@police.example", "ops@tourism.example"])
    email, webhook = StubEmailService(), StubWebhookService()
    service = EmergencyAlertService(email, webhook)
    data = service.build_alert_data(_alert(), REPORTER)

    assert await service.handle_panic_alert(data) is True

    recipients, subject, _ = email.sent[0]
    assert recipients == ["control@police.example", "ops@tourism.example"]
    assert subject.startswith("🚨 PANIC ALERT")
    assert webhook.payloads[0]["type"] == "panic_alert"
    assert webhook.payloads[0]["alert_id"] == data["alert_id"]


@pytest.mark.asyncio
async def test_panic_alert_delivered_if_any_channel_succeeds(monkeypatch):
    monkeypatch.setattr(settings, "RESPONDER_EMAILS", ["control@police.example"])
    service = EmergencyAlertService(StubEmailService(succeed=False), StubWebhookService(succeed=True))
    data = service.build_alert_data(_alert(), REPORTER)

    assert await service.handle_panic_alert(data) is True


@pytest.mark.asyncio
async def test_panic_alert_reports_total_failure(monkeypatch):
    monkeypatch.setattr(settings, "RESPONDER_EMAILS", [])
    email = StubEmailService()
    service = EmergencyAlertService(email, StubWebhookService(succeed=False))
    data = service.build_alert_data(_alert(), REPORTER)

    assert await service.handle_panic_alert(data) is False
    assert email.sent == []


@pytest.mark.asyncio
async def test_unconfigured_email_is_skipped():
    service = EmailService()
    assert service.configured is False

    assert await service.send_email("someone@example.com", "Hi", "Body") is False


def test_email_message_has_both_parts():
    service = EmailService()

    message = service.build_message("to@example.com", "Subject", "plain", "<p>html</p>")

    assert message["To"] == "to@example.com"
    assert [part.get_content_type() for part in message.get_payload()] == ["text/plain", "text/html"]


@pytest.mark.asyncio
async def test_unconfigured_webhook_is_skipped():
    assert await WebhookService(url="").post({"type": "panic_alert"}) is False


class _FakePostResponse:
    def __init__(self, status):
        self.status = status

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def text(self):
        return "rejected"


class _FakePostSession:
    def __init__(self, status):
        self.status = status
        self.calls = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def post(self, url, json=None, headers=None, **kwargs):
        self.calls.append((url, json, headers))
        return _FakePostResponse(self.status)


@pytest.mark.asyncio
@pytest.mark.parametrize("status, expected", [(200, True), (202, True), (500, False)])
async def test_webhook_post_status_handling(monkeypatch, status, expected):
    session = _FakePostSession(status)
    monkeypatch.setattr(notifications_module.aiohttp, "ClientSession", lambda *a, **kw: session)
    webhook = WebhookService(url="http://dispatch.test/hook", token="s3cret")

    assert await webhook.post({"type": "panic_alert"}) is expected

    url, payload, headers = session.calls[0]
    assert url == "http://dispatch.test/hook"
    assert payload == {"type": "panic_alert"}
    assert headers["Authorization"] == "Bearer s3cret"
