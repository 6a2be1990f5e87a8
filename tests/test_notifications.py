"""Tests for templated email notifications."""

import smtplib

from gdpr_kit.models.governance import NotificationStatus
from gdpr_kit.services.notification_service import NotificationService, SmtpMailer, mask_email


class BrokenMailer:
    def deliver(self, recipient, subject, body):
        raise smtplib.SMTPServerDisconnected("connection lost")


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.calls = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.calls.append("starttls")

    def login(self, username, password):
        self.calls.append(("login", username))

    def send_message(self, msg):
        self.calls.append(("send", msg["To"], msg["Subject"]))


def test_mask_email():
    assert mask_email("alex.kim@example.org") == "a***@example.org"
    assert mask_email(None) == "***"
    assert mask_email("not-an-address") == "***"


def test_render_splits_subject(container):
    subject, body = container.notification_service.render(
        "data_request_extended",
        {"request_type": "ACCESS", "request_id": "dsr-1", "due_at": "2030-01-01", "reason": "Large archive"},
    )
    assert subject == "Your data protection request dsr-1 needs more time"
    assert not body.startswith("Subject:")
    assert "Large archive" in body
    assert container.settings.contact_email in body


def test_send_stores_encrypted_recipient(container, mailer):
    record = container.notification_service.send(
        "erasure_completed", "alex.kim@example.org", {"anonymized_at": "2030-01-01 00:00 UTC"}
    )

    assert record.status == NotificationStatus.SENT
    assert record.recipient == "a***@example.org"
    assert mailer.sent[0]["recipient"] == "alex.kim@example.org"

    row = container.store.notifications[record.notification_id]
    assert row["recipient"] != "alex.kim@example.org"
    assert container.cipher.decrypt(row["recipient"]) == "alex.kim@example.org"


def test_delivery_failure_is_recorded(container):
    service = NotificationService(container.store, container.cipher, container.settings, mailer=BrokenMailer())

    record = service.send("erasure_completed", "sam.patel@example.org", {"anonymized_at": "now"})

    assert record.status == NotificationStatus.FAILED
    assert "connection lost" in record.error


def test_smtp_mailer(monkeypatch):
    FakeSMTP.instances.clear()
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)

    SmtpMailer("smtp.example.com", 587, "no-reply@example.com", username="bot", password="pw").deliver(
        "alex.kim@example.org", "Hello", "Body"
    )

    server = FakeSMTP.instances[0]
    assert (server.host, server.port) == ("smtp.example.com", 587)
    assert server.calls == ["starttls", ("login", "bot"), ("send", "alex.kim@example.org", "Hello")]


def test_notifications_endpoint_masks_recipients(client, login, submit_request):
    submit_request()

    assert client.get("/governance/notifications", headers=login("alex")).status_code == 403
    response = client.get("/governance/notifications", headers=login("dpo"))
    assert response.status_code == 200
    assert [n["recipient"] for n in response.json()] == ["a***@example.org"]
