from __future__ import annotations

import logging
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Any, Protocol
from uuid import uuid4

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from gdpr_kit.core.config import Settings
from gdpr_kit.core.encryption import FieldCipher, pseudonymize
from gdpr_kit.models.governance import NotificationRecord, NotificationStatus
from gdpr_kit.repositories.data_store import DataStore, iso_now


logger = logging.getLogger(__name__)

SUBJECT_MARKER = "Subject:"


class Mailer(Protocol):
    def deliver(self, recipient: str, subject: str, body: str) -> None: ...


class OutboxMailer:
    """Keeps messages in the store only; used when no SMTP host is set."""

    def deliver(self, recipient: str, subject: str, body: str) -> None:
        logger.info("Outbox delivery of '%s'", subject)


class SmtpMailer:
    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def deliver(self, recipient: str, subject: str, body: str) -> None:
        msg = MIMEMultipart()
        msg["From"] = self.sender
        msg["To"] = recipient
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain", "utf-8"))

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username:
                server.login(self.username, self.password)
            server.send_message(msg)


def build_mailer(settings: Settings) -> Mailer:
    if not settings.smtp_host:
        return OutboxMailer()
    return SmtpMailer(
        host=settings.smtp_host,
        port=settings.smtp_port,
        sender=settings.mail_from,
        username=settings.smtp_user,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
    )


def mask_email(email: str | None) -> str:
    if not email or "@" not in email:
        return "***"
    local, domain = email.split("@", 1)
    return f"{local[:1]}***@{domain}"


class NotificationService:
    def __init__(
        self,
        store: DataStore,
        cipher: FieldCipher,
        settings: Settings,
        mailer: Mailer | None = None,
        template_dir: Path | None = None,
    ) -> None:
        self.store = store
        self.cipher = cipher
        self.settings = settings
        self.mailer = mailer or build_mailer(settings)
        self.env = Environment(
            loader=FileSystemLoader(str((template_dir or settings.template_dir) / "email")),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )

    def render(self, template: str, context: dict[str, Any]) -> tuple[str, str]:
        """Render ``<template>.txt``; its first line carries the subject."""
        text = self.env.get_template(f"{template}.txt").render(
            controller_name=self.settings.controller_name,
            contact_email=self.settings.contact_email,
            **context,
        )
        first, _, body = text.partition("\n")
        if not first.startswith(SUBJECT_MARKER):
            raise ValueError(f"Email template '{template}' has no subject line")
        return first[len(SUBJECT_MARKER):].strip(), body.lstrip("\n")

    def send(self, template: str, recipient: str, context: dict[str, Any]) -> NotificationRecord:
        subject, body = self.render(template, context)
        notification_id = f"ntf-{uuid4().hex[:10]}"
        row = {
            "notification_id": notification_id,
            "template": template,
            "recipient": self.cipher.encrypt(recipient),
            "recipient_hash": pseudonymize(recipient, self.settings.pseudonym_salt),
            "subject": subject,
            "body": body,
            "status": NotificationStatus.QUEUED,
            "created_at": iso_now(),
            "error": None,
        }
        with self.store.lock:
            self.store.notifications[notification_id] = row

        try:
            self.mailer.deliver(recipient, subject, body)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Delivery of %s (%s) failed: %s", notification_id, template, exc)
            row["status"] = NotificationStatus.FAILED
            row["error"] = str(exc)
        else:
            row["status"] = NotificationStatus.SENT

        return self._to_model(row)

    def list_notifications(self) -> list[NotificationRecord]:
        with self.store.lock:
            rows = list(self.store.notifications.values())
        return [self._to_model(r) for r in rows]

    def _to_model(self, row: dict[str, Any]) -> NotificationRecord:
        return NotificationRecord(
            notification_id=row["notification_id"],
            template=row["template"],
            recipient=mask_email(self.cipher.decrypt(row["recipient"])),
            subject=row["subject"],
            status=row["status"],
            created_at=datetime.fromisoformat(row["created_at"]),
            error=row.get("error"),
        )
