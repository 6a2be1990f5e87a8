from __future__ import annotations

from datetime import datetime, timezone
from threading import RLock
from typing import Any


class DataStore:
    """Simple in-memory repository for users, consent and request state."""

    def __init__(self) -> None:
        self.lock = RLock()
        self.users: dict[str, dict[str, Any]] = {}
        self.consents: dict[str, dict[str, Any]] = {}
        self.consent_history: list[dict[str, Any]] = []
        self.data_requests: dict[str, dict[str, Any]] = {}
        self.notifications: dict[str, dict[str, Any]] = {}

    def find_user_by_email_hash(self, email_hash: str) -> dict[str, Any] | None:
        with self.lock:
            return next(
                (u for u in self.users.values() if u.get("email_hash") == email_hash),
                None,
            )


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso_now() -> str:
    return utcnow().isoformat()
