from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from threading import RLock
from typing import Any

from gdpr_kit.core.config import settings

SUBJECT_KEYS = ("target_user_id", "subject_id", "user_id")


class AuditLogger:
    """Append-only JSON-lines trail of compliance-relevant events."""

    def __init__(self, event_path: Path | None = None) -> None:
        self.event_path = event_path or settings.audit_log_path
        self.event_path.parent.mkdir(parents=True, exist_ok=True)
        self.lock = RLock()

    def log_event(
        self,
        event_type: str,
        actor_id: str,
        actor_role: str,
        details: dict[str, Any],
        timestamp: datetime | None = None,
    ) -> None:
        payload = {
            "timestamp": (timestamp or datetime.now(timezone.utc)).isoformat(),
            "event_type": event_type,
            "actor_id": actor_id,
            "actor_role": str(getattr(actor_role, "value", actor_role)),
            "details": details,
        }
        line = json.dumps(payload, default=str)
        with self.lock:
            with self.event_path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")

    def read_events(self) -> list[dict[str, Any]]:
        if not self.event_path.exists():
            return []

        with self.lock:
            lines = self.event_path.read_text(encoding="utf-8").splitlines()

        events: list[dict[str, Any]] = []
        for raw in lines:
            if not raw.strip():
                continue
            try:
                events.append(json.loads(raw))
            except json.JSONDecodeError:
                continue
        return events

    @staticmethod
    def concerns(event: dict[str, Any], subject_id: str) -> bool:
        details = event.get("details") or {}
        return any(details.get(key) == subject_id for key in SUBJECT_KEYS)

    def query(
        self,
        event_type: str | None = None,
        actor_id: str | None = None,
        subject_id: str | None = None,
        since: datetime | None = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        matched: list[dict[str, Any]] = []
        for event in self.read_events():
            if event_type and event.get("event_type") != event_type:
                continue
            if actor_id and event.get("actor_id") != actor_id:
                continue
            if subject_id and not self.concerns(event, subject_id):
                continue
            if since:
                try:
                    ts = datetime.fromisoformat(event["timestamp"])
                except (KeyError, ValueError):
                    continue
                if since.tzinfo is None:
                    since = since.replace(tzinfo=timezone.utc)
                if ts < since:
                    continue
            matched.append(event)
        return matched[-limit:]

    def events_older_than(self, retention_days: int) -> int:
        cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
        count = 0
        for event in self.read_events():
            try:
                if datetime.fromisoformat(event["timestamp"]) < cutoff:
                    count += 1
            except (KeyError, ValueError):
                continue
        return count

    def cleanup_older_than(self, retention_days: int) -> int:
        if retention_days < 1:
            return 0

        cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
        kept: list[str] = []
        removed = 0

        if not self.event_path.exists():
            return 0

        with self.lock:
            lines = self.event_path.read_text(encoding="utf-8").splitlines()
            for raw in lines:
                if not raw.strip():
                    continue
                try:
                    event = json.loads(raw)
                    ts = datetime.fromisoformat(event["timestamp"])
                except (json.JSONDecodeError, KeyError, ValueError):
                    kept.append(raw)
                    continue

                if ts >= cutoff:
                    kept.append(raw)
                else:
                    removed += 1

            self.event_path.write_text("\n".join(kept) + ("\n" if kept else ""), encoding="utf-8")

        return removed

    def redact_subject(self, user_id: str, replacement: str) -> int:
        """Replace every reference to ``user_id`` in past events."""
        if not self.event_path.exists():
            return 0

        rewritten = 0
        with self.lock:
            lines = self.event_path.read_text(encoding="utf-8").splitlines()
            output: list[str] = []
            for raw in lines:
                if not raw.strip():
                    continue
                try:
                    event = json.loads(raw)
                except json.JSONDecodeError:
                    output.append(raw)
                    continue

                changed = False
                if event.get("actor_id") == user_id:
                    event["actor_id"] = replacement
                    changed = True
                details = event.get("details") or {}
                for key in SUBJECT_KEYS:
                    if details.get(key) == user_id:
                        details[key] = replacement
                        changed = True
                path = details.get("path")
                if isinstance(path, str) and user_id in path.split("/"):
                    parts = [replacement if part == user_id else part for part in path.split("/")]
                    details["path"] = "/".join(parts)
                    changed = True

                if changed:
                    rewritten += 1
                    output.append(json.dumps(event, default=str))
                else:
                    output.append(raw)

            self.event_path.write_text("\n".join(output) + ("\n" if output else ""), encoding="utf-8")

        return rewritten
