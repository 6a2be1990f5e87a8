from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from fastapi import HTTPException

from gdpr_kit.core.config import Settings
from gdpr_kit.core.encryption import pseudonymize
from gdpr_kit.models.consent import (
    OPTIONAL_CATEGORIES,
    BannerCategory,
    BannerConfig,
    ConsentCategory,
    ConsentChoices,
    ConsentRecord,
    ConsentSource,
    ConsentStatus,
)
from gdpr_kit.repositories.data_store import DataStore, iso_now
from gdpr_kit.services.audit_log_service import AuditLogger

BANNER_CATEGORIES = [
    BannerCategory(
        key=ConsentCategory.NECESSARY,
        label="Strictly necessary",
        description="Required for login, security and remembering your cookie choices. Always active.",
        required=True,
    ),
    BannerCategory(
        key=ConsentCategory.PREFERENCES,
        label="Preferences",
        description="Remember settings such as language and region.",
    ),
    BannerCategory(
        key=ConsentCategory.ANALYTICS,
        label="Analytics",
        description="Help us understand how the site is used through aggregated statistics.",
    ),
    BannerCategory(
        key=ConsentCategory.MARKETING,
        label="Marketing",
        description="Personalised advertising and measurement by our partners.",
    ),
]

# Third-party tags gated by consent category; necessary tags always load.
SCRIPT_TAGS: list[tuple[ConsentCategory, dict[str, str]]] = [
    (ConsentCategory.NECESSARY, {"name": "csrf-guard", "src": "/static/js/csrf.js"}),
    (ConsentCategory.PREFERENCES, {"name": "locale-memory", "src": "/static/js/locale.js"}),
    (ConsentCategory.ANALYTICS, {"name": "site-analytics", "src": "https://analytics.example.com/tag.js"}),
    (ConsentCategory.MARKETING, {"name": "ad-pixel", "src": "https://ads.example.com/pixel.js"}),
]


class ConsentService:
    def __init__(self, store: DataStore, audit_logger: AuditLogger, settings: Settings) -> None:
        self.store = store
        self.audit_logger = audit_logger
        self.settings = settings

    def banner_config(self) -> BannerConfig:
        return BannerConfig(
            message=(
                f"{self.settings.controller_name} uses cookies. Strictly necessary cookies are always on; "
                "everything else is off until you choose otherwise. You can change your mind at any time."
            ),
            policy_version=self.settings.policy_version,
            privacy_policy_url=self.settings.privacy_policy_url,
            categories=BANNER_CATEGORIES,
        )

    def record_consent(
        self,
        subject_id: str,
        choices: ConsentChoices,
        source: ConsentSource = ConsentSource.BANNER,
        expected_revision: int | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        user: dict[str, Any] | None = None,
        withdrawn: bool = False,
    ) -> ConsentStatus:
        with self.store.lock:
            current = self.store.consents.get(subject_id)
            current_revision = current["revision"] if current else 0
            if expected_revision is not None and expected_revision != current_revision:
                raise HTTPException(
                    status_code=409,
                    detail=(
                        f"Consent was changed elsewhere (revision {current_revision}, "
                        f"expected {expected_revision}). Reload and try again."
                    ),
                )

            linked_user_id = user["user_id"] if user else (current or {}).get("user_id")
            row = {
                "consent_id": f"cns-{uuid4().hex[:10]}",
                "subject_id": subject_id,
                "user_id": linked_user_id,
                "necessary": True,
                "preferences": choices.preferences,
                "analytics": choices.analytics,
                "marketing": choices.marketing,
                "policy_version": self.settings.policy_version,
                "revision": current_revision + 1,
                "source": source,
                "ip_hash": pseudonymize(ip_address, self.settings.pseudonym_salt) if ip_address else None,
                "user_agent": (user_agent or "")[:256] or None,
                "recorded_at": iso_now(),
                "withdrawn": withdrawn,
            }
            self.store.consents[subject_id] = row
            self.store.consent_history.append(dict(row))

        self.audit_logger.log_event(
            event_type="consent_withdrawn" if withdrawn else "consent_recorded",
            actor_id=linked_user_id or "anonymous",
            actor_role=user["role"] if user else "VISITOR",
            details={
                "subject_id": subject_id,
                "user_id": linked_user_id,
                "revision": row["revision"],
                "source": source.value,
                "allowed": [c.value for c in self._allowed(row)],
            },
        )
        return self._to_status(row)

    def accept_all(self, subject_id: str, **meta: Any) -> ConsentStatus:
        choices = ConsentChoices(preferences=True, analytics=True, marketing=True)
        return self.record_consent(subject_id, choices, source=ConsentSource.ACCEPT_ALL, **meta)

    def reject_all(self, subject_id: str, **meta: Any) -> ConsentStatus:
        return self.record_consent(subject_id, ConsentChoices(), source=ConsentSource.REJECT_ALL, **meta)

    def withdraw_consent(self, subject_id: str, **meta: Any) -> ConsentStatus:
        return self.record_consent(
            subject_id,
            ConsentChoices(),
            source=ConsentSource.WITHDRAWAL,
            withdrawn=True,
            **meta,
        )

    def get_consent(self, subject_id: str) -> ConsentStatus:
        with self.store.lock:
            row = self.store.consents.get(subject_id)
        if not row:
            return ConsentStatus(
                subject_id=subject_id,
                renewal_required=True,
                allowed_categories=[ConsentCategory.NECESSARY],
            )
        return self._to_status(row)

    def consent_history(self, subject_id: str) -> list[ConsentRecord]:
        with self.store.lock:
            rows = [r for r in self.store.consent_history if r["subject_id"] == subject_id]
        rows.sort(key=lambda r: r["revision"])
        return [self._to_record(r) for r in rows]

    def is_allowed(self, subject_id: str, category: ConsentCategory) -> bool:
        if category == ConsentCategory.NECESSARY:
            return True
        return category in self.get_consent(subject_id).allowed_categories

    def current_for_user(self, user_id: str) -> dict[str, Any] | None:
        with self.store.lock:
            rows = [r for r in self.store.consents.values() if r.get("user_id") == user_id]
        if not rows:
            return None
        return max(rows, key=lambda r: r["recorded_at"])

    def allowed_scripts(self, subject_id: str) -> list[dict[str, str]]:
        allowed = set(self.get_consent(subject_id).allowed_categories)
        return [dict(tag, category=category.value) for category, tag in SCRIPT_TAGS if category in allowed]

    def renewal_required(self, row: dict[str, Any]) -> bool:
        if row.get("policy_version") != self.settings.policy_version:
            return True
        recorded_at = datetime.fromisoformat(row["recorded_at"])
        max_age = timedelta(days=self.settings.consent_max_age_days)
        return recorded_at < datetime.now(timezone.utc) - max_age

    def _allowed(self, row: dict[str, Any]) -> list[ConsentCategory]:
        allowed = [ConsentCategory.NECESSARY]
        if self.renewal_required(row):
            return allowed
        allowed.extend(c for c in OPTIONAL_CATEGORIES if row.get(c.value))
        return allowed

    def _to_status(self, row: dict[str, Any]) -> ConsentStatus:
        return ConsentStatus(
            **self._to_record(row).model_dump(),
            renewal_required=self.renewal_required(row),
            allowed_categories=self._allowed(row),
        )

    @staticmethod
    def _to_record(row: dict[str, Any]) -> ConsentRecord:
        return ConsentRecord(
            consent_id=row["consent_id"],
            subject_id=row["subject_id"],
            user_id=row.get("user_id"),
            necessary=True,
            preferences=row["preferences"],
            analytics=row["analytics"],
            marketing=row["marketing"],
            policy_version=row["policy_version"],
            revision=row["revision"],
            source=row["source"],
            recorded_at=datetime.fromisoformat(row["recorded_at"]),
            withdrawn=row.get("withdrawn", False),
        )
