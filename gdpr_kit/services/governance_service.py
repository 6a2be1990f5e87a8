from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import HTTPException

from gdpr_kit.core.config import Settings
from gdpr_kit.core.encryption import FieldCipher
from gdpr_kit.core.rbac import Role
from gdpr_kit.models.data_request import CLOSED_STATUSES
from gdpr_kit.models.governance import ErasureResponse, RetentionCleanupResponse, SubjectAccessResponse
from gdpr_kit.repositories.data_store import DataStore, iso_now, utcnow
from gdpr_kit.services.audit_log_service import AuditLogger
from gdpr_kit.services.auth_service import USER_ENCRYPTED_FIELDS, AuthService
from gdpr_kit.services.consent_service import ConsentService
from gdpr_kit.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"
REQUEST_ENCRYPTED_FIELDS = ("email", "description")
MIN_RETENTION_DAYS = 30

SYSTEM_ACTOR: dict[str, Any] = {"user_id": "system", "username": "system", "role": Role.DPO}


def anonymized_reference(user_id: str) -> str:
    return f"anon-{hashlib.sha256(user_id.encode()).hexdigest()[:10]}"


class GovernanceService:
    def __init__(
        self,
        store: DataStore,
        audit_logger: AuditLogger,
        cipher: FieldCipher,
        settings: Settings,
        auth_service: AuthService,
        consent_service: ConsentService,
        notification_service: NotificationService,
    ) -> None:
        self.store = store
        self.audit_logger = audit_logger
        self.cipher = cipher
        self.settings = settings
        self.auth_service = auth_service
        self.consent_service = consent_service
        self.notification_service = notification_service

    @staticmethod
    def _require_self_or_dpo(actor: dict[str, Any], target_user_id: str, detail: str) -> None:
        if actor["role"] != Role.DPO and actor["user_id"] != target_user_id:
            raise HTTPException(status_code=403, detail=detail)

    def erase_user(
        self,
        actor: dict[str, Any],
        target_user_id: str,
        reason: str | None = None,
    ) -> ErasureResponse:
        self._require_self_or_dpo(actor, target_user_id, "Not allowed to erase this account")

        with self.store.lock:
            user = self.store.users.get(target_user_id)
            if not user:
                raise HTTPException(status_code=404, detail="Target user not found")
            if user.get("anonymized_at"):
                raise HTTPException(status_code=409, detail="User data has already been erased")
            email = self.cipher.decrypt(user.get("email"))
            email_hash = user.get("email_hash")

        anonymized_ref = anonymized_reference(target_user_id)
        anonymized_at = utcnow()

        # The address is about to be destroyed; confirm while it still exists.
        if email:
            self.notification_service.send(
                "erasure_completed",
                email,
                {"anonymized_at": anonymized_at.strftime("%Y-%m-%d %H:%M UTC")},
            )

        with self.store.lock:
            if user.get("anonymized_at"):
                raise HTTPException(status_code=409, detail="User data has already been erased")

            user.update(
                {
                    "username": anonymized_ref,
                    "full_name": "Anonymized User",
                    "email": None,
                    "phone": None,
                    "email_hash": None,
                    "hashed_password": f"!{secrets.token_hex(16)}",
                    "anonymized_at": anonymized_at.isoformat(),
                }
            )
            records_updated = 1

            for row in self.store.consents.values():
                if row.get("user_id") == target_user_id:
                    row.update(
                        {
                            "user_id": anonymized_ref,
                            "preferences": False,
                            "analytics": False,
                            "marketing": False,
                            "withdrawn": True,
                            "ip_hash": None,
                            "user_agent": None,
                        }
                    )
                    records_updated += 1

            for row in self.store.consent_history:
                if row.get("user_id") == target_user_id:
                    row.update({"user_id": anonymized_ref, "ip_hash": None, "user_agent": None})
                    records_updated += 1

            redacted_token = self.cipher.encrypt(REDACTED)
            for row in self.store.data_requests.values():
                linked = row.get("user_id") == target_user_id
                if linked or (email_hash and row.get("email_hash") == email_hash):
                    row.update(
                        {
                            "user_id": anonymized_ref,
                            "email": redacted_token,
                            "description": redacted_token,
                            "email_hash": None,
                            "redacted_at": anonymized_at.isoformat(),
                        }
                    )
                    records_updated += 1

            for row in self.store.notifications.values():
                if email_hash and row.get("recipient_hash") == email_hash:
                    row.update({"recipient": redacted_token, "recipient_hash": None, "body": REDACTED})
                    records_updated += 1

        records_updated += self.audit_logger.redact_subject(target_user_id, anonymized_ref)

        acting_as = anonymized_ref if actor["user_id"] == target_user_id else actor["user_id"]
        self.audit_logger.log_event(
            event_type="governance_event",
            actor_id=acting_as,
            actor_role=actor["role"],
            details={
                "action": "erasure",
                "target_user_id": anonymized_ref,
                "records_updated": records_updated,
                "reason": reason or "",
            },
        )
        logger.info("Erased personal data of %s (%d records)", anonymized_ref, records_updated)

        return ErasureResponse(
            user_id=target_user_id,
            anonymized_ref=anonymized_ref,
            anonymized_at=anonymized_at,
            records_updated=records_updated,
        )

    def export_subject_data(self, actor: dict[str, Any], target_user_id: str) -> SubjectAccessResponse:
        self._require_self_or_dpo(actor, target_user_id, "Not allowed to access this data")

        user = self.auth_service.get_user(target_user_id)
        user_profile = self.auth_service.decrypted_profile(user)
        consent = self.consent_service.current_for_user(target_user_id)

        with self.store.lock:
            history = [dict(r) for r in self.store.consent_history if r.get("user_id") == target_user_id]
            request_rows = [
                self.cipher.decrypt_fields(r, REQUEST_ENCRYPTED_FIELDS)
                for r in self.store.data_requests.values()
                if r.get("user_id") == target_user_id
            ]

        for row in request_rows:
            row.pop("email_hash", None)

        activity = [
            e
            for e in self.audit_logger.read_events()
            if e.get("actor_id") == target_user_id or self.audit_logger.concerns(e, target_user_id)
        ]

        self.audit_logger.log_event(
            event_type="governance_event",
            actor_id=actor["user_id"],
            actor_role=actor["role"],
            details={"action": "subject_access_export", "target_user_id": target_user_id},
        )

        return SubjectAccessResponse(
            generated_at=utcnow(),
            user_profile=user_profile,
            consent=dict(consent) if consent else None,
            consent_history=history,
            data_requests=request_rows,
            activity=activity,
        )

    def retention_cleanup(
        self,
        actor: dict[str, Any],
        dry_run: bool = False,
        audit_retention_days: int | None = None,
    ) -> RetentionCleanupResponse:
        if actor["role"] != Role.DPO:
            raise HTTPException(status_code=403, detail="Only the DPO can run retention cleanup")

        audit_days = audit_retention_days if audit_retention_days is not None else self.settings.audit_retention_days
        if audit_days < MIN_RETENTION_DAYS:
            raise HTTPException(
                status_code=400,
                detail=f"Retention period must be at least {MIN_RETENTION_DAYS} days",
            )

        now = utcnow()
        removed_events = (
            self.audit_logger.events_older_than(audit_days)
            if dry_run
            else self.audit_logger.cleanup_older_than(audit_days)
        )
        removed_history = self._prune_consent_history(
            now - timedelta(days=self.settings.consent_history_retention_days), dry_run
        )
        redacted_requests = self._redact_closed_requests(
            now - timedelta(days=self.settings.closed_request_retention_days), dry_run
        )

        inactive = self._inactive_accounts(now - timedelta(days=self.settings.inactive_account_days))
        if not dry_run:
            for user_id in inactive:
                self.erase_user(SYSTEM_ACTOR, user_id, reason="inactive account retention")

        self.audit_logger.log_event(
            event_type="governance_event",
            actor_id=actor["user_id"],
            actor_role=actor["role"],
            details={
                "action": "retention_cleanup",
                "dry_run": dry_run,
                "audit_retention_days": audit_days,
                "removed_events": removed_events,
                "removed_consent_history": removed_history,
                "redacted_requests": redacted_requests,
                "anonymized_accounts": len(inactive),
            },
        )

        return RetentionCleanupResponse(
            dry_run=dry_run,
            audit_retention_days=audit_days,
            removed_events=removed_events,
            removed_consent_history=removed_history,
            redacted_requests=redacted_requests,
            anonymized_accounts=len(inactive),
        )

    def _prune_consent_history(self, cutoff: datetime, dry_run: bool) -> int:
        with self.store.lock:
            current_ids = {r["consent_id"] for r in self.store.consents.values()}
            kept: list[dict[str, Any]] = []
            removed = 0
            for row in self.store.consent_history:
                expired = datetime.fromisoformat(row["recorded_at"]) < cutoff
                if expired and row["consent_id"] not in current_ids:
                    removed += 1
                else:
                    kept.append(row)
            if not dry_run:
                self.store.consent_history = kept
        return removed

    def _redact_closed_requests(self, cutoff: datetime, dry_run: bool) -> int:
        redacted = 0
        with self.store.lock:
            redacted_token = self.cipher.encrypt(REDACTED)
            for row in self.store.data_requests.values():
                if row["status"] not in CLOSED_STATUSES or row.get("redacted_at"):
                    continue
                resolved_at = row.get("resolved_at")
                if not resolved_at or datetime.fromisoformat(resolved_at) >= cutoff:
                    continue
                redacted += 1
                if not dry_run:
                    row.update(
                        {
                            "email": redacted_token,
                            "description": redacted_token,
                            "email_hash": None,
                            "redacted_at": iso_now(),
                        }
                    )
        return redacted

    def _inactive_accounts(self, cutoff: datetime) -> list[str]:
        with self.store.lock:
            users = list(self.store.users.values())
        inactive: list[str] = []
        for user in users:
            if user["role"] == Role.DPO or user.get("anonymized_at"):
                continue
            last_seen = user.get("last_login_at") or user["created_at"]
            if datetime.fromisoformat(last_seen) < cutoff:
                inactive.append(user["user_id"])
        return inactive

    def rotate_encryption(self, actor: dict[str, Any] | None = None) -> dict[str, int]:
        """Re-encrypt every sealed field under the primary key."""
        actor = actor or SYSTEM_ACTOR
        if actor["role"] != Role.DPO:
            raise HTTPException(status_code=403, detail="Only the DPO can rotate encryption keys")

        counts = {"users": 0, "data_requests": 0, "notifications": 0}
        with self.store.lock:
            for row in self.store.users.values():
                counts["users"] += self.cipher.rotate_fields(row, USER_ENCRYPTED_FIELDS)
            for row in self.store.data_requests.values():
                counts["data_requests"] += self.cipher.rotate_fields(row, REQUEST_ENCRYPTED_FIELDS)
            for row in self.store.notifications.values():
                counts["notifications"] += self.cipher.rotate_fields(row, ("recipient",))

        self.audit_logger.log_event(
            event_type="governance_event",
            actor_id=actor["user_id"],
            actor_role=actor["role"],
            details={"action": "key_rotation", **counts},
        )
        return counts
