from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from fastapi import HTTPException

from gdpr_kit.core.config import Settings
from gdpr_kit.core.encryption import FieldCipher, pseudonymize
from gdpr_kit.core.rbac import Role, has_permission
from gdpr_kit.models.data_request import (
    CLOSED_STATUSES,
    OPEN_STATUSES,
    DataRequestCreate,
    DataRequestReceipt,
    DataRequestRecord,
    RequestStatus,
    RequestType,
)
from gdpr_kit.repositories.data_store import DataStore, utcnow
from gdpr_kit.services.audit_log_service import AuditLogger
from gdpr_kit.services.governance_service import REQUEST_ENCRYPTED_FIELDS, GovernanceService
from gdpr_kit.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[RequestStatus, set[RequestStatus]] = {
    RequestStatus.PENDING: {RequestStatus.IN_PROGRESS, RequestStatus.REJECTED},
    RequestStatus.IN_PROGRESS: {RequestStatus.COMPLETED, RequestStatus.REJECTED},
    RequestStatus.COMPLETED: set(),
    RequestStatus.REJECTED: set(),
}


def _fmt(value: str) -> str:
    return datetime.fromisoformat(value).strftime("%Y-%m-%d")


class DataRequestService:
    def __init__(
        self,
        store: DataStore,
        audit_logger: AuditLogger,
        cipher: FieldCipher,
        settings: Settings,
        notification_service: NotificationService,
        governance_service: GovernanceService,
    ) -> None:
        self.store = store
        self.audit_logger = audit_logger
        self.cipher = cipher
        self.settings = settings
        self.notification_service = notification_service
        self.governance_service = governance_service

    @staticmethod
    def _require_processor(actor: dict[str, Any]) -> None:
        if not has_permission(actor["role"], "data_request:process"):
            raise HTTPException(status_code=403, detail="Not allowed to process data requests")

    def submit(self, payload: DataRequestCreate, ip_address: str | None = None) -> DataRequestReceipt:
        email = payload.email.strip()
        email_hash = pseudonymize(email, self.settings.pseudonym_salt)
        linked_user = self.store.find_user_by_email_hash(email_hash)

        submitted_at = utcnow()
        due_at = submitted_at + timedelta(days=self.settings.request_response_days)
        request_id = f"dsr-{uuid4().hex[:12]}"
        row = {
            "request_id": request_id,
            "request_type": payload.request_type,
            "email": email,
            "email_hash": email_hash,
            "description": payload.description,
            "status": RequestStatus.PENDING,
            "submitted_at": submitted_at.isoformat(),
            "due_at": due_at.isoformat(),
            "extended": False,
            "updated_at": submitted_at.isoformat(),
            "resolved_at": None,
            "resolution_note": None,
            "handled_by": None,
            "user_id": linked_user["user_id"] if linked_user else None,
        }
        row = self.cipher.encrypt_fields(row, REQUEST_ENCRYPTED_FIELDS)

        with self.store.lock:
            self.store.data_requests[request_id] = row

        self.notification_service.send(
            "data_request_received",
            email,
            {
                "request_id": request_id,
                "request_type": payload.request_type.value,
                "submitted_at": _fmt(row["submitted_at"]),
                "due_at": _fmt(row["due_at"]),
            },
        )
        self.audit_logger.log_event(
            event_type="data_request_submitted",
            actor_id=row["user_id"] or "anonymous",
            actor_role="REQUESTER",
            details={
                "request_id": request_id,
                "request_type": payload.request_type.value,
                "user_id": row["user_id"],
                "ip_hash": pseudonymize(ip_address, self.settings.pseudonym_salt) if ip_address else None,
            },
        )

        return DataRequestReceipt(request_id=request_id, status=RequestStatus.PENDING, due_at=due_at)

    def get_status(self, request_id: str, email: str) -> DataRequestReceipt:
        email_hash = pseudonymize(email, self.settings.pseudonym_salt)
        with self.store.lock:
            row = self.store.data_requests.get(request_id)
        # Same answer for unknown ids and wrong emails.
        if not row or row.get("email_hash") != email_hash:
            raise HTTPException(status_code=404, detail="Data request not found")
        return DataRequestReceipt(
            request_id=row["request_id"],
            status=row["status"],
            due_at=datetime.fromisoformat(row["due_at"]),
        )

    def list_requests(
        self,
        actor: dict[str, Any],
        status: RequestStatus | None = None,
        overdue_only: bool = False,
    ) -> list[DataRequestRecord]:
        self._require_processor(actor)
        with self.store.lock:
            rows = list(self.store.data_requests.values())

        records = [self._to_model(r) for r in rows]
        if status:
            records = [r for r in records if r.status == status]
        if overdue_only:
            records = [r for r in records if r.overdue]
        records.sort(key=lambda r: r.due_at)

        self.audit_logger.log_event(
            event_type="governance_event",
            actor_id=actor["user_id"],
            actor_role=actor["role"],
            details={"action": "data_requests_listed", "count": len(records)},
        )
        return records

    def get_request(self, actor: dict[str, Any], request_id: str) -> DataRequestRecord:
        self._require_processor(actor)
        return self._to_model(self._get_row(request_id))

    def _get_row(self, request_id: str) -> dict[str, Any]:
        with self.store.lock:
            row = self.store.data_requests.get(request_id)
        if not row:
            raise HTTPException(status_code=404, detail="Data request not found")
        return row

    def transition(
        self,
        actor: dict[str, Any],
        request_id: str,
        new_status: RequestStatus,
        note: str | None = None,
    ) -> DataRequestRecord:
        self._require_processor(actor)

        with self.store.lock:
            row = self._get_row(request_id)
            current = RequestStatus(row["status"])
            if new_status not in ALLOWED_TRANSITIONS[current]:
                raise HTTPException(
                    status_code=409,
                    detail=f"Cannot move a {current.value} request to {new_status.value}",
                )
            if new_status in CLOSED_STATUSES and not (note or "").strip():
                raise HTTPException(status_code=400, detail="A resolution note is required to close a request")

            request_type = RequestType(row["request_type"])
            if (
                new_status == RequestStatus.COMPLETED
                and request_type == RequestType.ERASURE
                and self._erasable(row.get("user_id"))
                and actor["role"] != Role.DPO
            ):
                raise HTTPException(status_code=403, detail="Only the DPO can complete erasure requests")

            now = utcnow().isoformat()
            row["status"] = new_status
            row["updated_at"] = now
            row["handled_by"] = actor["user_id"]
            if new_status in CLOSED_STATUSES:
                row["resolved_at"] = now
                row["resolution_note"] = note
            linked_user_id = row.get("user_id")
            # Erasure and retention leave no address to write to.
            email = None if row.get("redacted_at") else self.cipher.decrypt(row["email"])

        if email:
            self.notification_service.send(
                "data_request_status",
                email,
                {
                    "request_id": request_id,
                    "request_type": request_type.value,
                    "status": new_status.value,
                    "note": note or "",
                },
            )
        self.audit_logger.log_event(
            event_type="governance_event",
            actor_id=actor["user_id"],
            actor_role=actor["role"],
            details={
                "action": "data_request_transition",
                "request_id": request_id,
                "from": current.value,
                "to": new_status.value,
            },
        )

        if (
            new_status == RequestStatus.COMPLETED
            and request_type == RequestType.ERASURE
            and self._erasable(linked_user_id)
        ):
            self.governance_service.erase_user(actor, linked_user_id, reason=f"data request {request_id}")

        return self._to_model(self._get_row(request_id))

    def _erasable(self, user_id: str | None) -> bool:
        if not user_id:
            return False
        with self.store.lock:
            user = self.store.users.get(user_id)
        return bool(user) and not user.get("anonymized_at")

    def extend(self, actor: dict[str, Any], request_id: str, reason: str) -> DataRequestRecord:
        self._require_processor(actor)

        with self.store.lock:
            row = self._get_row(request_id)
            if row["status"] not in OPEN_STATUSES:
                raise HTTPException(status_code=409, detail="Only open requests can be extended")
            if row.get("extended"):
                raise HTTPException(status_code=409, detail="The deadline has already been extended once")

            due_at = datetime.fromisoformat(row["due_at"]) + timedelta(days=self.settings.request_extension_days)
            row["due_at"] = due_at.isoformat()
            row["extended"] = True
            row["updated_at"] = utcnow().isoformat()
            email = None if row.get("redacted_at") else self.cipher.decrypt(row["email"])
            request_type = RequestType(row["request_type"])

        if email:
            self.notification_service.send(
                "data_request_extended",
                email,
                {
                    "request_id": request_id,
                    "request_type": request_type.value,
                    "due_at": due_at.strftime("%Y-%m-%d"),
                    "reason": reason,
                },
            )
        self.audit_logger.log_event(
            event_type="governance_event",
            actor_id=actor["user_id"],
            actor_role=actor["role"],
            details={"action": "data_request_extended", "request_id": request_id},
        )
        return self._to_model(row)

    def overdue(self, now: datetime | None = None) -> list[DataRequestRecord]:
        now = now or utcnow()
        with self.store.lock:
            rows = list(self.store.data_requests.values())
        return [
            self._to_model(r, now)
            for r in rows
            if r["status"] in OPEN_STATUSES and datetime.fromisoformat(r["due_at"]) < now
        ]

    def _to_model(self, row: dict[str, Any], now: datetime | None = None) -> DataRequestRecord:
        now = now or datetime.now(timezone.utc)
        opened = self.cipher.decrypt_fields(row, REQUEST_ENCRYPTED_FIELDS)
        due_at = datetime.fromisoformat(row["due_at"])
        resolved_at = row.get("resolved_at")
        return DataRequestRecord(
            request_id=row["request_id"],
            request_type=row["request_type"],
            email=opened.get("email"),
            description=opened.get("description"),
            status=row["status"],
            submitted_at=datetime.fromisoformat(row["submitted_at"]),
            due_at=due_at,
            extended=row.get("extended", False),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            resolved_at=datetime.fromisoformat(resolved_at) if resolved_at else None,
            resolution_note=row.get("resolution_note"),
            handled_by=row.get("handled_by"),
            user_id=row.get("user_id"),
            overdue=row["status"] in OPEN_STATUSES and due_at < now,
        )
