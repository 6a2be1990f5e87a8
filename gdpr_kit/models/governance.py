from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel


class ErasureRequest(BaseModel):
    reason: Optional[str] = None


class ErasureResponse(BaseModel):
    user_id: str
    anonymized_ref: str
    anonymized_at: datetime
    records_updated: int


class RetentionCleanupResponse(BaseModel):
    dry_run: bool
    audit_retention_days: int
    removed_events: int
    removed_consent_history: int
    redacted_requests: int
    anonymized_accounts: int


class SubjectAccessResponse(BaseModel):
    generated_at: datetime
    user_profile: dict[str, Any]
    consent: Optional[dict[str, Any]] = None
    consent_history: list[dict[str, Any]]
    data_requests: list[dict[str, Any]]
    activity: list[dict[str, Any]]


class CheckStatus(str, Enum):
    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"


class AuditCheck(BaseModel):
    check_id: str
    title: str
    article: str
    status: CheckStatus
    detail: str


class AuditReport(BaseModel):
    generated_at: datetime
    checks: list[AuditCheck]
    passed: int
    warnings: int
    failures: int
    score: float


class NotificationStatus(str, Enum):
    QUEUED = "QUEUED"
    SENT = "SENT"
    FAILED = "FAILED"


class NotificationRecord(BaseModel):
    notification_id: str
    template: str
    recipient: str
    subject: str
    status: NotificationStatus
    created_at: datetime
    error: Optional[str] = None
