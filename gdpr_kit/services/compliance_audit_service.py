from __future__ import annotations

from collections.abc import Callable
from typing import Any

from gdpr_kit.core.config import DEFAULT_SECRET_KEY, Settings
from gdpr_kit.core.encryption import FieldCipher
from gdpr_kit.models.consent import ConsentCategory
from gdpr_kit.models.governance import AuditCheck, AuditReport, CheckStatus
from gdpr_kit.repositories.data_store import DataStore, utcnow
from gdpr_kit.services.audit_log_service import AuditLogger
from gdpr_kit.services.consent_service import ConsentService
from gdpr_kit.services.data_request_service import DataRequestService
from gdpr_kit.services.governance_service import MIN_RETENTION_DAYS, SYSTEM_ACTOR
from gdpr_kit.services.notification_service import OutboxMailer
from gdpr_kit.services.privacy_policy_service import PrivacyPolicyService


class ComplianceAuditService:
    """Runs the operational GDPR checklist against the live configuration and data."""

    def __init__(
        self,
        store: DataStore,
        audit_logger: AuditLogger,
        cipher: FieldCipher,
        settings: Settings,
        consent_service: ConsentService,
        data_request_service: DataRequestService,
        privacy_policy_service: PrivacyPolicyService,
        mailer: Any,
    ) -> None:
        self.store = store
        self.audit_logger = audit_logger
        self.cipher = cipher
        self.settings = settings
        self.consent_service = consent_service
        self.data_request_service = data_request_service
        self.privacy_policy_service = privacy_policy_service
        self.mailer = mailer

    def checks(self) -> list[Callable[[], AuditCheck]]:
        return [
            self._check_encryption_keys,
            self._check_jwt_secret,
            self._check_controller_contact,
            self._check_processing_register,
            self._check_consent_banner,
            self._check_consent_freshness,
            self._check_overdue_requests,
            self._check_retention_periods,
            self._check_mail_transport,
        ]

    def run(self, actor: dict[str, Any] | None = None) -> AuditReport:
        actor = actor or SYSTEM_ACTOR
        results = [check() for check in self.checks()]

        passed = sum(1 for r in results if r.status == CheckStatus.PASS)
        warnings = sum(1 for r in results if r.status == CheckStatus.WARN)
        failures = sum(1 for r in results if r.status == CheckStatus.FAIL)
        report = AuditReport(
            generated_at=utcnow(),
            checks=results,
            passed=passed,
            warnings=warnings,
            failures=failures,
            score=round(passed / len(results), 2) if results else 0.0,
        )

        self.audit_logger.log_event(
            event_type="governance_event",
            actor_id=actor["user_id"],
            actor_role=actor["role"],
            details={
                "action": "compliance_audit",
                "passed": passed,
                "warnings": warnings,
                "failures": failures,
            },
        )
        return report

    def _check_encryption_keys(self) -> AuditCheck:
        if self.cipher.ephemeral:
            status, detail = CheckStatus.FAIL, "No encryption key configured; an ephemeral key is in use."
        else:
            status, detail = CheckStatus.PASS, f"{self.cipher.key_count} encryption key(s) configured."
        return AuditCheck(
            check_id="encryption_keys",
            title="Personal data is encrypted at rest with a managed key",
            article="Art. 32(1)(a)",
            status=status,
            detail=detail,
        )

    def _check_jwt_secret(self) -> AuditCheck:
        weak = self.settings.secret_key == DEFAULT_SECRET_KEY
        return AuditCheck(
            check_id="jwt_secret",
            title="Session tokens are signed with a non-default secret",
            article="Art. 32(1)(b)",
            status=CheckStatus.FAIL if weak else CheckStatus.PASS,
            detail="The default signing secret is in use." if weak else "Custom signing secret configured.",
        )

    def _check_controller_contact(self) -> AuditCheck:
        if not self.settings.controller_name or not self.settings.contact_email:
            status, detail = CheckStatus.FAIL, "Controller name or contact email is missing."
        elif not self.settings.dpo_email:
            status, detail = CheckStatus.WARN, "No data protection officer contact is published."
        else:
            status, detail = CheckStatus.PASS, "Controller and DPO contact details are published."
        return AuditCheck(
            check_id="controller_contact",
            title="Controller identity and contact details are published",
            article="Art. 13(1)(a)-(b)",
            status=status,
            detail=detail,
        )

    def _check_processing_register(self) -> AuditCheck:
        activities = self.privacy_policy_service.list_activities()
        incomplete = [a.activity_id for a in activities if not a.lawful_basis or not a.retention_period.strip()]
        if not activities:
            status, detail = CheckStatus.FAIL, "The register of processing activities is empty."
        elif incomplete:
            status, detail = CheckStatus.FAIL, f"Activities missing basis or retention: {', '.join(incomplete)}."
        else:
            status, detail = CheckStatus.PASS, f"{len(activities)} processing activities documented."
        return AuditCheck(
            check_id="processing_register",
            title="Records of processing activities are complete",
            article="Art. 30",
            status=status,
            detail=detail,
        )

    def _check_consent_banner(self) -> AuditCheck:
        required = [c.key for c in self.consent_service.banner_config().categories if c.required]
        ok = required == [ConsentCategory.NECESSARY]
        return AuditCheck(
            check_id="consent_banner",
            title="Only strictly necessary cookies are set without consent",
            article="Art. 7; ePrivacy Art. 5(3)",
            status=CheckStatus.PASS if ok else CheckStatus.FAIL,
            detail="Optional categories default to off." if ok else f"Required categories: {required}.",
        )

    def _check_consent_freshness(self) -> AuditCheck:
        with self.store.lock:
            rows = list(self.store.consents.values())
        stale = sum(1 for r in rows if self.consent_service.renewal_required(r))
        return AuditCheck(
            check_id="consent_freshness",
            title="Stored consents match the current policy version",
            article="Art. 7(1)",
            status=CheckStatus.WARN if stale else CheckStatus.PASS,
            detail=f"{stale} of {len(rows)} consents need renewal.",
        )

    def _check_overdue_requests(self) -> AuditCheck:
        overdue = self.data_request_service.overdue()
        return AuditCheck(
            check_id="overdue_requests",
            title="Data subject requests are answered on time",
            article="Art. 12(3)",
            status=CheckStatus.FAIL if overdue else CheckStatus.PASS,
            detail=(
                f"{len(overdue)} open request(s) past due: {', '.join(r.request_id for r in overdue)}."
                if overdue
                else "No open requests are past due."
            ),
        )

    def _check_retention_periods(self) -> AuditCheck:
        periods = {
            "audit": self.settings.audit_retention_days,
            "consent_history": self.settings.consent_history_retention_days,
            "closed_requests": self.settings.closed_request_retention_days,
            "inactive_accounts": self.settings.inactive_account_days,
        }
        short = [name for name, days in periods.items() if days < MIN_RETENTION_DAYS]
        return AuditCheck(
            check_id="retention_periods",
            title="Retention periods are defined",
            article="Art. 5(1)(e)",
            status=CheckStatus.FAIL if short else CheckStatus.PASS,
            detail=(
                f"Periods below {MIN_RETENTION_DAYS} days: {', '.join(short)}."
                if short
                else ", ".join(f"{k}={v}d" for k, v in periods.items())
            ),
        )

    def _check_mail_transport(self) -> AuditCheck:
        outbox = isinstance(self.mailer, OutboxMailer)
        return AuditCheck(
            check_id="mail_transport",
            title="Requesters receive email notifications",
            article="Art. 12(3)-(4)",
            status=CheckStatus.WARN if outbox else CheckStatus.PASS,
            detail="No SMTP host configured; messages stay in the outbox." if outbox else "SMTP delivery configured.",
        )
