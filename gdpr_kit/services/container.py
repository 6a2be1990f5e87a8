from __future__ import annotations

from dataclasses import dataclass

from gdpr_kit.core.config import Settings, settings as default_settings
from gdpr_kit.core.encryption import FieldCipher
from gdpr_kit.repositories.data_store import DataStore
from gdpr_kit.services.audit_log_service import AuditLogger
from gdpr_kit.services.auth_service import AuthService
from gdpr_kit.services.compliance_audit_service import ComplianceAuditService
from gdpr_kit.services.consent_service import ConsentService
from gdpr_kit.services.data_request_service import DataRequestService
from gdpr_kit.services.governance_service import GovernanceService
from gdpr_kit.services.notification_service import Mailer, NotificationService, build_mailer
from gdpr_kit.services.privacy_policy_service import PrivacyPolicyService


@dataclass
class ServiceContainer:
    settings: Settings
    store: DataStore
    cipher: FieldCipher
    audit_logger: AuditLogger
    mailer: Mailer
    auth_service: AuthService
    consent_service: ConsentService
    notification_service: NotificationService
    privacy_policy_service: PrivacyPolicyService
    governance_service: GovernanceService
    data_request_service: DataRequestService
    compliance_audit_service: ComplianceAuditService


def build_container(settings: Settings | None = None, mailer: Mailer | None = None) -> ServiceContainer:
    settings = settings or default_settings
    settings.data_dir.mkdir(parents=True, exist_ok=True)

    store = DataStore()
    cipher = FieldCipher(settings.encryption_keys)
    audit_logger = AuditLogger(event_path=settings.audit_log_path)
    mailer = mailer or build_mailer(settings)

    auth_service = AuthService(store=store, audit_logger=audit_logger, cipher=cipher, settings=settings)
    consent_service = ConsentService(store=store, audit_logger=audit_logger, settings=settings)
    notification_service = NotificationService(store=store, cipher=cipher, settings=settings, mailer=mailer)
    privacy_policy_service = PrivacyPolicyService(settings=settings)
    governance_service = GovernanceService(
        store=store,
        audit_logger=audit_logger,
        cipher=cipher,
        settings=settings,
        auth_service=auth_service,
        consent_service=consent_service,
        notification_service=notification_service,
    )
    data_request_service = DataRequestService(
        store=store,
        audit_logger=audit_logger,
        cipher=cipher,
        settings=settings,
        notification_service=notification_service,
        governance_service=governance_service,
    )
    compliance_audit_service = ComplianceAuditService(
        store=store,
        audit_logger=audit_logger,
        cipher=cipher,
        settings=settings,
        consent_service=consent_service,
        data_request_service=data_request_service,
        privacy_policy_service=privacy_policy_service,
        mailer=mailer,
    )

    return ServiceContainer(
        settings=settings,
        store=store,
        cipher=cipher,
        audit_logger=audit_logger,
        mailer=mailer,
        auth_service=auth_service,
        consent_service=consent_service,
        notification_service=notification_service,
        privacy_policy_service=privacy_policy_service,
        governance_service=governance_service,
        data_request_service=data_request_service,
        compliance_audit_service=compliance_audit_service,
    )
