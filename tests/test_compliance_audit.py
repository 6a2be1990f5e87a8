"""Tests for the compliance checklist."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

from gdpr_kit.core.config import DEFAULT_SECRET_KEY
from gdpr_kit.models.governance import CheckStatus
from gdpr_kit.services.container import build_container
from gdpr_kit.services.notification_service import OutboxMailer


def _statuses(report):
    return {check.check_id: check.status for check in report.checks}


def test_configured_deployment_passes(container):
    report = container.compliance_audit_service.run()

    assert len(report.checks) == 9
    assert report.failures == 0
    assert report.warnings == 0
    assert report.score == 1.0
    assert container.audit_logger.query(event_type="governance_event")[-1]["details"]["action"] == "compliance_audit"


def test_missing_keys_and_default_secret_fail(test_settings):
    settings = replace(test_settings, encryption_keys=(), secret_key=DEFAULT_SECRET_KEY)
    container = build_container(settings, mailer=OutboxMailer())

    statuses = _statuses(container.compliance_audit_service.run())

    assert statuses["encryption_keys"] == CheckStatus.FAIL
    assert statuses["jwt_secret"] == CheckStatus.FAIL
    assert statuses["mail_transport"] == CheckStatus.WARN


def test_overdue_request_fails(container, submit_request):
    request_id = submit_request()["request_id"]
    past = datetime.now(timezone.utc) - timedelta(days=1)
    container.store.data_requests[request_id]["due_at"] = past.isoformat()

    report = container.compliance_audit_service.run()
    check = next(c for c in report.checks if c.check_id == "overdue_requests")

    assert check.status == CheckStatus.FAIL
    assert request_id in check.detail
    assert report.score < 1.0


def test_stale_consent_warns(container):
    container.consent_service.accept_all("visitor-1")
    container.store.consents["visitor-1"]["policy_version"] = "2019-01"

    statuses = _statuses(container.compliance_audit_service.run())

    assert statuses["consent_freshness"] == CheckStatus.WARN


def test_audit_endpoint_is_dpo_only(client, login):
    assert client.get("/governance/audit", headers=login("alex")).status_code == 403

    response = client.get("/governance/audit", headers=login("dpo"))
    assert response.status_code == 200
    assert response.json()["passed"] == 9
