"""Tests for the operator command line."""

import json
from dataclasses import replace
from datetime import timedelta

import pytest
from click.testing import CliRunner
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient

from gdpr_kit.cli import main
from gdpr_kit.core.encryption import FieldCipher
from gdpr_kit.main import create_app
from gdpr_kit.repositories.data_store import utcnow
from gdpr_kit.services.container import build_container


@pytest.fixture
def run(client):
    runner = CliRunner()

    def _run(*args, target=None, password="dpo12345", **kwargs):
        return runner.invoke(
            main,
            ["--password", password, *args],
            obj={"client": target or client},
            **kwargs,
        )

    return _run


def test_generate_key_prints_a_fernet_key(run):
    result = run("generate-key")
    assert result.exit_code == 0
    Fernet(result.output.strip().encode())


def test_audit_json(run):
    result = run("audit", "--json")
    assert result.exit_code == 0, result.output

    report = json.loads(result.output)
    assert report["passed"] == 9
    assert {c["check_id"] for c in report["checks"]} >= {"encryption_keys", "overdue_requests"}


def test_audit_exits_nonzero_on_failures(run, test_settings, mailer):
    weak = build_container(replace(test_settings, encryption_keys=()), mailer=mailer)
    with TestClient(create_app(weak)) as weak_client:
        result = run("audit", target=weak_client)
    assert result.exit_code == 1
    assert "FAIL" in result.output


def test_wrong_password_fails(run):
    result = run("audit", password="not-the-password")
    assert result.exit_code == 1
    assert "Incorrect username or password" in result.output


def test_erase_user_changes_the_running_service(run, container):
    result = run("erase-user", "u-usr-002", "--yes", "--reason", "ticket 7")
    assert result.exit_code == 0, result.output
    assert "Erased" in result.output
    assert container.store.users["u-usr-002"]["anonymized_at"] is not None

    event = container.audit_logger.query(event_type="governance_event")[-1]
    assert event["actor_id"] == "u-dpo-001"
    assert event["details"]["reason"] == "ticket 7"


def test_erase_user_asks_for_confirmation(run, container):
    result = run("erase-user", "u-usr-002", input="n\n")
    assert result.exit_code == 0
    assert "Aborted." in result.output
    assert container.store.users["u-usr-002"]["anonymized_at"] is None


def test_erase_unknown_user_fails(run):
    result = run("erase-user", "u-nobody", "--yes")
    assert result.exit_code == 1
    assert "Target user not found" in result.output


def test_retention_cleanup(run):
    result = run("retention-cleanup", "--dry-run")
    assert result.exit_code == 0, result.output
    assert "dry run" in result.output


def test_retention_cleanup_rejects_short_audit_period(run):
    result = run("retention-cleanup", "--audit-days", "0")
    assert result.exit_code == 1
    assert "30" in result.output


def test_overdue_requests_lists_late_requests(run, container, submit_request):
    receipt = submit_request()
    row = container.store.data_requests[receipt["request_id"]]
    row["due_at"] = (utcnow() - timedelta(days=1)).isoformat()

    result = run("overdue-requests")
    assert result.exit_code == 0, result.output
    assert receipt["request_id"] in result.output


def test_overdue_requests_when_none(run, submit_request):
    submit_request()
    result = run("overdue-requests")
    assert result.exit_code == 0
    assert "No overdue requests." in result.output


def test_privacy_policy_to_file(run, tmp_path):
    target = tmp_path / "policy.md"
    result = run("privacy-policy", "--output", str(target))
    assert result.exit_code == 0, result.output
    assert target.read_text(encoding="utf-8").startswith("# Privacy Policy")


def test_rotate_keys_reencrypts_under_the_primary_key(run, test_settings, encryption_key, mailer):
    new_key = Fernet.generate_key().decode()
    rotating = build_container(replace(test_settings, encryption_keys=(new_key, encryption_key)), mailer=mailer)
    user = rotating.store.users["u-usr-001"]
    user["email"] = FieldCipher((encryption_key,)).encrypt("alex.kim@example.org")

    with TestClient(create_app(rotating)) as rotating_client:
        result = run("rotate-keys", target=rotating_client)

    assert result.exit_code == 0, result.output
    assert "users: 1" in result.output
    assert rotating.cipher.is_current(user["email"])
    assert rotating.cipher.decrypt(user["email"]) == "alex.kim@example.org"
    event = rotating.audit_logger.query(event_type="governance_event")[-1]
    assert event["details"]["action"] == "key_rotation"
    assert event["actor_id"] == "u-dpo-001"
