"""Tests for the processing register and privacy policy generation."""

import json

import pytest
from pydantic import ValidationError

from gdpr_kit.services.privacy_policy_service import PrivacyPolicyService


def test_policy_lists_every_activity(container):
    document = container.privacy_policy_service.generate_policy()

    assert document.version == container.settings.policy_version
    for activity in container.privacy_policy_service.list_activities():
        assert activity.name in document.content
    assert "Art. 6(1)(a)" in document.content
    assert "supervisory authority" in document.content
    assert container.settings.dpo_email in document.content
    assert "**Strictly necessary** (always active)" in document.content


def test_policy_endpoints(client):
    response = client.get("/privacy/policy")
    assert response.status_code == 200
    assert response.json()["content"].startswith("# Privacy Policy")

    response = client.get("/privacy/policy.md")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/markdown")
    assert "## 5. Your rights" in response.text


def test_processing_register_requires_permission(client, login):
    assert client.get("/privacy/processing-activities", headers=login("alex")).status_code == 403

    response = client.get("/privacy/processing-activities", headers=login("support"))
    assert response.status_code == 200
    assert {a["activity_id"] for a in response.json()} >= {"pa-accounts", "pa-cookie-consent"}


def test_custom_register(tmp_path, test_settings):
    register = tmp_path / "register.json"
    register.write_text(
        json.dumps(
            [
                {
                    "activity_id": "pa-newsletter",
                    "name": "Newsletter",
                    "purpose": "Send product news.",
                    "lawful_basis": "consent",
                    "data_categories": ["email address"],
                    "retention_period": "Until you unsubscribe.",
                }
            ]
        ),
        encoding="utf-8",
    )

    service = PrivacyPolicyService(test_settings, register_path=register)
    content = service.generate_policy().content

    assert "### 2.1 Newsletter" in content
    assert "**Recipients:** None" in content
    assert "### 2.2" not in content


def test_missing_register_is_an_error(tmp_path, test_settings):
    with pytest.raises(RuntimeError):
        PrivacyPolicyService(test_settings, register_path=tmp_path / "missing.json")


def test_unknown_lawful_basis_is_rejected(tmp_path, test_settings):
    register = tmp_path / "register.json"
    register.write_text(
        json.dumps([{"activity_id": "x", "name": "X", "purpose": "Y", "lawful_basis": "because"}]),
        encoding="utf-8",
    )
    with pytest.raises(ValidationError):
        PrivacyPolicyService(test_settings, register_path=register)
