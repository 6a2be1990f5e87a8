"""Tests for the cookie banner and consent storage."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

from gdpr_kit.models.consent import ConsentCategory, ConsentChoices
from gdpr_kit.repositories.data_store import DataStore
from gdpr_kit.services.audit_log_service import AuditLogger
from gdpr_kit.services.consent_service import ConsentService


class TestBanner:
    def test_only_necessary_is_required(self, client):
        response = client.get("/consent/banner")
        assert response.status_code == 200

        categories = response.json()["categories"]
        assert [c["key"] for c in categories] == ["necessary", "preferences", "analytics", "marketing"]
        assert [c["key"] for c in categories if c["required"]] == ["necessary"]

    def test_banner_html_renders_choices(self, client):
        client.post("/consent", json={"analytics": True})

        response = client.get("/consent/banner.html")
        assert response.status_code == 200
        assert 'id="cookie-banner"' in response.text
        assert 'name="analytics"' in response.text
        assert 'name="expected_revision" value="1"' in response.text


class TestConsentApi:
    def test_first_visit_defaults_to_necessary_only(self, client):
        response = client.get("/consent")
        assert response.status_code == 200

        body = response.json()
        assert body["revision"] == 0
        assert body["renewal_required"] is True
        assert body["allowed_categories"] == ["necessary"]
        assert "gdpr_visitor_id" in response.cookies

    def test_save_choices_sets_cookie_and_revision(self, client):
        response = client.post("/consent", json={"analytics": True, "marketing": False})
        assert response.status_code == 200

        body = response.json()
        assert body["revision"] == 1
        assert body["necessary"] is True
        assert body["renewal_required"] is False
        assert body["allowed_categories"] == ["necessary", "analytics"]
        assert response.cookies.get("gdpr_consent") == "necessary|analytics"

        assert client.get("/consent").json()["revision"] == 1

    def test_stale_revision_conflicts(self, client):
        client.post("/consent", json={"analytics": True})
        client.post("/consent", json={"analytics": False, "expected_revision": 1})

        response = client.post("/consent", json={"marketing": True, "expected_revision": 1})
        assert response.status_code == 409

    def test_form_submission_from_banner(self, client):
        response = client.post("/consent/form", data={"preferences": "on", "marketing": "on"})
        assert response.status_code == 200
        assert response.json()["allowed_categories"] == ["necessary", "preferences", "marketing"]

    def test_form_rejects_negative_revision(self, client):
        response = client.post("/consent/form", data={"analytics": "on", "expected_revision": "-1"})
        assert response.status_code == 422

    def test_accept_all_then_withdraw(self, client):
        accepted = client.post("/consent/accept-all").json()
        assert set(accepted["allowed_categories"]) == {c.value for c in ConsentCategory}

        withdrawn = client.delete("/consent").json()
        assert withdrawn["withdrawn"] is True
        assert withdrawn["allowed_categories"] == ["necessary"]

        history = client.get("/consent/history").json()
        assert [h["source"] for h in history] == ["accept_all", "withdrawal"]
        assert [h["revision"] for h in history] == [1, 2]

    def test_scripts_follow_consent(self, client):
        names = [s["name"] for s in client.get("/consent/scripts").json()]
        assert names == ["csrf-guard"]

        client.post("/consent", json={"analytics": True})
        names = [s["name"] for s in client.get("/consent/scripts").json()]
        assert names == ["csrf-guard", "site-analytics"]

    def test_authenticated_consent_links_user(self, client, login, container):
        client.post("/consent/reject-all", headers=login("alex"))

        row = container.consent_service.current_for_user("u-usr-001")
        assert row is not None
        assert row["source"].value == "reject_all"
        assert len(row["ip_hash"]) == 64

    def test_stale_token_falls_back_to_anonymous_visitor(self, client):
        response = client.post(
            "/consent",
            json={"analytics": True},
            headers={"Authorization": "Bearer not-a-token"},
        )
        assert response.status_code == 200
        assert response.json()["user_id"] is None
        assert "gdpr_visitor_id" in response.cookies

    def test_consent_events_are_audited(self, client, container):
        client.post("/consent/accept-all")
        events = container.audit_logger.query(event_type="consent_recorded")
        assert len(events) == 1
        assert events[0]["details"]["source"] == "accept_all"


class TestConsentRenewal:
    def _service(self, test_settings, tmp_path, **overrides):
        return ConsentService(
            store=DataStore(),
            audit_logger=AuditLogger(tmp_path / "events.jsonl"),
            settings=replace(test_settings, **overrides),
        )

    def test_policy_version_change_requires_renewal(self, test_settings, tmp_path):
        service = self._service(test_settings, tmp_path, policy_version="2024-01")
        service.record_consent("visitor-1", ConsentChoices(analytics=True))
        assert service.is_allowed("visitor-1", ConsentCategory.ANALYTICS) is True

        service.settings = replace(service.settings, policy_version="2025-01")
        status = service.get_consent("visitor-1")
        assert status.renewal_required is True
        assert service.is_allowed("visitor-1", ConsentCategory.ANALYTICS) is False
        assert service.is_allowed("visitor-1", ConsentCategory.NECESSARY) is True

    def test_old_consent_expires(self, test_settings, tmp_path):
        service = self._service(test_settings, tmp_path, consent_max_age_days=30)
        service.record_consent("visitor-2", ConsentChoices(marketing=True))
        old = datetime.now(timezone.utc) - timedelta(days=31)
        service.store.consents["visitor-2"]["recorded_at"] = old.isoformat()

        assert service.get_consent("visitor-2").renewal_required is True
        assert service.is_allowed("visitor-2", ConsentCategory.MARKETING) is False
