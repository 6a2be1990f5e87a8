"""Pytest fixtures for the GDPR Compliance Kit tests."""

from dataclasses import replace

import pytest
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient

from gdpr_kit.core.config import settings as default_settings
from gdpr_kit.main import create_app
from gdpr_kit.services.container import build_container


SEED_CREDENTIALS = {
    "dpo": ("dpo_admin", "dpo12345"),
    "support": ("support_jane", "support123"),
    "alex": ("user_alex", "user12345"),
    "sam": ("user_sam", "user67890"),
}


class RecordingMailer:
    """Captures outgoing mail instead of talking to an SMTP server."""

    def __init__(self):
        self.sent = []

    def deliver(self, recipient, subject, body):
        self.sent.append({"recipient": recipient, "subject": subject, "body": body})


@pytest.fixture
def encryption_key():
    return Fernet.generate_key().decode()


@pytest.fixture
def test_settings(tmp_path, encryption_key):
    return replace(
        default_settings,
        data_dir=tmp_path,
        encryption_keys=(encryption_key,),
        secret_key="test-secret-not-default",
        dpo_email="dpo@example.com",
    )


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def container(test_settings, mailer):
    return build_container(test_settings, mailer=mailer)


@pytest.fixture
def client(container):
    with TestClient(create_app(container)) as test_client:
        yield test_client


@pytest.fixture
def login(client):
    """Return Authorization headers for one of the seeded accounts."""

    def _login(who):
        username, password = SEED_CREDENTIALS[who]
        response = client.post("/auth/token", data={"username": username, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    return _login


@pytest.fixture
def submit_request(client):
    def _submit(request_type="ACCESS", email="alex.kim@example.org", description="Please send me all my data."):
        response = client.post(
            "/data-requests",
            json={"request_type": request_type, "email": email, "description": description},
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _submit
