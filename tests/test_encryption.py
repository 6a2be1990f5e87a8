"""Tests for field-level encryption and pseudonymization."""

import pytest
from cryptography.fernet import Fernet

from gdpr_kit.core.encryption import FieldCipher, generate_key, pseudonymize


class TestFieldCipher:
    def test_sealed_value_is_not_plaintext(self, encryption_key):
        cipher = FieldCipher([encryption_key])
        token = cipher.encrypt("alex.kim@example.org")

        assert "alex" not in token
        assert cipher.decrypt(token) == "alex.kim@example.org"

    def test_none_passes_through(self, encryption_key):
        cipher = FieldCipher([encryption_key])
        assert cipher.encrypt(None) is None
        assert cipher.decrypt(None) is None

    def test_foreign_token_raises_value_error(self, encryption_key):
        token = FieldCipher([generate_key()]).encrypt("secret")
        with pytest.raises(ValueError, match="Unable to decrypt"):
            FieldCipher([encryption_key]).decrypt(token)

    def test_invalid_key_is_rejected(self):
        with pytest.raises(ValueError):
            FieldCipher(["not-a-fernet-key"])

    def test_missing_keys_fall_back_to_ephemeral_key(self):
        cipher = FieldCipher([])
        assert cipher.ephemeral is True
        assert cipher.decrypt(cipher.encrypt("x")) == "x"

    def test_encrypt_fields_returns_copy(self, encryption_key):
        cipher = FieldCipher([encryption_key])
        record = {"email": "sam@example.org", "phone": None, "username": "sam"}

        sealed = cipher.encrypt_fields(record, ("email", "phone"))

        assert record["email"] == "sam@example.org"
        assert sealed["email"] != "sam@example.org"
        assert sealed["phone"] is None
        assert sealed["username"] == "sam"
        assert cipher.decrypt_fields(sealed, ("email", "phone")) == record


class TestKeyRotation:
    def test_rotate_fields_moves_tokens_to_primary_key(self):
        old_key = Fernet.generate_key().decode()
        new_key = Fernet.generate_key().decode()
        old_cipher = FieldCipher([old_key])
        record = {"email": old_cipher.encrypt("a@example.org"), "phone": None}

        rotating = FieldCipher([new_key, old_key])
        assert rotating.is_current(record["email"]) is False

        assert rotating.rotate_fields(record, ("email", "phone")) == 1
        assert FieldCipher([new_key]).decrypt(record["email"]) == "a@example.org"
        assert rotating.rotate_fields(record, ("email", "phone")) == 0


class TestPseudonymize:
    def test_normalizes_case_and_whitespace(self):
        assert pseudonymize(" Alex@Example.org ", "salt") == pseudonymize("alex@example.org", "salt")

    def test_salt_changes_digest(self):
        assert pseudonymize("10.0.0.1", "a") != pseudonymize("10.0.0.1", "b")
