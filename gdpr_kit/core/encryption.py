from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable
from typing import Any

from cryptography.fernet import Fernet, InvalidToken, MultiFernet


logger = logging.getLogger(__name__)


def generate_key() -> str:
    return Fernet.generate_key().decode("ascii")


def pseudonymize(value: str, salt: str) -> str:
    """Salted SHA-256 used for lookup hashes and IP pseudonyms."""
    normalized = value.strip().lower()
    return hashlib.sha256(f"{salt}:{normalized}".encode("utf-8")).hexdigest()


class FieldCipher:
    def __init__(self, keys: Iterable[str] = ()) -> None:
        keys = [k for k in keys if k]
        self.ephemeral = not keys
        if self.ephemeral:
            logger.warning(
                "No encryption keys configured; using an ephemeral key. "
                "Encrypted data will be unreadable after restart."
            )
            keys = [generate_key()]

        try:
            self._fernets = [Fernet(k.encode("ascii")) for k in keys]
        except (ValueError, TypeError) as exc:
            raise ValueError("Invalid Fernet key in encryption key list") from exc
        self._cipher = MultiFernet(self._fernets)
        self._primary = self._fernets[0]

    @property
    def key_count(self) -> int:
        return len(self._fernets)

    def encrypt(self, value: str | None) -> str | None:
        if value is None:
            return None
        return self._cipher.encrypt(value.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str | None) -> str | None:
        if token is None:
            return None
        try:
            return self._cipher.decrypt(token.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError("Unable to decrypt field with the configured keys") from exc

    def is_current(self, token: str) -> bool:
        """True when the token opens with the primary key."""
        try:
            self._primary.decrypt(token.encode("ascii"))
        except InvalidToken:
            return False
        return True

    def rotate(self, token: str | None) -> str | None:
        if token is None:
            return None
        try:
            return self._cipher.rotate(token.encode("ascii")).decode("ascii")
        except InvalidToken as exc:
            raise ValueError("Unable to rotate field with the configured keys") from exc

    def encrypt_fields(self, record: dict[str, Any], fields: Iterable[str]) -> dict[str, Any]:
        sealed = dict(record)
        for name in fields:
            if name in sealed:
                sealed[name] = self.encrypt(sealed[name])
        return sealed

    def decrypt_fields(self, record: dict[str, Any], fields: Iterable[str]) -> dict[str, Any]:
        opened = dict(record)
        for name in fields:
            if name in opened:
                opened[name] = self.decrypt(opened[name])
        return opened

    def rotate_fields(self, record: dict[str, Any], fields: Iterable[str]) -> int:
        """Re-encrypt the named fields in place; returns how many changed."""
        rotated = 0
        for name in fields:
            token = record.get(name)
            if token is None or self.is_current(token):
                continue
            record[name] = self.rotate(token)
            rotated += 1
        return rotated
