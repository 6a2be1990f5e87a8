from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import uuid4

from fastapi import HTTPException, status

from gdpr_kit.core.config import Settings
from gdpr_kit.core.encryption import FieldCipher, pseudonymize
from gdpr_kit.core.rbac import Role
from gdpr_kit.core.security import create_access_token, hash_password, verify_password
from gdpr_kit.models.auth import RegisterRequest, Token, UserPublic
from gdpr_kit.repositories.data_store import DataStore, iso_now
from gdpr_kit.services.audit_log_service import AuditLogger

USER_ENCRYPTED_FIELDS = ("email", "phone")


class AuthService:
    def __init__(
        self,
        store: DataStore,
        audit_logger: AuditLogger,
        cipher: FieldCipher,
        settings: Settings,
    ) -> None:
        self.store = store
        self.audit_logger = audit_logger
        self.cipher = cipher
        self.settings = settings
        self._seed_users()

    def _seed_users(self) -> None:
        seed = [
            {
                "user_id": "u-dpo-001",
                "username": "dpo_admin",
                "full_name": "Avery Jordan",
                "role": Role.DPO,
                "email": "avery.jordan@example.com",
                "phone": None,
                "password": "dpo12345",
            },
            {
                "user_id": "u-sup-001",
                "username": "support_jane",
                "full_name": "Jane Rivera",
                "role": Role.SUPPORT,
                "email": "jane.rivera@example.com",
                "phone": "+49 30 1234567",
                "password": "support123",
            },
            {
                "user_id": "u-usr-001",
                "username": "user_alex",
                "full_name": "Alex Kim",
                "role": Role.USER,
                "email": "alex.kim@example.org",
                "phone": "+49 170 5550101",
                "password": "user12345",
            },
            {
                "user_id": "u-usr-002",
                "username": "user_sam",
                "full_name": "Sam Patel",
                "role": Role.USER,
                "email": "sam.patel@example.org",
                "phone": None,
                "password": "user67890",
            },
        ]

        with self.store.lock:
            if self.store.users:
                return
            for user in seed:
                password = user.pop("password")
                self.store.users[user["user_id"]] = self._new_record(user, password)

    def _new_record(self, user: dict[str, Any], password: str) -> dict[str, Any]:
        record = {
            **user,
            "email_hash": pseudonymize(user["email"], self.settings.pseudonym_salt),
            "hashed_password": hash_password(password),
            "created_at": iso_now(),
            "last_login_at": None,
            "anonymized_at": None,
        }
        return self.cipher.encrypt_fields(record, USER_ENCRYPTED_FIELDS)

    def register(self, payload: RegisterRequest) -> dict[str, Any]:
        email_hash = pseudonymize(payload.email, self.settings.pseudonym_salt)
        user_id = f"u-{uuid4().hex[:10]}"
        record = self._new_record(
            {
                "user_id": user_id,
                "username": payload.username,
                "full_name": payload.full_name,
                "role": Role.USER,
                "email": payload.email.strip(),
                "phone": payload.phone,
            },
            payload.password,
        )

        with self.store.lock:
            users = list(self.store.users.values())
            if any(u["username"] == payload.username for u in users):
                raise HTTPException(status_code=409, detail="Username already taken")
            if any(u.get("email_hash") == email_hash for u in users):
                raise HTTPException(status_code=409, detail="Email already registered")
            self.store.users[user_id] = record

        self.audit_logger.log_event(
            event_type="account_registered",
            actor_id=user_id,
            actor_role=Role.USER,
            details={"user_id": user_id},
        )
        return record

    def authenticate(self, username: str, password: str) -> dict[str, Any] | None:
        with self.store.lock:
            users = list(self.store.users.values())
        user = next((u for u in users if u["username"] == username), None)
        if not user or user.get("anonymized_at"):
            return None
        if not verify_password(password, user["hashed_password"]):
            return None
        return user

    def issue_token(self, user: dict[str, Any]) -> Token:
        token, expires_at = create_access_token(
            subject=user["user_id"],
            role=user["role"],
            settings=self.settings,
        )
        with self.store.lock:
            user["last_login_at"] = iso_now()
        self.audit_logger.log_event(
            event_type="auth_login",
            actor_id=user["user_id"],
            actor_role=user["role"],
            details={"username": user["username"]},
        )
        return Token(access_token=token, expires_at=expires_at)

    def require_user(self, user_id: str) -> dict[str, Any]:
        with self.store.lock:
            user = self.store.users.get(user_id)
        if not user or user.get("anonymized_at"):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="User not found",
            )
        return user

    def get_user(self, user_id: str) -> dict[str, Any]:
        with self.store.lock:
            user = self.store.users.get(user_id)
        if not user:
            raise HTTPException(status_code=404, detail="User not found")
        return user

    def decrypted_profile(self, user: dict[str, Any]) -> dict[str, Any]:
        opened = self.cipher.decrypt_fields(user, USER_ENCRYPTED_FIELDS)
        return {
            "user_id": opened["user_id"],
            "username": opened["username"],
            "full_name": opened["full_name"],
            "role": opened["role"],
            "email": opened.get("email"),
            "phone": opened.get("phone"),
            "created_at": opened["created_at"],
            "last_login_at": opened.get("last_login_at"),
            "anonymized_at": opened.get("anonymized_at"),
        }

    def as_public(self, user: dict[str, Any]) -> UserPublic:
        profile = self.decrypted_profile(user)
        return UserPublic(
            **{
                **profile,
                "created_at": datetime.fromisoformat(profile["created_at"]),
                "last_login_at": _parse_optional(profile["last_login_at"]),
                "anonymized_at": _parse_optional(profile["anonymized_at"]),
            }
        )

    def list_users(self) -> list[UserPublic]:
        with self.store.lock:
            users = list(self.store.users.values())
        return [self.as_public(u) for u in users]


def _parse_optional(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None
