from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from jose import JWTError, jwt
from passlib.context import CryptContext

from gdpr_kit.core.config import Settings, settings as default_settings


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # Anonymized accounts carry a hash no scheme can identify.
        return False


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(
    subject: str,
    role: str,
    settings: Settings | None = None,
    expires_delta: timedelta | None = None,
) -> tuple[str, datetime]:
    settings = settings or default_settings
    issued_at = datetime.now(timezone.utc)
    expire = issued_at + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    claims: dict[str, Any] = {
        "sub": subject,
        "role": str(getattr(role, "value", role)),
        "iat": issued_at,
        "exp": expire,
        "jti": uuid4().hex,
    }
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm), expire


def decode_access_token(token: str, settings: Settings | None = None) -> dict[str, Any]:
    settings = settings or default_settings
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
