from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from gdpr_kit.core.rbac import Role
from gdpr_kit.models.patterns import EMAIL_REGEX


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=40, pattern=r"^[a-zA-Z0-9_.-]+$")
    full_name: str = Field(min_length=1, max_length=120)
    email: str = Field(max_length=254, pattern=EMAIL_REGEX)
    phone: Optional[str] = Field(default=None, max_length=32, pattern=r"^\+?[0-9 ()-]{6,}$")
    password: str = Field(min_length=8, max_length=72)


class UserPublic(BaseModel):
    user_id: str
    username: str
    full_name: str
    role: Role
    email: Optional[str] = None
    phone: Optional[str] = None
    created_at: datetime
    last_login_at: Optional[datetime] = None
    anonymized_at: Optional[datetime] = None
