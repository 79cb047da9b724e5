"""
Ariya Backend — Authentication Schemas
========================================

What:  Request bodies for the /api/v1/auth routes and the user/token payloads
       they return.
How:   Evaluated in one pass by `validated_body()`; every failure lands in
       the {field: message} map of the 400 response. Custom validators raise
       ValueError with the client-facing message.

Self-registration and social sign-up may only choose PLANNER or VENDOR;
ADMIN accounts are provisioned out of band.
"""

import re
import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import Field, field_validator

from app.schemas.common import CamelModel
from app.validation import is_valid_email, password_problems

PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{1,14}$")

SelfServiceRole = Literal["PLANNER", "VENDOR"]


def _normalize_email(value: str) -> str:
    value = (value or "").strip().lower()
    if not is_valid_email(value):
        raise ValueError("Invalid email format")
    return value


def _strong_password(value: str) -> str:
    problems = password_problems("Password", value or "")
    if problems:
        raise ValueError(problems[0])
    return value


def _required(value: Optional[str], message: str) -> str:
    if value is None or not str(value).strip():
        raise ValueError(message)
    return str(value).strip()


# ══════════════════════════════════════════════════════════════════════════
# Requests
# ══════════════════════════════════════════════════════════════════════════


class LoginRequest(CamelModel):
    email: str
    password: str
    remember_me: Optional[bool] = None

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        return _normalize_email(v)

    @field_validator("password")
    @classmethod
    def password_present(cls, v: str) -> str:
        if not v:
            raise ValueError("Password is required")
        return v


class RegisterRequest(CamelModel):
    email: str
    password: str
    first_name: str
    last_name: str
    role: Optional[SelfServiceRole] = None
    phone: Optional[str] = None

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        return _normalize_email(v)

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return _strong_password(v)

    @field_validator("first_name", "last_name")
    @classmethod
    def name_length(cls, v: str, info) -> str:
        label = "First name" if info.field_name == "first_name" else "Last name"
        v = v.strip()
        if len(v) < 2:
            raise ValueError(f"{label} must be at least 2 characters")
        if len(v) > 50:
            raise ValueError(f"{label} must be at most 50 characters")
        return v

    @field_validator("phone")
    @classmethod
    def phone_format(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        if not PHONE_PATTERN.match(v):
            raise ValueError("Invalid phone number format")
        return v

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class RefreshTokenRequest(CamelModel):
    refresh_token: Optional[str] = Field(default=None, validate_default=True)

    @field_validator("refresh_token")
    @classmethod
    def token_present(cls, v: Optional[str]) -> str:
        return _required(v, "Refresh token is required")


class LogoutRequest(CamelModel):
    refresh_token: Optional[str] = None
    all_sessions: bool = False


class ForgotPasswordRequest(CamelModel):
    email: str

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        return _normalize_email(v)


class ResetPasswordRequest(CamelModel):
    token: str
    password: str

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return _strong_password(v)

    @field_validator("token")
    @classmethod
    def token_present(cls, v: str) -> str:
        return _required(v, "Token is required")


class VerifyEmailRequest(CamelModel):
    token: str

    @field_validator("token")
    @classmethod
    def token_present(cls, v: str) -> str:
        return _required(v, "Token is required")


class ResendVerificationQuery(CamelModel):
    email: str

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        return _normalize_email(v)


class SocialLoginRequest(CamelModel):
    provider: str
    access_token: str
    role: SelfServiceRole = "PLANNER"

    @field_validator("provider")
    @classmethod
    def known_provider(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if v not in {"google", "facebook"}:
            raise ValueError("Provider must be one of: google, facebook")
        return v

    @field_validator("access_token")
    @classmethod
    def token_present(cls, v: str) -> str:
        return _required(v, "Invalid access token format")


# ══════════════════════════════════════════════════════════════════════════
# Responses
# ══════════════════════════════════════════════════════════════════════════


class UserPayload(CamelModel):
    """Public view of an account. Never includes password or lockout state."""

    id: uuid.UUID
    name: str
    email: str
    role: str
    is_verified: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_user(cls, user) -> "UserPayload":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=getattr(user.role, "value", user.role),
            is_verified=user.is_verified,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class AuthPayload(CamelModel):
    user: UserPayload
    access_token: str
    refresh_token: str
    is_new_user: Optional[bool] = Field(default=None)
