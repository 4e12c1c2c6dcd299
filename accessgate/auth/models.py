"""Pydantic models for the account/authentication domain."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _normalize_email(value: str) -> str:
    normalized = value.strip().lower()
    if not EMAIL_PATTERN.match(normalized):
        raise ValueError("Invalid email address")
    return normalized


class Account(BaseModel):
    """Persisted account."""

    account_id: str
    name: str
    email: str
    password_hash: str
    role: str = "user"
    is_verified: bool = False
    created_at: float = 0.0

    def summary(self) -> "AccountSummary":
        return AccountSummary(
            account_id=self.account_id,
            name=self.name,
            email=self.email,
            role=self.role,
            is_verified=self.is_verified,
        )


class AccountSummary(BaseModel):
    """Account fields safe to return to clients."""

    account_id: str
    name: str
    email: str
    role: str
    is_verified: bool


class SignupRequest(BaseModel):
    """Signup request payload."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=2, max_length=120)
    email: str = Field(max_length=254)
    password: str = Field(min_length=8, max_length=256)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        stripped = value.strip()
        if len(stripped) < 2:
            raise ValueError("Name must be at least 2 characters long")
        return stripped

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        return _normalize_email(value)

    @field_validator("password")
    @classmethod
    def _check_password_strength(cls, value: str) -> str:
        if not re.search(r"[A-Z]", value):
            raise ValueError("Password must contain at least one uppercase letter")
        if not re.search(r"[a-z]", value):
            raise ValueError("Password must contain at least one lowercase letter")
        if not re.search(r"[0-9]", value):
            raise ValueError("Password must contain at least one number")
        if not re.search(r"[\W_]", value):
            raise ValueError("Password must contain at least one special character")
        return value


class LoginRequest(BaseModel):
    """Login request payload."""

    email: str = Field(max_length=254)
    password: str = Field(min_length=8, max_length=256)

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        return _normalize_email(value)


class ResendVerificationRequest(BaseModel):
    """Request a fresh verification email."""

    email: str = Field(max_length=254)

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        return _normalize_email(value)


class AuthSession(BaseModel):
    """Token pair issued by login and refresh."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: AccountSummary
