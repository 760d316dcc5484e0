"""Authentication schemas."""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, EmailStr, Field, field_validator

PASSWORD_MIN_LENGTH = 12

_PASSWORD_RULES = (
    (re.compile(r"[A-Z]"), "Password must contain at least 1 uppercase letter"),
    (re.compile(r"[0-9]"), "Password must contain at least 1 number"),
    (re.compile(r"[^A-Za-z0-9]"), "Password must contain at least 1 special character"),
)


def check_password_strength(value: str) -> str:
    """Reject passwords that are short or lack an uppercase letter, digit or symbol."""
    if len(value) < PASSWORD_MIN_LENGTH:
        raise ValueError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    for pattern, message in _PASSWORD_RULES:
        if not pattern.search(value):
            raise ValueError(message)
    return value


class LoginRequest(BaseModel):
    """Login request."""

    email: str = Field(min_length=3, max_length=254)
    password: str = Field(min_length=1, max_length=200)


class RegisterRequest(BaseModel):
    """Self-registration request. New accounts get the ``mod_signer`` role."""

    email: EmailStr
    password: str = Field(max_length=200)
    nickname: str = Field(min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return check_password_strength(v)


class TokenResponse(BaseModel):
    """JWT access token response."""

    access_token: str
    token_type: Literal["bearer"] = "bearer"


class PasswordChange(BaseModel):
    """Request to change the caller's password."""

    current_password: str = Field(min_length=1)
    new_password: str = Field(max_length=200)
    confirm_password: str = Field(min_length=1, max_length=200)

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return check_password_strength(v)


class UserResponse(BaseModel):
    """User info response."""

    id: int
    nickname: str
    role: str
    created_at: str
