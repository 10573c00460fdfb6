"""Pydantic models for the /auth, /profile/me and /account endpoints."""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from api.auth import password_problems


class RoleEnum(str, Enum):
    PATIENT = "patient"
    PROVIDER = "provider"
    ADMIN = "admin"


class AccountTypeEnum(str, Enum):
    INDIVIDUAL = "individual"
    ORGANIZATION = "organization"


class SexEnum(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    UNKNOWN = "unknown"


class Profile(BaseModel):
    """Free-form personal details kept on the user row."""

    name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=30)
    date_of_birth: Optional[dt.date] = None
    sex: Optional[SexEnum] = None
    age: Optional[int] = Field(default=None, ge=0, le=150)
    address: Optional[dict[str, Any]] = None

    @field_validator("name")
    @classmethod
    def _name_length(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters")
        return v


def _check_password(v: str) -> str:
    problems = password_problems(v)
    if problems:
        raise ValueError("; ".join(problems))
    return v


# --- Request ---


class SignUpRequest(BaseModel):
    """Request body for POST /auth/sign-up."""

    email: EmailStr
    # bcrypt only looks at the first 72 bytes
    password: str = Field(max_length=72)
    role: RoleEnum = RoleEnum.PATIENT
    type: AccountTypeEnum = AccountTypeEnum.INDIVIDUAL
    profile_json: Profile = Field(default_factory=Profile)

    @field_validator("password")
    @classmethod
    def _password_rules(cls, v: str) -> str:
        return _check_password(v)


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    email: EmailStr
    password: str = Field(min_length=1, max_length=72)


class ProfileUpdate(BaseModel):
    """Request body for PUT /profile/me. Given profile keys are merged in."""

    profile_json: Profile


class PasswordChange(BaseModel):
    """Request body for PUT /profile/me/password."""

    current_password: str = Field(min_length=1, max_length=72)
    new_password: str = Field(max_length=72)

    @field_validator("new_password")
    @classmethod
    def _password_rules(cls, v: str) -> str:
        return _check_password(v)


class DeleteAccountRequest(BaseModel):
    """Request body for POST /account/delete."""

    confirmation: str = ""


# --- Response ---


class UserResponse(BaseModel):
    id: str
    email: str
    role: str
    type: str
    name: str
    profile_json: dict[str, Any] = Field(default_factory=dict)
    created_at: str
    last_sign_in_at: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
