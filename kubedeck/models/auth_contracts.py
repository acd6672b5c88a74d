from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator

from kubedeck.models.envelope_contracts import WireModel

UserStatus = Literal["active", "inactive", "locked"]


class LoginRequest(WireModel):
    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1)
    remember: bool = False

    @field_validator("username", mode="before")
    @classmethod
    def _strip_username(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value


class User(WireModel):
    id: int
    username: str
    email: str = ""
    full_name: str = ""
    role: str = ""
    status: str = "active"
    created_at: str | None = None
    updated_at: str | None = None


class LoginResponse(WireModel):
    user: User
    token: str = Field(min_length=1)
    refresh_token: str = Field(min_length=1)
    expires_in: int


class RefreshTokenResponse(WireModel):
    token: str = Field(min_length=1)
    refresh_token: str = Field(min_length=1)
    expires_in: int


class ChangePasswordRequest(WireModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8)


class CreateUserRequest(WireModel):
    username: str = Field(min_length=1, max_length=50)
    email: str = Field(min_length=3, max_length=255)
    full_name: str = Field(default="", max_length=100)
    password: str = Field(min_length=8)
    role: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        normalized = value.strip()
        local, separator, domain = normalized.partition("@")
        if not separator or not local or "." not in domain:
            raise ValueError("email must look like name@example.org")
        return normalized


class UpdateUserRequest(WireModel):
    email: str | None = None
    full_name: str | None = None
    role: str | None = None
    status: UserStatus | None = None
