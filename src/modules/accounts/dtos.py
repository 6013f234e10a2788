"""Account DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
DTOs are immutable (``frozen=True``).

Emails are normalised to lower case: the email doubles as the login name.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, EmailStr, field_validator

MIN_PASSWORD_LENGTH = 6


class RoleEnum(StrEnum):
    """Store roles. ``admin`` maps to Django's ``is_staff`` flag."""

    ADMIN = "admin"
    CUSTOMER = "customer"


def _clean_name(v: str) -> str:
    v = v.strip()
    if not 2 <= len(v) <= 100:
        raise ValueError("Name must have between 2 and 100 characters.")
    return v


def _check_password(v: str) -> str:
    if len(v) < MIN_PASSWORD_LENGTH:
        raise ValueError(
            f"Password must have at least {MIN_PASSWORD_LENGTH} characters."
        )
    return v


class RegisterUserDTO(BaseModel):
    """Self-service registration or admin-created account.

    Self-registration always produces a customer; only the admin endpoint
    passes another ``role``.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    email: EmailStr
    password: str
    role: RoleEnum = RoleEnum.CUSTOMER

    @field_validator("name")
    @classmethod
    def name_length(cls, v: str) -> str:
        return _clean_name(v)

    @field_validator("password")
    @classmethod
    def password_length(cls, v: str) -> str:
        return _check_password(v)

    @field_validator("email")
    @classmethod
    def normalise_email(cls, v: str) -> str:
        return v.lower()


class UpdateUserDTO(BaseModel):
    """Admin update of an account. Only supplied fields are changed."""

    model_config = ConfigDict(frozen=True)

    name: str | None = None
    email: EmailStr | None = None
    role: RoleEnum | None = None
    password: str | None = None

    @field_validator("name")
    @classmethod
    def name_length(cls, v: str | None) -> str | None:
        return None if v is None else _clean_name(v)

    @field_validator("email")
    @classmethod
    def normalise_email(cls, v: str | None) -> str | None:
        return None if v is None else v.lower()

    @field_validator("password")
    @classmethod
    def password_length(cls, v: str | None) -> str | None:
        return None if v is None else _check_password(v)


class ChangePasswordDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_password: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def new_password_length(cls, v: str) -> str:
        return _check_password(v)
