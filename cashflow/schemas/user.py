"""Pydantic schemas for registration, profiles and role management."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, field_validator

from cashflow.core.enums import AppRole


def normalise_email(v: str) -> str:
    v = v.strip().lower()
    if "@" not in v or v.startswith("@") or v.endswith("@"):
        raise ValueError("Invalid email address")
    if len(v) > 320:
        raise ValueError("Email must not exceed 320 characters")
    return v


def _clean_full_name(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip()
    if len(v) > 200:
        raise ValueError("Full name must not exceed 200 characters")
    return v or None


class UserCreate(BaseModel):
    email: str
    password: str
    full_name: str | None = None

    @field_validator("email")
    @classmethod
    def _normalise_email(cls, v: str) -> str:
        return normalise_email(v)

    @field_validator("full_name")
    @classmethod
    def _full_name(cls, v: str | None) -> str | None:
        return _clean_full_name(v)


class UserRead(BaseModel):
    id: uuid.UUID
    email: str
    full_name: str | None
    role: AppRole | None = None
    created_at: datetime | None

    model_config = {"from_attributes": True}


class PermissionsRead(BaseModel):
    can_view: bool
    can_edit: bool
    can_insert_expense: bool
    can_insert_income: bool
    can_delete: bool
    is_admin: bool


class CurrentUserRead(UserRead):
    roles: list[AppRole]
    permissions: PermissionsRead


class ProfileUpdate(BaseModel):
    full_name: str | None = None

    @field_validator("full_name")
    @classmethod
    def _full_name(cls, v: str | None) -> str | None:
        return _clean_full_name(v)


class RoleUpdate(BaseModel):
    role: AppRole
