"""Request bodies accepted by the JSON API.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

import re
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from .models import AccountStatus


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(value: str) -> str:
    cleaned = value.strip().lower()
    if not EMAIL_PATTERN.match(cleaned):
        raise ValueError("Invalid email format.")
    return cleaned


def check_password_strength(value: str) -> str:
    problems = []
    if len(value) < 8:
        problems.append("at least 8 characters")
    if not re.search(r"[A-Z]", value):
        problems.append("an uppercase letter")
    if not re.search(r"[a-z]", value):
        problems.append("a lowercase letter")
    if not re.search(r"[0-9]", value):
        problems.append("a digit")
    if problems:
        raise ValueError("Password must contain " + ", ".join(problems) + ".")
    return value


class APIModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class RegisterRequest(APIModel):
    email: str
    password: str
    name: Optional[str] = Field(default=None, min_length=2, max_length=120)

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        return normalize_email(value)

    @field_validator("password")
    @classmethod
    def _strength(cls, value: str) -> str:
        return check_password_strength(value)


class LoginRequest(APIModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def _lower(cls, value: str) -> str:
        return value.strip().lower()


class UpdateProfileRequest(APIModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=120)
    email: Optional[str] = None
    locale: Optional[Literal["en", "ar"]] = None

    @field_validator("email")
    @classmethod
    def _email(cls, value: Optional[str]) -> Optional[str]:
        return normalize_email(value) if value is not None else None


class ChangePasswordRequest(APIModel):
    current_password: str = Field(..., min_length=1)
    new_password: str
    confirm_password: str

    @field_validator("new_password")
    @classmethod
    def _strength(cls, value: str) -> str:
        return check_password_strength(value)

    @field_validator("confirm_password")
    @classmethod
    def _matches(cls, value: str, info: ValidationInfo) -> str:
        if "new_password" in info.data and value != info.data["new_password"]:
            raise ValueError("Passwords do not match.")
        return value


class FolderCreateRequest(APIModel):
    name: str = Field(..., max_length=255)
    parent_id: Optional[int] = None


class FolderRenameRequest(APIModel):
    name: str = Field(..., max_length=255)


class AdminUserCreateRequest(APIModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: str
    password: str = Field(..., min_length=6)
    storage_quota_bytes: Optional[int] = Field(default=None, gt=0)
    role: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        return normalize_email(value)


class AdminUserUpdateRequest(APIModel):
    name: Optional[str] = Field(default=None, max_length=120)
    email: Optional[str] = None
    storage_quota_bytes: Optional[int] = Field(default=None, gt=0)
    role: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _email(cls, value: Optional[str]) -> Optional[str]:
        return normalize_email(value) if value is not None else None


class AdminUserStatusRequest(APIModel):
    is_active: Optional[bool] = None
    account_status: Optional[AccountStatus] = None
    suspended_reason: Optional[str] = Field(default=None, max_length=500)


class AdminQuotaRequest(APIModel):
    quota_bytes: int = Field(..., gt=0)
    reason: Optional[str] = Field(default=None, max_length=500)


class FileTypePolicyCreateRequest(APIModel):
    mime_type: str = Field(..., min_length=1, max_length=255)
    extension: Optional[str] = Field(default=None, max_length=32)
    category: Optional[str] = Field(default=None, max_length=64)
    is_allowed: bool = True
    max_file_size: Optional[int] = Field(default=None, gt=0)
    requires_approval: bool = False
    scan_on_upload: bool = True
    generate_preview: bool = False
    convert_format: Optional[str] = Field(default=None, max_length=64)
    display_name: Optional[str] = Field(default=None, max_length=120)
    icon: Optional[str] = Field(default=None, max_length=64)
    color: Optional[str] = Field(default=None, max_length=32)

    @field_validator("mime_type")
    @classmethod
    def _mime(cls, value: str) -> str:
        cleaned = value.strip().lower()
        if "/" not in cleaned:
            raise ValueError("MIME type must look like 'type/subtype'.")
        return cleaned


class FileTypePolicyUpdateRequest(APIModel):
    extension: Optional[str] = Field(default=None, max_length=32)
    category: Optional[str] = Field(default=None, max_length=64)
    is_allowed: Optional[bool] = None
    max_file_size: Optional[int] = Field(default=None, gt=0)
    requires_approval: Optional[bool] = None
    scan_on_upload: Optional[bool] = None
    generate_preview: Optional[bool] = None
    convert_format: Optional[str] = Field(default=None, max_length=64)
    display_name: Optional[str] = Field(default=None, max_length=120)
    icon: Optional[str] = Field(default=None, max_length=64)
    color: Optional[str] = Field(default=None, max_length=32)


class SystemSettingCreateRequest(APIModel):
    key: str = Field(..., min_length=1, max_length=191)
    value: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1, max_length=64)
    description: Optional[str] = Field(default=None, max_length=500)
    is_public: bool = False


class SystemSettingUpdateRequest(APIModel):
    value: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=500)
    is_public: Optional[bool] = None


class SystemSettingsBulkRequest(APIModel):
    settings: dict[str, Any]

    @field_validator("settings")
    @classmethod
    def _keys(cls, value: dict[str, Any]) -> dict[str, Any]:
        for key in value:
            if not key.strip() or len(key) > 191:
                raise ValueError(f"Invalid setting key: {key!r}.")
        return value
