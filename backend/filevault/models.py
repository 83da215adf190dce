from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any

from argon2 import PasswordHasher
from argon2.exceptions import VerificationError, VerifyMismatchError

from .extensions import db


pwd_hasher = PasswordHasher()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


user_roles = db.Table(
    "user_roles",
    db.Column("user_id", db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    db.Column("role_id", db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class RoleName(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"
    GUEST = "guest"


class AccountStatus(str, enum.Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DISABLED = "disabled"


class LoginStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"


class Role(db.Model):
    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), unique=True, nullable=False)
    description = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "description": self.description}


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(120), nullable=True)
    password_hash = db.Column(db.String(255), nullable=False)
    image = db.Column(db.String(512), nullable=True)
    locale = db.Column(db.String(8), nullable=False, default="en")
    account_status = db.Column(db.Enum(AccountStatus), nullable=False, default=AccountStatus.ACTIVE)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    suspended_at = db.Column(db.DateTime(timezone=True), nullable=True)
    suspended_reason = db.Column(db.String(500), nullable=True)
    suspended_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    storage_quota_bytes = db.Column(db.BigInteger, nullable=False, default=0)
    used_storage_bytes = db.Column(db.BigInteger, nullable=False, default=0)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    roles = db.relationship("Role", secondary=user_roles, lazy="joined")
    files = db.relationship("File", back_populates="owner", cascade="all, delete-orphan")
    folders = db.relationship("Folder", back_populates="owner", cascade="all, delete-orphan")
    settings = db.relationship("UserSettings", uselist=False, back_populates="user", cascade="all, delete-orphan")

    def set_password(self, password: str) -> None:
        self.password_hash = pwd_hasher.hash(password)

    def verify_password(self, password: str) -> bool:
        try:
            return pwd_hasher.verify(self.password_hash, password)
        except (VerifyMismatchError, VerificationError):
            return False

    @property
    def role_names(self) -> list[str]:
        return [role.name for role in self.roles]

    @property
    def is_admin(self) -> bool:
        return RoleName.ADMIN.value in self.role_names

    @property
    def can_sign_in(self) -> bool:
        return self.is_active and self.account_status == AccountStatus.ACTIVE

    @property
    def avatar_url(self) -> str | None:
        return "/api/user/avatar" if self.image else None

    def storage_summary(self) -> dict[str, int]:
        quota = int(self.storage_quota_bytes or 0)
        used = int(self.used_storage_bytes or 0)
        return {
            "quotaBytes": quota,
            "usedBytes": used,
            "utilization": round(used / quota * 100) if quota > 0 else 0,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name or "",
            "image": self.avatar_url,
            "locale": self.locale,
            "status": self.account_status.value,
            "isActive": self.is_active,
            "suspendedAt": isoformat(self.suspended_at),
            "suspendedReason": self.suspended_reason,
            "roles": self.role_names,
            "storageQuotaBytes": self.storage_quota_bytes,
            "usedStorageBytes": self.used_storage_bytes,
            "lastLoginAt": isoformat(self.last_login_at),
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }


class Folder(db.Model):
    __tablename__ = "folders"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("folders.id", ondelete="CASCADE"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    owner = db.relationship("User", back_populates="folders")
    parent = db.relationship("Folder", remote_side=[id], back_populates="children")
    children = db.relationship("Folder", back_populates="parent")
    files = db.relationship("File", back_populates="folder")

    def active_file_count(self) -> int:
        return File.query.filter(File.folder_id == self.id, File.deleted_at.is_(None)).count()

    def child_count(self) -> int:
        return Folder.query.filter(Folder.parent_id == self.id).count()

    def to_dict(self, with_counts: bool = False) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "ownerId": self.owner_id,
            "parentId": self.parent_id,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }
        if with_counts:
            payload["counts"] = {"files": self.active_file_count(), "children": self.child_count()}
        return payload


class File(db.Model):
    __tablename__ = "files"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    folder_id = db.Column(db.Integer, db.ForeignKey("folders.id", ondelete="SET NULL"), nullable=True, index=True)
    size = db.Column(db.BigInteger, nullable=False, default=0)
    mime_type = db.Column(db.String(255), nullable=False)
    storage_key = db.Column(db.String(512), nullable=False)
    metadata_json = db.Column("metadata", db.JSON, nullable=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    owner = db.relationship("User", back_populates="files")
    folder = db.relationship("Folder", back_populates="files")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def download_url(self) -> str:
        return f"/api/files/{self.id}/download"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "ownerId": self.owner_id,
            "folderId": self.folder_id,
            "folder": {"id": self.folder.id, "name": self.folder.name} if self.folder else None,
            "size": self.size,
            "mimeType": self.mime_type,
            "metadata": self.metadata_json or {},
            "url": self.download_url,
            "deletedAt": isoformat(self.deleted_at),
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }


class FileTypePolicy(db.Model):
    __tablename__ = "file_type_policies"

    id = db.Column(db.Integer, primary_key=True)
    mime_type = db.Column(db.String(255), unique=True, nullable=False)
    extension = db.Column(db.String(32), nullable=True)
    category = db.Column(db.String(64), nullable=True, index=True)
    is_allowed = db.Column(db.Boolean, nullable=False, default=True)
    max_file_size = db.Column(db.BigInteger, nullable=True)
    requires_approval = db.Column(db.Boolean, nullable=False, default=False)
    scan_on_upload = db.Column(db.Boolean, nullable=False, default=True)
    generate_preview = db.Column(db.Boolean, nullable=False, default=False)
    convert_format = db.Column(db.String(64), nullable=True)
    display_name = db.Column(db.String(120), nullable=True)
    icon = db.Column(db.String(64), nullable=True)
    color = db.Column(db.String(32), nullable=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "mimeType": self.mime_type,
            "extension": self.extension,
            "category": self.category,
            "isAllowed": self.is_allowed,
            "maxFileSize": self.max_file_size,
            "requiresApproval": self.requires_approval,
            "scanOnUpload": self.scan_on_upload,
            "generatePreview": self.generate_preview,
            "convertFormat": self.convert_format,
            "displayName": self.display_name,
            "icon": self.icon,
            "color": self.color,
            "createdBy": self.created_by_id,
            "updatedBy": self.updated_by_id,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }


class SystemSetting(db.Model):
    __tablename__ = "system_settings"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(191), unique=True, nullable=False)
    value = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(64), nullable=False, index=True)
    description = db.Column(db.String(500), nullable=True)
    is_public = db.Column(db.Boolean, nullable=False, default=False)
    updated_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    @staticmethod
    def category_for(key: str) -> str:
        return key.split(".", 1)[0]

    @classmethod
    def get_value(cls, key: str, default: str | None = None) -> str | None:
        setting = cls.query.filter_by(key=key).one_or_none()
        return setting.value if setting is not None else default

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "value": self.value,
            "category": self.category,
            "description": self.description,
            "isPublic": self.is_public,
            "updatedBy": self.updated_by_id,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }


class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    actor_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    action = db.Column(db.String(128), nullable=False, index=True)
    target_type = db.Column(db.String(64), nullable=True)
    target_id = db.Column(db.String(128), nullable=True)
    payload = db.Column(db.JSON, nullable=True)
    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now, index=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "actorId": self.actor_id,
            "action": self.action,
            "targetType": self.target_type,
            "targetId": self.target_id,
            "payload": self.payload or {},
            "ip": self.ip,
            "userAgent": self.user_agent,
            "createdAt": isoformat(self.created_at),
        }


class LoginHistory(db.Model):
    __tablename__ = "login_history"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = db.Column(db.Enum(LoginStatus), nullable=False)
    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)
    device = db.Column(db.String(64), nullable=True)
    location = db.Column(db.String(120), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now, index=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "status": self.status.value,
            "ip": self.ip,
            "userAgent": self.user_agent,
            "device": self.device,
            "location": self.location,
            "createdAt": isoformat(self.created_at),
        }


class QuotaHistory(db.Model):
    __tablename__ = "quota_history"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    previous_quota = db.Column(db.BigInteger, nullable=False)
    new_quota = db.Column(db.BigInteger, nullable=False)
    changed_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reason = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "previousQuota": self.previous_quota,
            "newQuota": self.new_quota,
            "changedBy": self.changed_by_id,
            "reason": self.reason,
            "createdAt": isoformat(self.created_at),
        }


class UserSettings(db.Model):
    __tablename__ = "user_settings"

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    payload_json = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    user = db.relationship("User", back_populates="settings")
