from __future__ import annotations

from typing import Any

from ..extensions import db
from ..models import User, UserSettings


ENUM_FIELDS: dict[str, tuple[str, ...]] = {
    "theme": ("system", "light", "dark"),
    "language": ("en", "ar"),
    "dateFormat": ("DD/MM/YYYY", "MM/DD/YYYY", "YYYY-MM-DD"),
    "timeFormat": ("24h", "12h"),
    "timezone": ("UTC", "Asia/Riyadh", "Asia/Dubai", "Africa/Cairo", "Europe/London", "America/New_York"),
    "profileVisibility": ("private", "friends", "public"),
    "defaultSharePermission": ("view", "comment", "edit"),
    "defaultViewMode": ("grid", "list", "compact"),
    "defaultSortBy": ("name", "modified", "created", "size", "type"),
}

# (minimum, maximum) per numeric field.
INT_RANGES: dict[str, tuple[int, int]] = {
    "sessionTimeout": (0, 1440),
    "defaultLinkExpiry": (0, 365),
    "trashRetentionDays": (1, 365),
    "maxPreviewSize": (1, 100),
}

DEFAULT_USER_SETTINGS: dict[str, Any] = {
    # general
    "theme": "system",
    "language": "en",
    "dateFormat": "DD/MM/YYYY",
    "timeFormat": "24h",
    "timezone": "UTC",
    # notifications
    "emailNotifications": True,
    "pushNotifications": False,
    "desktopNotifications": False,
    "notifyOnUpload": False,
    "notifyOnShare": True,
    "notifyOnComment": True,
    "notifyOnMention": True,
    "notifyOnStorageLimit": True,
    "notifyOnSecurityAlerts": True,
    "notifyOnNewFeatures": False,
    # privacy
    "profileVisibility": "private",
    "showOnlineStatus": True,
    "showLastActive": True,
    "allowIndexing": False,
    # security
    "sessionTimeout": 60,
    "loginAlertsEnabled": True,
    "requireReauthForSensitive": False,
    "defaultSharePermission": "view",
    "defaultLinkExpiry": 7,
    # file management
    "defaultViewMode": "grid",
    "defaultSortBy": "name",
    "trashRetentionDays": 30,
    "maxPreviewSize": 10,
    # upload
    "autoGenerateThumbnails": True,
    "compressImages": False,
    "deduplicateFiles": False,
    "defaultUploadFolder": None,
}


def _clamp_int(value: Any, minimum: int, maximum: int, fallback: int) -> int:
    if isinstance(value, bool):
        return fallback
    try:
        numeric = int(value)
    except (TypeError, ValueError):
        return fallback
    return max(minimum, min(maximum, numeric))


def _as_bool(value: Any, fallback: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
        return value.strip().lower() == "true"
    return fallback


def _optional_id(value: Any) -> int | None:
    if value in (None, "", "null") or isinstance(value, bool):
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def sanitize_settings(raw: dict[str, Any] | None) -> dict[str, Any]:
    """Drop unknown keys and coerce every known one back into its allowed range."""
    payload = raw or {}
    normalized: dict[str, Any] = {}
    for key, default in DEFAULT_USER_SETTINGS.items():
        value = payload.get(key, default)
        if key in ENUM_FIELDS:
            normalized[key] = value if value in ENUM_FIELDS[key] else default
        elif key in INT_RANGES:
            minimum, maximum = INT_RANGES[key]
            normalized[key] = _clamp_int(value, minimum, maximum, default)
        elif isinstance(default, bool):
            normalized[key] = _as_bool(value, default)
        else:
            normalized[key] = _optional_id(value)
    return normalized


def load_or_create_settings(user: User) -> UserSettings:
    settings = user.settings
    if settings is None:
        settings = UserSettings(user_id=user.id, payload_json=dict(DEFAULT_USER_SETTINGS))
        db.session.add(settings)
        db.session.flush()
    return settings
