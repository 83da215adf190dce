from __future__ import annotations

import mimetypes

from werkzeug.datastructures import FileStorage


ALLOWED_FILE_TYPES: dict[str, tuple[str, ...]] = {
    "image": ("image/jpeg", "image/png", "image/gif", "image/webp", "image/svg+xml"),
    "document": (
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "text/plain",
        "text/csv",
    ),
    "video": ("video/mp4", "video/mpeg", "video/quicktime", "video/webm"),
    "audio": ("audio/mpeg", "audio/wav", "audio/ogg", "audio/webm"),
    "archive": ("application/zip", "application/x-rar-compressed", "application/x-7z-compressed"),
}

ALL_ALLOWED_TYPES = frozenset(mime for group in ALLOWED_FILE_TYPES.values() for mime in group)

AVATAR_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png", "image/webp"})

_GENERIC_TYPES = {"", "application/octet-stream"}


def detect_mime_type(file_obj: FileStorage) -> str:
    declared = (file_obj.mimetype or "").strip().lower()
    if declared not in _GENERIC_TYPES:
        return declared
    guessed, _ = mimetypes.guess_type(file_obj.filename or "")
    return (guessed or declared or "application/octet-stream").lower()


def is_allowed_type(mime_type: str) -> bool:
    return mime_type in ALL_ALLOWED_TYPES


def file_category(mime_type: str) -> str:
    for category, types in ALLOWED_FILE_TYPES.items():
        if mime_type in types:
            return category
    return "other"


def format_size(size: int) -> str:
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB", "TB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"
