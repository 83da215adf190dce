from __future__ import annotations

import os
import re
import secrets
import shutil
import string
import time
from pathlib import Path
from uuid import uuid4

from werkzeug.datastructures import FileStorage

from .errors import APIError


INVALID_NAME_PATTERN = re.compile(r"[\\/\x00]")
UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
REPEATED_UNDERSCORES = re.compile(r"_{2,}")
TEMP_DIR_NAME = ".incoming"
# Keeps stored names under the 255-byte filesystem limit once the suffix is added.
MAX_STORED_STEM_LENGTH = 200
MAX_STORED_EXTENSION_LENGTH = 16


def validate_node_name(name: str) -> str:
    cleaned = name.strip()
    if not cleaned:
        raise APIError(400, "INVALID_NAME", "Name cannot be empty.")
    if len(cleaned) > 255:
        raise APIError(400, "INVALID_NAME", "Name must be <= 255 characters.")
    if INVALID_NAME_PATTERN.search(cleaned):
        raise APIError(400, "INVALID_NAME", "Name contains invalid characters.")
    if cleaned in {".", ".."}:
        raise APIError(400, "INVALID_NAME", "Reserved name.")
    return cleaned


def display_name(filename: str | None) -> str:
    """Client filename reduced to its last path component."""
    raw = (filename or "").replace("\\", "/")
    return validate_node_name(raw.rsplit("/", 1)[-1])


def sanitize_filename(filename: str) -> str:
    cleaned = UNSAFE_FILENAME_CHARS.sub("_", filename)
    cleaned = REPEATED_UNDERSCORES.sub("_", cleaned)
    return cleaned.strip("_")


def file_extension(filename: str) -> str:
    if "." not in filename:
        return ""
    return "." + filename.rsplit(".", 1)[-1].lower()


def unique_filename(filename: str) -> str:
    extension = file_extension(filename)
    stem = filename[: len(filename) - len(extension)] if extension else filename
    stem = stem[:MAX_STORED_STEM_LENGTH] or "file"
    extension = extension[:MAX_STORED_EXTENSION_LENGTH]
    timestamp = int(time.time() * 1000)
    suffix = "".join(secrets.choice(string.ascii_lowercase + string.digits) for _ in range(6))
    return f"{stem}_{timestamp}_{suffix}{extension}"


def _safe_resolve(storage_root: Path, relative_path: str) -> Path:
    root = storage_root.resolve()
    candidate = (root / relative_path).resolve()
    if os.path.commonpath([str(root), str(candidate)]) != str(root):
        raise APIError(400, "INVALID_PATH", "Invalid storage path.")
    return candidate


def stream_size(file_obj: FileStorage) -> int:
    stream = file_obj.stream
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


def write_temporary(file_obj: FileStorage, storage_root: Path) -> Path:
    """Spool an upload below the storage root; the caller moves or discards it."""
    temp_dir = _safe_resolve(storage_root, TEMP_DIR_NAME)
    temp_dir.mkdir(parents=True, exist_ok=True)
    temp_path = temp_dir / f"{uuid4().hex}.part"

    file_obj.stream.seek(0)
    try:
        with temp_path.open("wb") as output:
            shutil.copyfileobj(file_obj.stream, output)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise
    return temp_path


def promote(temp_path: Path, storage_root: Path, relative_path: str) -> Path:
    target_path = _safe_resolve(storage_root, relative_path)
    target_path.parent.mkdir(parents=True, exist_ok=True)
    os.replace(temp_path, target_path)
    return target_path


def discard(*paths: Path | None) -> None:
    for path in paths:
        if path is not None and path.exists():
            path.unlink()


def delete_storage_path(storage_root: Path, relative_path: str | None) -> None:
    if not relative_path:
        return

    target_path = _safe_resolve(storage_root, relative_path)
    if target_path.exists():
        target_path.unlink()


def resolve_storage_path(storage_root: Path, relative_path: str) -> Path:
    return _safe_resolve(storage_root, relative_path)
