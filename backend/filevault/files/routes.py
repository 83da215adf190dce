from __future__ import annotations

import math
from pathlib import Path

from flask import Blueprint, current_app, jsonify, request, send_file
from flask_jwt_extended import jwt_required

from ..common.audit import audit
from ..common.errors import APIError
from ..common.file_types import detect_mime_type, file_category, is_allowed_type
from ..common.quotas import fits_quota, release_storage, reserve_storage
from ..common.rbac import current_user, owned_file, target_folder
from ..common.request_utils import parse_int, parse_nullable_int
from ..common.storage import (
    discard,
    display_name,
    promote,
    resolve_storage_path,
    sanitize_filename,
    stream_size,
    unique_filename,
    write_temporary,
)
from ..extensions import db
from ..models import File, utc_now


files_bp = Blueprint("files", __name__, url_prefix="/api/files")

SORT_COLUMNS = {
    "name": File.name,
    "size": File.size,
    "createdAt": File.created_at,
    "updatedAt": File.updated_at,
    "mimeType": File.mime_type,
}


def _storage_root() -> Path:
    return Path(current_app.config["STORAGE_ROOT"]).resolve()


@files_bp.get("")
@jwt_required()
def list_files():
    user = current_user(required=True)
    assert user is not None

    folder_id = parse_nullable_int(request.args.get("folderId"), "folderId")
    page = parse_int(request.args.get("page"), "page", default=1)
    limit = parse_int(request.args.get("limit"), "limit", default=20, maximum=100)

    sort_by = request.args.get("sortBy") or "createdAt"
    if sort_by not in SORT_COLUMNS:
        raise APIError(400, "INVALID_PARAMETER", f"sortBy must be one of: {', '.join(SORT_COLUMNS)}.")
    sort_order = (request.args.get("sortOrder") or "desc").lower()
    if sort_order not in {"asc", "desc"}:
        raise APIError(400, "INVALID_PARAMETER", "sortOrder must be 'asc' or 'desc'.")

    query = File.query.filter(File.owner_id == user.id, File.deleted_at.is_(None))
    if folder_id is None:
        query = query.filter(File.folder_id.is_(None))
    else:
        query = query.filter(File.folder_id == folder_id)

    column = SORT_COLUMNS[sort_by]
    ordering = column.asc() if sort_order == "asc" else column.desc()

    total_count = query.count()
    items = query.order_by(ordering, File.id.desc()).offset((page - 1) * limit).limit(limit).all()

    return jsonify(
        {
            "files": [item.to_dict() for item in items],
            "pagination": {
                "page": page,
                "limit": limit,
                "totalCount": total_count,
                "totalPages": math.ceil(total_count / limit) if total_count else 0,
                "hasMore": page * limit < total_count,
            },
        }
    )


@files_bp.post("/upload")
@jwt_required()
def upload_file():
    user = current_user(required=True)
    assert user is not None

    file_obj = request.files.get("file")
    if file_obj is None or not file_obj.filename:
        raise APIError(400, "NO_FILE", "Multipart field 'file' is required.")

    mime_type = detect_mime_type(file_obj)
    if not is_allowed_type(mime_type):
        raise APIError(400, "FILE_TYPE_NOT_ALLOWED", f"File type {mime_type} is not allowed.")

    file_size = stream_size(file_obj)
    if file_size <= 0:
        raise APIError(400, "EMPTY_FILE", "File is empty.")
    max_size = int(current_app.config["MAX_UPLOAD_SIZE_BYTES"])
    if file_size > max_size:
        raise APIError(400, "FILE_TOO_LARGE", "File exceeds the maximum upload size.", {"maxBytes": max_size})

    if not fits_quota(user, file_size):
        raise APIError(400, "QUOTA_EXCEEDED", "Storage quota exceeded.")

    folder_id = parse_nullable_int(request.form.get("folderId"), "folderId")
    folder = target_folder(user, folder_id)

    file_name = display_name(file_obj.filename)
    storage_key = f"files/{user.id}/{unique_filename(sanitize_filename(file_name))}"
    storage_root = _storage_root()

    temp_path = write_temporary(file_obj, storage_root)
    final_path: Path | None = None
    try:
        reserve_storage(user, file_size)

        record = File(
            name=file_name,
            owner_id=user.id,
            folder_id=folder.id if folder else None,
            size=file_size,
            mime_type=mime_type,
            storage_key=storage_key,
            metadata_json={
                "originalName": file_name,
                "category": file_category(mime_type),
                "uploadedAt": utc_now().isoformat(),
            },
        )
        db.session.add(record)
        db.session.flush()
        audit(
            action="files.upload",
            actor=user,
            target_type="file",
            target_id=record.id,
            payload={"name": file_name, "size": file_size, "folderId": record.folder_id},
        )

        final_path = promote(temp_path, storage_root, storage_key)
        db.session.commit()
    except Exception as error:
        db.session.rollback()
        discard(temp_path, final_path)
        if not isinstance(error, APIError):
            current_app.logger.error("Upload failed for user_id=%s: %s", user.id, error)
        raise

    payload = record.to_dict()
    return (
        jsonify(
            {
                "success": True,
                "file": {key: payload[key] for key in ("id", "name", "size", "mimeType", "createdAt", "folder", "url")},
            }
        ),
        201,
    )


@files_bp.get("/<int:file_id>")
@jwt_required()
def get_file(file_id: int):
    user = current_user(required=True)
    assert user is not None

    record = owned_file(user, file_id, "read")
    return jsonify({"file": record.to_dict()})


@files_bp.get("/<int:file_id>/download")
@jwt_required()
def download_file(file_id: int):
    user = current_user(required=True)
    assert user is not None

    record = owned_file(user, file_id, "download")
    if record.is_deleted:
        raise APIError(404, "FILE_NOT_FOUND", "File not found.")

    abs_path = resolve_storage_path(_storage_root(), record.storage_key)
    if not abs_path.exists():
        current_app.logger.warning("File %s is missing on disk at %s", record.id, record.storage_key)
        raise APIError(404, "FILE_MISSING", "File data not found on disk.")

    return send_file(abs_path, as_attachment=True, download_name=record.name, mimetype=record.mime_type)


@files_bp.delete("/<int:file_id>")
@jwt_required()
def delete_file(file_id: int):
    user = current_user(required=True)
    assert user is not None

    record = owned_file(user, file_id, "delete")
    if record.is_deleted:
        raise APIError(404, "FILE_NOT_FOUND", "File not found.")

    record.deleted_at = utc_now()
    release_storage(record.owner_id, record.size)
    audit(
        action="files.delete",
        actor=user,
        target_type="file",
        target_id=record.id,
        payload={"name": record.name, "size": record.size},
    )
    db.session.commit()

    return jsonify({"success": True, "message": "File deleted successfully."})
