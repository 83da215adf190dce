from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from ..common.audit import audit
from ..common.errors import APIError
from ..common.rbac import current_user, owned_folder, target_folder
from ..common.request_utils import parse_body, parse_nullable_int
from ..common.storage import validate_node_name
from ..extensions import db
from ..models import File, Folder
from ..schemas import FolderCreateRequest, FolderRenameRequest


folders_bp = Blueprint("folders", __name__, url_prefix="/api/folders")


def _breadcrumb(folder: Folder) -> list[dict[str, Any]]:
    path: list[dict[str, Any]] = []
    seen: set[int] = set()
    current: Folder | None = folder
    while current is not None and current.id not in seen:
        seen.add(current.id)
        path.append({"id": current.id, "name": current.name})
        current = current.parent
    path.reverse()
    return path


@folders_bp.get("")
@jwt_required()
def list_folders():
    user = current_user(required=True)
    assert user is not None

    parent_id = parse_nullable_int(request.args.get("parentId"), "parentId")
    query = Folder.query.filter(Folder.owner_id == user.id)
    if parent_id is None:
        query = query.filter(Folder.parent_id.is_(None))
    else:
        query = query.filter(Folder.parent_id == parent_id)

    folders = query.order_by(Folder.created_at.desc(), Folder.id.desc()).all()
    return jsonify({"folders": [folder.to_dict(with_counts=True) for folder in folders]})


@folders_bp.post("")
@jwt_required()
def create_folder():
    user = current_user(required=True)
    assert user is not None

    body = parse_body(FolderCreateRequest)
    name = validate_node_name(body.name)
    parent = target_folder(user, body.parent_id)

    folder = Folder(name=name, owner_id=user.id, parent_id=parent.id if parent else None)
    db.session.add(folder)
    db.session.flush()
    audit(
        action="folders.create",
        actor=user,
        target_type="folder",
        target_id=folder.id,
        payload={"name": name, "parentId": folder.parent_id},
    )
    db.session.commit()

    return jsonify({"folder": folder.to_dict(with_counts=True)}), 201


@folders_bp.get("/<int:folder_id>")
@jwt_required()
def get_folder(folder_id: int):
    user = current_user(required=True)
    assert user is not None

    folder = owned_folder(user, folder_id, "read")
    payload = folder.to_dict(with_counts=True)
    payload["parent"] = {"id": folder.parent.id, "name": folder.parent.name} if folder.parent else None
    payload["path"] = _breadcrumb(folder)
    return jsonify({"folder": payload})


@folders_bp.put("/<int:folder_id>")
@jwt_required()
def rename_folder(folder_id: int):
    user = current_user(required=True)
    assert user is not None

    folder = owned_folder(user, folder_id, "modify")
    body = parse_body(FolderRenameRequest)
    name = validate_node_name(body.name)

    previous = folder.name
    folder.name = name
    audit(
        action="folders.rename",
        actor=user,
        target_type="folder",
        target_id=folder.id,
        payload={"from": previous, "to": name},
    )
    db.session.commit()

    return jsonify({"folder": folder.to_dict(with_counts=True)})


@folders_bp.delete("/<int:folder_id>")
@jwt_required()
def delete_folder(folder_id: int):
    user = current_user(required=True)
    assert user is not None

    folder = owned_folder(user, folder_id, "delete")
    file_count = folder.active_file_count()
    child_count = folder.child_count()
    if file_count or child_count:
        raise APIError(
            400,
            "FOLDER_NOT_EMPTY",
            "Folder must be empty before it can be deleted.",
            {"files": file_count, "children": child_count},
        )

    # Soft-deleted files keep their rows; they fall back to root placement.
    File.query.filter(File.folder_id == folder.id).update({File.folder_id: None}, synchronize_session=False)
    db.session.delete(folder)
    audit(
        action="folders.delete",
        actor=user,
        target_type="folder",
        target_id=folder_id,
        payload={"name": folder.name},
    )
    db.session.commit()

    return jsonify({"success": True, "message": "Folder deleted successfully."})
