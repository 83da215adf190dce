from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from ..common.audit import audit
from ..common.errors import APIError
from ..common.rbac import admin_required, current_user
from ..common.request_utils import parse_body, parse_bool
from ..extensions import db
from ..models import FileTypePolicy
from ..schemas import FileTypePolicyCreateRequest, FileTypePolicyUpdateRequest


admin_file_types_bp = Blueprint("file_types", __name__, url_prefix="/file-types")


def _get_policy(policy_id: int) -> FileTypePolicy:
    policy = db.session.get(FileTypePolicy, policy_id)
    if policy is None:
        raise APIError(404, "FILE_TYPE_NOT_FOUND", "File type policy not found.")
    return policy


@admin_file_types_bp.get("")
@jwt_required()
@admin_required
def list_file_types():
    category = (request.args.get("category") or "").strip()
    is_allowed = parse_bool(request.args.get("isAllowed"), "isAllowed")

    query = FileTypePolicy.query
    if category:
        query = query.filter(FileTypePolicy.category == category)
    if is_allowed is not None:
        query = query.filter(FileTypePolicy.is_allowed == is_allowed)

    policies = query.order_by(FileTypePolicy.category.asc(), FileTypePolicy.mime_type.asc()).all()
    return jsonify({"fileTypes": [policy.to_dict() for policy in policies]})


@admin_file_types_bp.post("")
@jwt_required()
@admin_required
def create_file_type():
    actor = current_user(required=True)
    assert actor is not None

    body = parse_body(FileTypePolicyCreateRequest)
    if FileTypePolicy.query.filter_by(mime_type=body.mime_type).one_or_none() is not None:
        raise APIError(409, "FILE_TYPE_EXISTS", "A policy for this MIME type already exists.")

    policy = FileTypePolicy(**body.model_dump(), created_by_id=actor.id, updated_by_id=actor.id)
    db.session.add(policy)
    db.session.flush()
    audit(
        action="admin.file_type_create",
        actor=actor,
        target_type="file_type_policy",
        target_id=policy.id,
        payload={"mimeType": policy.mime_type, "isAllowed": policy.is_allowed},
    )
    db.session.commit()

    return jsonify({"success": True, "fileType": policy.to_dict()}), 201


@admin_file_types_bp.patch("/<int:policy_id>")
@jwt_required()
@admin_required
def update_file_type(policy_id: int):
    actor = current_user(required=True)
    assert actor is not None

    policy = _get_policy(policy_id)
    body = parse_body(FileTypePolicyUpdateRequest)
    changes = body.model_dump(include=body.model_fields_set)

    for field, value in changes.items():
        if value is None and field in {"is_allowed", "requires_approval", "scan_on_upload", "generate_preview"}:
            continue
        setattr(policy, field, value)
    policy.updated_by_id = actor.id

    audit(
        action="admin.file_type_update",
        actor=actor,
        target_type="file_type_policy",
        target_id=policy.id,
        payload={"mimeType": policy.mime_type, "fields": sorted(changes)},
    )
    db.session.commit()

    return jsonify({"success": True, "fileType": policy.to_dict()})


@admin_file_types_bp.delete("/<int:policy_id>")
@jwt_required()
@admin_required
def delete_file_type(policy_id: int):
    actor = current_user(required=True)
    assert actor is not None

    policy = _get_policy(policy_id)
    mime_type = policy.mime_type
    db.session.delete(policy)
    audit(
        action="admin.file_type_delete",
        actor=actor,
        target_type="file_type_policy",
        target_id=policy_id,
        payload={"mimeType": mime_type},
    )
    db.session.commit()

    return jsonify({"success": True, "message": "File type policy deleted successfully."})
