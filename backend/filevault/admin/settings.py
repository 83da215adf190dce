from __future__ import annotations

import json
from typing import Any

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from ..common.audit import audit
from ..common.errors import APIError
from ..common.rbac import admin_required, current_user
from ..common.request_utils import parse_body
from ..extensions import db
from ..models import SystemSetting
from ..schemas import SystemSettingCreateRequest, SystemSettingsBulkRequest, SystemSettingUpdateRequest


admin_settings_bp = Blueprint("settings", __name__, url_prefix="/settings")


def stringify_value(value: Any) -> str:
    """Settings are stored as text; booleans use the lowercase JSON spelling."""
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _get_setting(key: str) -> SystemSetting:
    setting = SystemSetting.query.filter_by(key=key).one_or_none()
    if setting is None:
        raise APIError(404, "SETTING_NOT_FOUND", "Setting not found.")
    return setting


@admin_settings_bp.get("")
@jwt_required()
@admin_required
def list_settings():
    category = (request.args.get("category") or "").strip()

    query = SystemSetting.query
    if category:
        query = query.filter(SystemSetting.category == category)
    settings = query.order_by(SystemSetting.category.asc(), SystemSetting.key.asc()).all()

    return jsonify(
        {
            "settings": {setting.key: setting.value for setting in settings},
            "items": [setting.to_dict() for setting in settings],
        }
    )


@admin_settings_bp.post("")
@jwt_required()
@admin_required
def create_setting():
    actor = current_user(required=True)
    assert actor is not None

    body = parse_body(SystemSettingCreateRequest)
    key = body.key.strip()
    if SystemSetting.query.filter_by(key=key).one_or_none() is not None:
        raise APIError(409, "SETTING_EXISTS", "A setting with this key already exists.")

    setting = SystemSetting(
        key=key,
        value=body.value,
        category=body.category,
        description=body.description,
        is_public=body.is_public,
        updated_by_id=actor.id,
    )
    db.session.add(setting)
    audit(
        action="admin.setting_create",
        actor=actor,
        target_type="system_setting",
        target_id=key,
        payload={"value": body.value, "category": body.category},
    )
    db.session.commit()

    return jsonify({"success": True, "setting": setting.to_dict()}), 201


@admin_settings_bp.put("")
@jwt_required()
@admin_required
def bulk_update_settings():
    actor = current_user(required=True)
    assert actor is not None

    body = parse_body(SystemSettingsBulkRequest)
    updated: dict[str, str] = {}

    for raw_key, raw_value in body.settings.items():
        key = raw_key.strip()
        value = stringify_value(raw_value)
        setting = SystemSetting.query.filter_by(key=key).one_or_none()
        if setting is None:
            setting = SystemSetting(key=key, category=SystemSetting.category_for(key))
            db.session.add(setting)
        setting.value = value
        setting.updated_by_id = actor.id
        updated[key] = value

    audit(
        action="admin.settings_update",
        actor=actor,
        target_type="system_setting",
        payload={"settings": updated},
    )
    db.session.commit()

    return jsonify({"success": True, "message": "Settings updated successfully.", "settings": updated})


@admin_settings_bp.patch("/<string:key>")
@jwt_required()
@admin_required
def update_setting(key: str):
    actor = current_user(required=True)
    assert actor is not None

    setting = _get_setting(key)
    body = parse_body(SystemSettingUpdateRequest)
    previous = setting.value

    if body.value is not None:
        setting.value = body.value
    if "description" in body.model_fields_set:
        setting.description = body.description
    if body.is_public is not None:
        setting.is_public = body.is_public
    setting.updated_by_id = actor.id

    audit(
        action="admin.setting_update",
        actor=actor,
        target_type="system_setting",
        target_id=key,
        payload={"from": previous, "to": setting.value},
    )
    db.session.commit()

    return jsonify({"success": True, "setting": setting.to_dict()})


@admin_settings_bp.delete("/<string:key>")
@jwt_required()
@admin_required
def delete_setting(key: str):
    actor = current_user(required=True)
    assert actor is not None

    setting = _get_setting(key)
    db.session.delete(setting)
    audit(action="admin.setting_delete", actor=actor, target_type="system_setting", target_id=key)
    db.session.commit()

    return jsonify({"success": True, "message": "Setting deleted successfully."})
