from __future__ import annotations

import math

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from ..common.rbac import admin_required
from ..common.request_utils import parse_int, parse_nullable_int
from ..models import AuditLog


admin_audit_bp = Blueprint("audit_logs", __name__, url_prefix="/audit-logs")


@admin_audit_bp.get("")
@jwt_required()
@admin_required
def list_audit_logs():
    action = (request.args.get("action") or "").strip()
    actor_id = parse_nullable_int(request.args.get("actorId"), "actorId")
    target_type = (request.args.get("targetType") or "").strip()
    page = parse_int(request.args.get("page"), "page", default=1)
    page_size = parse_int(request.args.get("pageSize"), "pageSize", default=50, maximum=200)

    query = AuditLog.query
    if action:
        query = query.filter(AuditLog.action == action)
    if actor_id is not None:
        query = query.filter(AuditLog.actor_id == actor_id)
    if target_type:
        query = query.filter(AuditLog.target_type == target_type)

    total = query.count()
    entries = (
        query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    return jsonify(
        {
            "items": [entry.to_dict() for entry in entries],
            "pagination": {
                "total": total,
                "page": page,
                "pageSize": page_size,
                "pages": math.ceil(total / page_size) if total else 0,
            },
        }
    )
