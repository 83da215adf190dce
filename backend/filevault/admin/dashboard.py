from __future__ import annotations

from datetime import timedelta

from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required
from sqlalchemy import func

from ..common.rbac import admin_required
from ..extensions import db
from ..models import AccountStatus, File, LoginHistory, User, utc_now


admin_dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/dashboard")


@admin_dashboard_bp.get("/stats")
@jwt_required()
@admin_required
def dashboard_stats():
    now = utc_now()

    total_users = db.session.query(func.count(User.id)).scalar() or 0
    active_users = (
        db.session.query(func.count(User.id))
        .filter(User.is_active.is_(True), User.account_status == AccountStatus.ACTIVE)
        .scalar()
        or 0
    )
    total_files = db.session.query(func.count(File.id)).filter(File.deleted_at.is_(None)).scalar() or 0
    total_quota, used_storage = db.session.query(
        func.coalesce(func.sum(User.storage_quota_bytes), 0),
        func.coalesce(func.sum(User.used_storage_bytes), 0),
    ).one()
    recent_users = db.session.query(func.count(User.id)).filter(User.created_at >= now - timedelta(days=7)).scalar() or 0
    recent_logins = (
        db.session.query(func.count(LoginHistory.id)).filter(LoginHistory.created_at >= now - timedelta(hours=24)).scalar()
        or 0
    )
    top_users = User.query.order_by(User.used_storage_bytes.desc(), User.id.asc()).limit(5).all()

    total_quota = int(total_quota or 0)
    used_storage = int(used_storage or 0)

    return jsonify(
        {
            "stats": {
                "totalUsers": total_users,
                "activeUsers": active_users,
                "inactiveUsers": total_users - active_users,
                "totalFiles": total_files,
                "totalStorage": used_storage,
                "recentUsers": recent_users,
                "recentLogins": recent_logins,
                "systemStats": {
                    "totalQuota": total_quota,
                    "usedStorage": used_storage,
                    "storageUtilization": round(used_storage / total_quota * 100) if total_quota > 0 else 0,
                },
                "topUsers": [
                    {
                        "id": user.id,
                        "name": user.name or "",
                        "email": user.email,
                        "usedStorageBytes": int(user.used_storage_bytes or 0),
                    }
                    for user in top_users
                ],
            }
        }
    )
