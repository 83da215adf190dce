from flask import Blueprint

from .audit_logs import admin_audit_bp
from .dashboard import admin_dashboard_bp
from .file_types import admin_file_types_bp
from .settings import admin_settings_bp
from .users import admin_users_bp


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")
for child in (admin_users_bp, admin_file_types_bp, admin_settings_bp, admin_dashboard_bp, admin_audit_bp):
    admin_bp.register_blueprint(child)

__all__ = ["admin_bp"]
