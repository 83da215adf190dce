from __future__ import annotations

from flask import Blueprint, current_app, redirect, render_template, url_for

from ..auth.routes import registration_open
from ..common.file_types import ALLOWED_FILE_TYPES


pages_bp = Blueprint("pages", __name__)


@pages_bp.get("/")
def index():
    return redirect(url_for("pages.files_page"))


@pages_bp.get("/sign-in")
def sign_in_page():
    return render_template("sign_in.html", registration_open=registration_open())


@pages_bp.get("/sign-up")
def sign_up_page():
    return render_template("sign_up.html", registration_open=registration_open())


@pages_bp.get("/files")
def files_page():
    return render_template(
        "files.html",
        max_upload_size=current_app.config["MAX_UPLOAD_SIZE_BYTES"],
        allowed_types=ALLOWED_FILE_TYPES,
    )


@pages_bp.get("/profile")
def profile_page():
    return render_template("profile.html", max_avatar_size=current_app.config["MAX_AVATAR_SIZE_BYTES"])


@pages_bp.get("/settings")
def settings_page():
    return render_template("settings.html")


@pages_bp.get("/admin")
def admin_page():
    return render_template("admin.html")
