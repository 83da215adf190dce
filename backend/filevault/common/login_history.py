from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import LoginHistory, LoginStatus, User
from .request_utils import client_ip, client_user_agent


DEVICE_MARKERS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("iphone",), "iPhone"),
    (("ipad",), "iPad"),
    (("android", "mobile"), "Android Phone"),
    (("android",), "Android Tablet"),
    (("windows",), "Windows Desktop"),
    (("macintosh",), "Mac Desktop"),
    (("mac os",), "Mac Desktop"),
    (("linux",), "Linux Desktop"),
    (("tablet",), "Tablet"),
)


def parse_device(user_agent: str | None) -> str:
    ua = (user_agent or "").lower()
    if not ua:
        return "Unknown Device"
    for markers, label in DEVICE_MARKERS:
        if all(marker in ua for marker in markers):
            return label
    return "Unknown Device"


def record_login_attempt(user: User, status: LoginStatus) -> LoginHistory | None:
    user_agent = client_user_agent()
    entry = LoginHistory(
        user_id=user.id,
        status=status,
        ip=client_ip() or "Unknown IP",
        user_agent=user_agent,
        device=parse_device(user_agent),
        location=None,
    )
    # A failed history insert must not block sign-in.
    try:
        with db.session.begin_nested():
            db.session.add(entry)
    except SQLAlchemyError:
        current_app.logger.warning("Failed to record login attempt for user_id=%s", user.id, exc_info=True)
        return None
    return entry
