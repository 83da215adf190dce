from __future__ import annotations

from functools import wraps
from typing import Any, Callable

from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from ..extensions import db
from ..models import File, Folder, Role, RoleName, User, user_roles
from .errors import APIError


def current_user(required: bool = True) -> User | None:
    identity = get_jwt_identity()
    if identity is None:
        if required:
            raise APIError(401, "UNAUTHENTICATED", "Authentication required.")
        return None

    user = db.session.get(User, int(identity))
    if user is None:
        if required:
            raise APIError(401, "UNAUTHENTICATED", "Invalid session.")
        return None
    if not user.can_sign_in:
        raise APIError(403, "ACCOUNT_INACTIVE", "This account is suspended or disabled.")
    return user


def user_is_admin(user_id: int) -> bool:
    """Fresh role lookup, independent of whatever is loaded in the session."""
    row = (
        db.session.query(Role.id)
        .join(user_roles, user_roles.c.role_id == Role.id)
        .filter(user_roles.c.user_id == user_id, Role.name == RoleName.ADMIN.value)
        .first()
    )
    return row is not None


def admin_required(func: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        verify_jwt_in_request()
        user = current_user(required=True)
        assert user is not None
        if not user_is_admin(user.id):
            raise APIError(403, "FORBIDDEN", "Admin access required.")
        return func(*args, **kwargs)

    return wrapper


def owned_file(user: User, file_id: int, action: str) -> File:
    record = db.session.get(File, file_id)
    if record is None:
        raise APIError(404, "FILE_NOT_FOUND", "File not found.")
    if record.owner_id != user.id:
        raise APIError(403, "FORBIDDEN", f"You cannot {action} this file.")
    return record


def owned_folder(user: User, folder_id: int, action: str) -> Folder:
    folder = db.session.get(Folder, folder_id)
    if folder is None:
        raise APIError(404, "FOLDER_NOT_FOUND", "Folder not found.")
    if folder.owner_id != user.id:
        raise APIError(403, "FORBIDDEN", f"You cannot {action} this folder.")
    return folder


def target_folder(user: User, folder_id: int | None) -> Folder | None:
    """Resolve a placement folder; a missing folder is reported like a foreign one."""
    if folder_id is None:
        return None
    folder = db.session.get(Folder, folder_id)
    if folder is None or folder.owner_id != user.id:
        raise APIError(403, "FOLDER_FORBIDDEN", "Folder not found or not accessible.")
    return folder
