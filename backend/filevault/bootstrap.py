from __future__ import annotations

from .extensions import db
from .models import Role, RoleName


ROLE_DESCRIPTIONS = {
    RoleName.ADMIN: "Full access",
    RoleName.USER: "Standard storage user",
    RoleName.GUEST: "Read-only visitor",
}


def ensure_roles() -> dict[str, Role]:
    roles: dict[str, Role] = {}
    for name, description in ROLE_DESCRIPTIONS.items():
        role = Role.query.filter_by(name=name.value).one_or_none()
        if role is None:
            role = Role(name=name.value, description=description)
            db.session.add(role)
        roles[name.value] = role
    return roles


def get_role(name: str) -> Role | None:
    return Role.query.filter_by(name=name).one_or_none()


def bootstrap_defaults(commit: bool = False) -> None:
    ensure_roles()
    if commit:
        db.session.commit()
