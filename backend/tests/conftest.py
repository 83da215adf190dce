from __future__ import annotations

from pathlib import Path

import pytest

from filevault import create_app
from filevault.bootstrap import bootstrap_defaults
from filevault.common.rate_limit import login_rate_limiter
from filevault.extensions import db
from filevault.models import Role, User


MB = 1024 * 1024


def _add_user(email: str, password: str, role_name: str, quota: int = 10 * MB) -> User:
    role = Role.query.filter_by(name=role_name).one()
    user = User(email=email, name=email.split("@")[0].title(), storage_quota_bytes=quota, used_storage_bytes=0, is_active=True)
    user.set_password(password)
    user.roles.append(role)
    db.session.add(user)
    return user


@pytest.fixture
def app(tmp_path: Path):
    db_path = tmp_path / "test.db"
    storage_path = tmp_path / "storage"

    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "STORAGE_ROOT": str(storage_path),
            "JWT_SECRET_KEY": "test-secret-key-at-least-32-bytes-long",
            "ALLOW_REGISTRATION": True,
            "DEFAULT_QUOTA_BYTES": 10 * MB,
            "MAX_UPLOAD_SIZE_BYTES": 5 * MB,
            "MAX_AVATAR_SIZE_BYTES": 1 * MB,
        }
    )

    with app.app_context():
        db.create_all()
        bootstrap_defaults(commit=True)

        _add_user("alice@example.com", "Alicepass1", "user")
        _add_user("bob@example.com", "Bobpass123", "user")
        _add_user("root@example.com", "Rootpass123", "admin", quota=100 * MB)
        db.session.commit()

    login_rate_limiter.clear()
    yield app

    login_rate_limiter.clear()
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()
