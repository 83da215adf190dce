from __future__ import annotations

import pytest

from filevault.extensions import db
from filevault.models import SystemSetting


@pytest.mark.parametrize(
    ("path", "marker"),
    [
        ("/sign-in", b"Sign in"),
        ("/sign-up", b"Create"),
        ("/files", b"FileVault"),
        ("/profile", b"FileVault"),
        ("/settings", b"FileVault"),
        ("/admin", b"FileVault"),
    ],
)
def test_pages_render(client, path, marker):
    response = client.get(path)
    assert response.status_code == 200
    assert response.mimetype == "text/html"
    assert marker in response.data


def test_root_redirects_to_files(client):
    response = client.get("/")
    assert response.status_code == 302
    assert response.headers["Location"].endswith("/files")


def test_sign_in_hides_sign_up_link_when_registration_closed(client, app):
    assert b"/sign-up" in client.get("/sign-in").data

    with app.app_context():
        db.session.add(SystemSetting(key="auth.allowRegistration", value="false", category="auth"))
        db.session.commit()

    assert b"/sign-up" not in client.get("/sign-in").data


def test_static_client_is_served(client):
    response = client.get("/static/app.js")
    assert response.status_code == 200
    assert b"filevault.accessToken" in response.data
    response.close()
