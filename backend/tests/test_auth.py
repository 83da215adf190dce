from __future__ import annotations

from filevault.extensions import db
from filevault.models import AccountStatus, LoginHistory, LoginStatus, SystemSetting, User


def _login(client, email: str, password: str):
    return client.post("/api/auth/login", json={"email": email, "password": password})


def test_login_and_me(client):
    login = _login(client, "alice@example.com", "Alicepass1")
    assert login.status_code == 200

    payload = login.get_json()
    assert payload["refreshToken"]
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {payload['accessToken']}"})
    assert me.status_code == 200
    assert me.get_json()["user"]["email"] == "alice@example.com"
    assert me.get_json()["user"]["roles"] == ["user"]


def test_login_is_case_insensitive_on_email_and_records_history(client, app):
    login = client.post(
        "/api/auth/login",
        json={"email": "  Alice@Example.com ", "password": "Alicepass1"},
        headers={"User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64)"},
    )
    assert login.status_code == 200

    with app.app_context():
        user = User.query.filter_by(email="alice@example.com").one()
        assert user.last_login_at is not None
        entry = LoginHistory.query.filter_by(user_id=user.id).one()
        assert entry.status == LoginStatus.SUCCESS
        assert entry.device == "Windows Desktop"


def test_wrong_password_is_rejected_and_logged_as_failed(client, app):
    response = _login(client, "alice@example.com", "nope")
    assert response.status_code == 401
    assert response.get_json()["error"]["code"] == "INVALID_CREDENTIALS"

    unknown = _login(client, "ghost@example.com", "whatever")
    assert unknown.status_code == 401

    with app.app_context():
        user = User.query.filter_by(email="alice@example.com").one()
        statuses = [entry.status for entry in LoginHistory.query.filter_by(user_id=user.id).all()]
        assert statuses == [LoginStatus.FAILED]


def test_login_rate_limit(client, app):
    max_attempts = app.config["LOGIN_RATE_LIMIT_MAX_ATTEMPTS"]
    for _ in range(max_attempts):
        assert _login(client, "alice@example.com", "wrong").status_code == 401

    blocked = _login(client, "alice@example.com", "Alicepass1")
    assert blocked.status_code == 429
    error = blocked.get_json()["error"]
    assert error["code"] == "RATE_LIMITED"
    assert 0 < error["details"]["retryAfter"] <= app.config["LOGIN_RATE_LIMIT_WINDOW_SECONDS"]


def test_register_creates_user_with_default_role_and_quota(client, app):
    response = client.post(
        "/api/auth/register",
        json={"email": "Carol@Example.com", "password": "Carolpass1", "name": "Carol"},
    )
    assert response.status_code == 201
    user_payload = response.get_json()["user"]
    assert user_payload["email"] == "carol@example.com"
    assert user_payload["roles"] == ["user"]
    assert user_payload["storageQuotaBytes"] == app.config["DEFAULT_QUOTA_BYTES"]
    assert user_payload["usedStorageBytes"] == 0

    assert _login(client, "carol@example.com", "Carolpass1").status_code == 200


def test_register_duplicate_email_returns_409_without_second_row(client, app):
    response = client.post("/api/auth/register", json={"email": "alice@example.com", "password": "Another123"})
    assert response.status_code == 409

    with app.app_context():
        assert User.query.filter_by(email="alice@example.com").count() == 1


def test_register_validation_errors_are_per_field(client):
    response = client.post("/api/auth/register", json={"email": "not-an-email", "password": "short", "name": "X"})
    assert response.status_code == 400

    error = response.get_json()["error"]
    assert error["code"] == "VALIDATION_FAILED"
    fields = error["details"]["fields"]
    assert fields["email"] == ["Invalid email format."]
    assert "at least 8 characters" in fields["password"][0]
    assert "name" in fields


def test_register_disabled_by_config(client, app):
    app.config["ALLOW_REGISTRATION"] = False
    response = client.post("/api/auth/register", json={"email": "dave@example.com", "password": "Davepass1"})
    assert response.status_code == 403
    assert response.get_json()["error"]["code"] == "REGISTRATION_DISABLED"


def test_register_disabled_by_system_setting(client, app):
    with app.app_context():
        db.session.add(SystemSetting(key="auth.allowRegistration", value="false", category="auth"))
        db.session.commit()

    response = client.post("/api/auth/register", json={"email": "dave@example.com", "password": "Davepass1"})
    assert response.status_code == 403


def test_refresh_issues_new_access_token(client):
    tokens = _login(client, "alice@example.com", "Alicepass1").get_json()

    refreshed = client.post("/api/auth/refresh", headers={"Authorization": f"Bearer {tokens['refreshToken']}"})
    assert refreshed.status_code == 200
    access_token = refreshed.get_json()["accessToken"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {access_token}"})
    assert me.status_code == 200


def test_missing_and_invalid_tokens_use_error_envelope(client):
    missing = client.get("/api/auth/me")
    assert missing.status_code == 401
    assert missing.get_json()["error"]["code"] == "UNAUTHENTICATED"

    invalid = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert invalid.status_code in {401, 422}
    assert "error" in invalid.get_json()


def test_suspended_account_cannot_sign_in_and_loses_token_access(client, app):
    token = _login(client, "alice@example.com", "Alicepass1").get_json()["accessToken"]

    with app.app_context():
        user = User.query.filter_by(email="alice@example.com").one()
        user.account_status = AccountStatus.SUSPENDED
        db.session.commit()

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 403
    assert me.get_json()["error"]["code"] == "ACCOUNT_INACTIVE"

    login = _login(client, "alice@example.com", "Alicepass1")
    assert login.status_code == 403


def test_health_reports_database_counts(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["status"] == "ok"
    assert payload["stats"]["users"] == 3
    assert payload["stats"]["roles"] == 3
