from __future__ import annotations

import io
from pathlib import Path

from filevault.extensions import db
from filevault.models import AccountStatus, AuditLog, File, QuotaHistory, User


MB = 1024 * 1024


def _headers(client, email: str = "root@example.com", password: str = "Rootpass123") -> dict[str, str]:
    login = client.post("/api/auth/login", json={"email": email, "password": password})
    assert login.status_code == 200
    return {"Authorization": f"Bearer {login.get_json()['accessToken']}"}


def _user_id(app, email: str) -> int:
    with app.app_context():
        return User.query.filter_by(email=email).one().id


def test_admin_routes_reject_regular_users(client):
    headers = _headers(client, "alice@example.com", "Alicepass1")
    for path in (
        "/api/admin/users",
        "/api/admin/file-types",
        "/api/admin/settings",
        "/api/admin/dashboard/stats",
        "/api/admin/audit-logs",
    ):
        response = client.get(path, headers=headers)
        assert response.status_code == 403
        assert response.get_json()["error"]["code"] == "FORBIDDEN"

    assert client.get("/api/admin/users").status_code == 401


def test_admin_role_is_checked_per_request(client, app):
    headers = _headers(client)
    assert client.get("/api/admin/users", headers=headers).status_code == 200

    with app.app_context():
        root = User.query.filter_by(email="root@example.com").one()
        root.roles = []
        db.session.commit()

    assert client.get("/api/admin/users", headers=headers).status_code == 403


def test_list_users_with_filters(client, app):
    headers = _headers(client)

    everyone = client.get("/api/admin/users", headers=headers).get_json()
    assert everyone["pagination"] == {"total": 3, "page": 1, "limit": 10, "pages": 1}
    first = everyone["users"][0]
    assert {"storageQuota", "stats", "status", "roles"} <= set(first)

    search = client.get("/api/admin/users?search=BOB", headers=headers).get_json()
    assert [user["email"] for user in search["users"]] == ["bob@example.com"]

    admins = client.get("/api/admin/users?role=admin", headers=headers).get_json()
    assert [user["email"] for user in admins["users"]] == ["root@example.com"]

    with app.app_context():
        bob = User.query.filter_by(email="bob@example.com").one()
        bob.account_status = AccountStatus.SUSPENDED
        db.session.commit()

    suspended = client.get("/api/admin/users?status=suspended", headers=headers).get_json()
    assert [user["email"] for user in suspended["users"]] == ["bob@example.com"]

    paged = client.get("/api/admin/users?limit=2&page=2", headers=headers).get_json()
    assert len(paged["users"]) == 1
    assert paged["pagination"]["pages"] == 2

    assert client.get("/api/admin/users?status=weird", headers=headers).status_code == 400


def test_create_user_and_duplicate(client, app):
    headers = _headers(client)

    created = client.post(
        "/api/admin/users",
        json={"name": "Eve", "email": "eve@example.com", "password": "secret1", "storageQuotaBytes": 5 * MB},
        headers=headers,
    )
    assert created.status_code == 201
    user = created.get_json()["user"]
    assert user["roles"] == ["user"]
    assert user["storageQuotaBytes"] == 5 * MB

    duplicate = client.post(
        "/api/admin/users",
        json={"name": "Eve", "email": "EVE@example.com", "password": "secret1"},
        headers=headers,
    )
    assert duplicate.status_code == 409

    short_password = client.post(
        "/api/admin/users",
        json={"name": "Frank", "email": "frank@example.com", "password": "123"},
        headers=headers,
    )
    assert short_password.status_code == 400

    bad_role = client.post(
        "/api/admin/users",
        json={"name": "Gina", "email": "gina@example.com", "password": "secret1", "role": "superuser"},
        headers=headers,
    )
    assert bad_role.status_code == 400

    with app.app_context():
        assert User.query.filter_by(email="eve@example.com").count() == 1
        assert AuditLog.query.filter_by(action="admin.user_create").count() == 1


def test_get_update_and_delete_user(client, app):
    headers = _headers(client)
    alice_id = _user_id(app, "alice@example.com")

    alice_headers = _headers(client, "alice@example.com", "Alicepass1")
    upload = client.post(
        "/api/files/upload",
        data={"file": (io.BytesIO(b"bytes"), "a.txt")},
        headers=alice_headers,
        content_type="multipart/form-data",
    )
    assert upload.status_code == 201

    detail = client.get(f"/api/admin/users/{alice_id}", headers=headers)
    assert detail.status_code == 200
    payload = detail.get_json()["user"]
    assert payload["stats"]["filesCount"] == 1
    assert payload["actualUsedBytes"] == payload["usedStorageBytes"] == 5

    updated = client.patch(
        f"/api/admin/users/{alice_id}",
        json={"name": "Alice A.", "role": "admin", "storageQuotaBytes": 20 * MB},
        headers=headers,
    )
    assert updated.status_code == 200
    body = updated.get_json()["user"]
    assert body["name"] == "Alice A."
    assert body["roles"] == ["admin"]
    assert body["storageQuotaBytes"] == 20 * MB

    conflict = client.patch(f"/api/admin/users/{alice_id}", json={"email": "bob@example.com"}, headers=headers)
    assert conflict.status_code == 409

    with app.app_context():
        record = File.query.filter_by(owner_id=alice_id).one()
        stored_path = Path(app.config["STORAGE_ROOT"]) / record.storage_key
        assert QuotaHistory.query.filter_by(user_id=alice_id).count() == 1
    assert stored_path.exists()

    deleted = client.delete(f"/api/admin/users/{alice_id}", headers=headers)
    assert deleted.status_code == 200
    assert not stored_path.exists()

    with app.app_context():
        assert db.session.get(User, alice_id) is None
        assert File.query.filter_by(owner_id=alice_id).count() == 0

    assert client.get(f"/api/admin/users/{alice_id}", headers=headers).status_code == 404


def test_admin_cannot_delete_or_demote_self(client, app):
    headers = _headers(client)
    root_id = _user_id(app, "root@example.com")

    assert client.delete(f"/api/admin/users/{root_id}", headers=headers).status_code == 400
    assert client.patch(f"/api/admin/users/{root_id}", json={"role": "user"}, headers=headers).status_code == 400


def test_status_changes(client, app):
    headers = _headers(client)
    bob_id = _user_id(app, "bob@example.com")
    root_id = _user_id(app, "root@example.com")

    self_change = client.patch(f"/api/admin/users/{root_id}/status", json={"accountStatus": "suspended"}, headers=headers)
    assert self_change.status_code == 400

    suspend = client.patch(
        f"/api/admin/users/{bob_id}/status",
        json={"accountStatus": "suspended", "suspendedReason": "Abuse report"},
        headers=headers,
    )
    assert suspend.status_code == 200
    user = suspend.get_json()["user"]
    assert user["status"] == "suspended"
    assert user["suspendedReason"] == "Abuse report"
    assert user["suspendedAt"] is not None

    login = client.post("/api/auth/login", json={"email": "bob@example.com", "password": "Bobpass123"})
    assert login.status_code == 403

    reactivate = client.patch(f"/api/admin/users/{bob_id}/status", json={"accountStatus": "active"}, headers=headers)
    assert reactivate.status_code == 200
    assert reactivate.get_json()["user"]["suspendedReason"] is None

    deactivate = client.patch(f"/api/admin/users/{bob_id}/status", json={"isActive": False}, headers=headers)
    assert deactivate.status_code == 200
    assert deactivate.get_json()["user"]["isActive"] is False

    invalid = client.patch(f"/api/admin/users/{bob_id}/status", json={"accountStatus": "banished"}, headers=headers)
    assert invalid.status_code == 400

    with app.app_context():
        assert AuditLog.query.filter_by(action="admin.user_status", target_id=str(bob_id)).count() == 3


def test_quota_update_and_history(client, app):
    headers = _headers(client)
    bob_id = _user_id(app, "bob@example.com")

    for quota in (20 * MB, 30 * MB):
        response = client.patch(
            f"/api/admin/users/{bob_id}/quota",
            json={"quotaBytes": quota, "reason": "Project work"},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.get_json()["quota"]["quotaBytes"] == quota

    assert client.patch(f"/api/admin/users/{bob_id}/quota", json={"quotaBytes": 0}, headers=headers).status_code == 400

    history = client.get(f"/api/admin/users/{bob_id}/quota", headers=headers)
    assert history.status_code == 200
    entries = history.get_json()["history"]
    assert [(entry["previousQuota"], entry["newQuota"]) for entry in entries] == [
        (20 * MB, 30 * MB),
        (10 * MB, 20 * MB),
    ]
    assert entries[0]["reason"] == "Project work"

    with app.app_context():
        assert AuditLog.query.filter_by(action="admin.quota_update").count() == 2


def test_file_type_policies_crud(client):
    headers = _headers(client)

    created = client.post(
        "/api/admin/file-types",
        json={"mimeType": "Image/HEIC", "extension": ".heic", "category": "image", "maxFileSize": 20 * MB},
        headers=headers,
    )
    assert created.status_code == 201
    policy = created.get_json()["fileType"]
    assert policy["mimeType"] == "image/heic"
    assert policy["isAllowed"] is True
    assert policy["scanOnUpload"] is True

    client.post(
        "/api/admin/file-types",
        json={"mimeType": "application/x-msdownload", "category": "executable", "isAllowed": False},
        headers=headers,
    )

    duplicate = client.post("/api/admin/file-types", json={"mimeType": "image/heic"}, headers=headers)
    assert duplicate.status_code == 409

    invalid = client.post("/api/admin/file-types", json={"mimeType": "heic"}, headers=headers)
    assert invalid.status_code == 400

    blocked = client.get("/api/admin/file-types?isAllowed=false", headers=headers).get_json()["fileTypes"]
    assert [item["mimeType"] for item in blocked] == ["application/x-msdownload"]
    images = client.get("/api/admin/file-types?category=image", headers=headers).get_json()["fileTypes"]
    assert [item["mimeType"] for item in images] == ["image/heic"]

    updated = client.patch(
        f"/api/admin/file-types/{policy['id']}",
        json={"isAllowed": False, "displayName": "HEIC photo"},
        headers=headers,
    )
    assert updated.status_code == 200
    assert updated.get_json()["fileType"]["isAllowed"] is False
    assert updated.get_json()["fileType"]["displayName"] == "HEIC photo"
    assert updated.get_json()["fileType"]["maxFileSize"] == 20 * MB

    assert client.delete(f"/api/admin/file-types/{policy['id']}", headers=headers).status_code == 200
    assert client.delete(f"/api/admin/file-types/{policy['id']}", headers=headers).status_code == 404


def test_system_settings_crud(client):
    headers = _headers(client)

    created = client.post(
        "/api/admin/settings",
        json={"key": "site.name", "value": "FileVault", "category": "site", "isPublic": True},
        headers=headers,
    )
    assert created.status_code == 201
    assert client.post(
        "/api/admin/settings",
        json={"key": "site.name", "value": "Other", "category": "site"},
        headers=headers,
    ).status_code == 409

    bulk = client.put(
        "/api/admin/settings",
        json={"settings": {"auth.allowRegistration": False, "upload.maxFiles": 10, "site.name": "Vault"}},
        headers=headers,
    )
    assert bulk.status_code == 200
    assert bulk.get_json()["settings"]["auth.allowRegistration"] == "false"

    everything = client.get("/api/admin/settings", headers=headers).get_json()["settings"]
    assert everything == {"auth.allowRegistration": "false", "site.name": "Vault", "upload.maxFiles": "10"}

    auth_only = client.get("/api/admin/settings?category=auth", headers=headers).get_json()["settings"]
    assert auth_only == {"auth.allowRegistration": "false"}

    patched = client.patch("/api/admin/settings/site.name", json={"value": "Vault 2"}, headers=headers)
    assert patched.status_code == 200
    assert patched.get_json()["setting"]["value"] == "Vault 2"
    assert patched.get_json()["setting"]["isPublic"] is True

    assert client.delete("/api/admin/settings/site.name", headers=headers).status_code == 200
    assert client.delete("/api/admin/settings/site.name", headers=headers).status_code == 404
    assert client.patch("/api/admin/settings/missing.key", json={"value": "x"}, headers=headers).status_code == 404

    register = client.post("/api/auth/register", json={"email": "late@example.com", "password": "Latepass1"})
    assert register.status_code == 403


def test_dashboard_stats(client, app):
    headers = _headers(client)
    alice_headers = _headers(client, "alice@example.com", "Alicepass1")
    for size in (100, 200):
        client.post(
            "/api/files/upload",
            data={"file": (io.BytesIO(b"x" * size), f"{size}.txt")},
            headers=alice_headers,
            content_type="multipart/form-data",
        )

    with app.app_context():
        bob = User.query.filter_by(email="bob@example.com").one()
        bob.is_active = False
        db.session.commit()

    response = client.get("/api/admin/dashboard/stats", headers=headers)
    assert response.status_code == 200
    stats = response.get_json()["stats"]
    assert stats["totalUsers"] == 3
    assert stats["activeUsers"] == 2
    assert stats["inactiveUsers"] == 1
    assert stats["totalFiles"] == 2
    assert stats["totalStorage"] == 300
    assert stats["recentUsers"] == 3
    assert stats["recentLogins"] == 2
    assert stats["systemStats"]["totalQuota"] == 120 * MB
    assert stats["systemStats"]["usedStorage"] == 300
    assert stats["topUsers"][0]["email"] == "alice@example.com"
    assert len(stats["topUsers"]) == 3


def test_audit_log_listing(client, app):
    headers = _headers(client)
    bob_id = _user_id(app, "bob@example.com")
    client.patch(f"/api/admin/users/{bob_id}/quota", json={"quotaBytes": 50 * MB}, headers=headers)

    response = client.get("/api/admin/audit-logs?action=admin.quota_update", headers=headers)
    assert response.status_code == 200
    items = response.get_json()["items"]
    assert len(items) == 1
    assert items[0]["targetType"] == "user"
    assert items[0]["targetId"] == str(bob_id)
    assert items[0]["payload"]["newQuota"] == 50 * MB

    root_id = _user_id(app, "root@example.com")
    by_actor = client.get(f"/api/admin/audit-logs?actorId={root_id}&pageSize=1", headers=headers).get_json()
    assert len(by_actor["items"]) == 1
    assert by_actor["pagination"]["total"] >= 2
