from __future__ import annotations

import io

from filevault.extensions import db
from filevault.models import File, Folder


def _headers(client, email: str = "alice@example.com", password: str = "Alicepass1") -> dict[str, str]:
    login = client.post("/api/auth/login", json={"email": email, "password": password})
    assert login.status_code == 200
    return {"Authorization": f"Bearer {login.get_json()['accessToken']}"}


def _create(client, headers, name: str, parent_id: int | None = None):
    return client.post("/api/folders", json={"name": name, "parentId": parent_id}, headers=headers)


def _upload(client, headers, folder_id: int, filename: str = "a.txt"):
    return client.post(
        "/api/files/upload",
        data={"file": (io.BytesIO(b"content"), filename), "folderId": str(folder_id)},
        headers=headers,
        content_type="multipart/form-data",
    )


def test_create_list_and_counts(client):
    headers = _headers(client)

    first = _create(client, headers, "Projects")
    assert first.status_code == 201
    projects = first.get_json()["folder"]
    assert projects["parentId"] is None
    assert projects["counts"] == {"files": 0, "children": 0}

    second = _create(client, headers, "Photos")
    child = _create(client, headers, "2026", parent_id=projects["id"])
    assert child.status_code == 201
    _upload(client, headers, projects["id"])

    root = client.get("/api/folders", headers=headers).get_json()["folders"]
    assert [item["name"] for item in root] == ["Photos", "Projects"]
    counts = {item["name"]: item["counts"] for item in root}
    assert counts["Projects"] == {"files": 1, "children": 1}
    assert second.get_json()["folder"]["counts"] == {"files": 0, "children": 0}

    nested = client.get(f"/api/folders?parentId={projects['id']}", headers=headers).get_json()["folders"]
    assert [item["name"] for item in nested] == ["2026"]


def test_folder_name_is_required(client):
    headers = _headers(client)
    assert client.post("/api/folders", json={}, headers=headers).status_code == 400
    blank = _create(client, headers, "   ")
    assert blank.status_code == 400
    assert blank.get_json()["error"]["code"] == "INVALID_NAME"
    assert _create(client, headers, "a/b").status_code == 400


def test_parent_must_belong_to_caller(client):
    bob_headers = _headers(client, "bob@example.com", "Bobpass123")
    bob_folder = _create(client, bob_headers, "bob").get_json()["folder"]

    headers = _headers(client)
    assert _create(client, headers, "intruder", parent_id=bob_folder["id"]).status_code == 403
    assert _create(client, headers, "orphan", parent_id=123456).status_code == 403


def test_get_folder_includes_parent_and_breadcrumb(client):
    headers = _headers(client)
    top = _create(client, headers, "top").get_json()["folder"]
    middle = _create(client, headers, "middle", parent_id=top["id"]).get_json()["folder"]
    leaf = _create(client, headers, "leaf", parent_id=middle["id"]).get_json()["folder"]

    response = client.get(f"/api/folders/{leaf['id']}", headers=headers)
    assert response.status_code == 200
    folder = response.get_json()["folder"]
    assert folder["parent"] == {"id": middle["id"], "name": "middle"}
    assert [item["name"] for item in folder["path"]] == ["top", "middle", "leaf"]

    assert client.get("/api/folders/999999", headers=headers).status_code == 404
    bob_headers = _headers(client, "bob@example.com", "Bobpass123")
    assert client.get(f"/api/folders/{leaf['id']}", headers=bob_headers).status_code == 403


def test_rename_folder(client):
    headers = _headers(client)
    folder = _create(client, headers, "old").get_json()["folder"]

    renamed = client.put(f"/api/folders/{folder['id']}", json={"name": "new"}, headers=headers)
    assert renamed.status_code == 200
    assert renamed.get_json()["folder"]["name"] == "new"

    assert client.put(f"/api/folders/{folder['id']}", json={"name": ""}, headers=headers).status_code == 400
    bob_headers = _headers(client, "bob@example.com", "Bobpass123")
    assert client.put(f"/api/folders/{folder['id']}", json={"name": "x"}, headers=bob_headers).status_code == 403


def test_non_empty_folder_cannot_be_deleted(client, app):
    headers = _headers(client)
    with_file = _create(client, headers, "has-file").get_json()["folder"]
    _upload(client, headers, with_file["id"])
    with_child = _create(client, headers, "has-child").get_json()["folder"]
    _create(client, headers, "child", parent_id=with_child["id"])

    blocked_file = client.delete(f"/api/folders/{with_file['id']}", headers=headers)
    assert blocked_file.status_code == 400
    assert blocked_file.get_json()["error"]["code"] == "FOLDER_NOT_EMPTY"

    blocked_child = client.delete(f"/api/folders/{with_child['id']}", headers=headers)
    assert blocked_child.status_code == 400

    with app.app_context():
        assert db.session.get(Folder, with_file["id"]) is not None
        assert db.session.get(Folder, with_child["id"]) is not None


def test_folder_with_only_deleted_files_can_be_removed(client, app):
    headers = _headers(client)
    folder = _create(client, headers, "temp").get_json()["folder"]
    file_id = _upload(client, headers, folder["id"]).get_json()["file"]["id"]
    assert client.delete(f"/api/files/{file_id}", headers=headers).status_code == 200

    response = client.delete(f"/api/folders/{folder['id']}", headers=headers)
    assert response.status_code == 200

    with app.app_context():
        assert db.session.get(Folder, folder["id"]) is None
        record = db.session.get(File, file_id)
        assert record is not None
        assert record.folder_id is None
        assert record.deleted_at is not None


def test_delete_missing_and_foreign_folder(client):
    headers = _headers(client)
    assert client.delete("/api/folders/999999", headers=headers).status_code == 404

    folder = _create(client, headers, "mine").get_json()["folder"]
    bob_headers = _headers(client, "bob@example.com", "Bobpass123")
    assert client.delete(f"/api/folders/{folder['id']}", headers=bob_headers).status_code == 403
