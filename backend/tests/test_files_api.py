"""HTTP tests for the files and users routes."""
import uuid
from urllib.parse import quote

import pytest
from httpx import ASGITransport, AsyncClient

from filevault.routes.deps import get_retrieval


async def register(client, email="a@b.com"):
    resp = await client.post(
        "/api/v1/users",
        json={"firstName": "Ada", "lastName": "Byron", "email": email},
    )
    assert resp.status_code == 201
    return resp.json()["user"]


async def upload(client, filename="notes.txt", data=b"hello world", content_type="text/plain", **form):
    form.setdefault("email", "a@b.com")
    return await client.post(
        "/api/v1/files/upload",
        files={"file": (filename, data, content_type)},
        data=form,
    )


async def test_test_route(client):
    resp = await client.get("/api/v1/files/test")

    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert "/upload" in resp.json()["routes_available"]


async def test_health(client):
    resp = await client.get("/api/v1/health")

    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


async def test_upload_then_list_then_preview(client, notifier):
    user = await register(client)

    resp = await upload(client, tags="work, notes", description="Meeting notes")

    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "File uploaded successfully and metadata stored in database"
    uploaded = body["file"]
    assert uploaded["category"] == "text"
    assert uploaded["characterCount"] == 11
    assert uploaded["size"] == 11
    assert uploaded["sizeFormatted"] == "11 Bytes"
    assert uploaded["tags"] == ["work", "notes"]
    assert uploaded["uploadedBy"] == user["id"]
    assert uploaded["url"] == f"/files/{uploaded['storedName']}"

    listing = await client.get("/api/v1/files/allfiles", params={"email": "a@b.com"})
    assert listing.status_code == 200
    data = listing.json()
    assert data["count"] == 1
    assert data["userEmail"] == "a@b.com"
    assert data["message"] == "Retrieved 1 files successfully"
    assert data["files"][0]["id"] == uploaded["id"]
    assert data["summary"]["categories"] == {"text": 1}

    preview = await client.get(f"/api/v1/files/content/{uploaded['storedName']}")
    assert preview.status_code == 200
    assert preview.json()["content"] == "hello world"
    assert preview.json()["stats"]["wordCount"] == 2

    assert [e.file_id for e in notifier.events] == [uploaded["id"]]


async def test_allfiles_accepts_json_body(client):
    await upload(client, email="a@b.com")
    await upload(client, filename="other.txt", email="c@d.com")

    resp = await client.post("/api/v1/files/allfiles", json={"email": "c@d.com"})

    assert resp.status_code == 200
    assert [f["name"] for f in resp.json()["files"]] == ["other.txt"]


async def test_allfiles_without_email_lists_everything(client):
    await upload(client, email="a@b.com")
    await upload(client, filename="clip.mp3", data=b"\0" * 128_000, content_type="audio/mp3", email="c@d.com")

    resp = await client.get("/api/v1/files/allfiles")

    data = resp.json()
    assert data["userEmail"] == "all users"
    assert [f["name"] for f in data["files"]] == ["clip.mp3", "notes.txt"]
    assert data["files"][0]["duration"] == 8
    assert data["files"][0]["durationFormatted"] == "0:08"


async def test_allfiles_rejects_malformed_email(client):
    resp = await client.get("/api/v1/files/allfiles", params={"email": "nope"})

    assert resp.status_code == 400
    assert resp.json() == {"success": False, "message": "Invalid email format"}


async def test_upload_without_file(client):
    resp = await client.post("/api/v1/files/upload", data={"email": "a@b.com"})

    assert resp.status_code == 400
    assert resp.json()["success"] is False


async def test_upload_without_owner(client):
    resp = await client.post("/api/v1/files/upload", files={"file": ("a.txt", b"x", "text/plain")})

    assert resp.status_code == 400
    assert resp.json()["success"] is False


async def test_upload_too_large(client):
    resp = await upload(client, filename="big.bin", data=b"x" * (1024 * 1024 + 1), content_type="application/octet-stream")

    assert resp.status_code == 413
    assert resp.json()["success"] is False


async def test_upload_too_large_is_rejected_before_reading(client, monkeypatch):
    async def no_read(self, size=-1):
        raise AssertionError("oversized upload was read into memory")

    monkeypatch.setattr("starlette.datastructures.UploadFile.read", no_read)

    resp = await upload(client, filename="big.bin", data=b"x" * (1024 * 1024 + 1), content_type="application/octet-stream")

    assert resp.status_code == 413
    assert resp.json()["success"] is False


async def test_upload_with_malformed_email(client):
    resp = await upload(client, email="not-an-email")

    assert resp.status_code == 400


async def test_serve_and_download_headers(client):
    stored = (await upload(client)).json()["file"]["storedName"]

    served = await client.get(f"/api/v1/files/serve/{stored}")
    assert served.status_code == 200
    assert served.content == b"hello world"
    assert served.headers["content-type"].startswith("text/plain")
    assert served.headers["cache-control"] == "public, max-age=3600"
    assert served.headers["content-length"] == "11"

    downloaded = await client.get(f"/api/v1/files/download/{stored}")
    assert downloaded.status_code == 200
    assert downloaded.content == b"hello world"
    assert downloaded.headers["content-disposition"] == 'attachment; filename="notes.txt"'

    renamed = await client.get(f"/api/v1/files/download/{stored}", params={"name": "minutes.txt"})
    assert renamed.headers["content-disposition"] == 'attachment; filename="minutes.txt"'


@pytest.mark.parametrize("route", ["serve", "download", "content"])
async def test_missing_file_is_404(client, route):
    resp = await client.get(f"/api/v1/files/{route}/missing_1.txt")

    assert resp.status_code == 404
    assert resp.json() == {"success": False, "message": "File not found"}


async def test_binary_content_notice(client):
    stored = (await upload(client, filename="photo.png", data=b"\x89PNG", content_type="image/png")).json()["file"]["storedName"]

    resp = await client.get(f"/api/v1/files/content/{stored}")

    data = resp.json()
    assert data["fileType"] == "binary"
    assert data["content"] is None
    assert data["serveUrl"] == f"/api/v1/files/serve/{stored}"


async def test_delete_flow(client):
    await register(client)
    file_id = (await upload(client)).json()["file"]["id"]

    resp = await client.delete(f"/api/v1/files/delete/{file_id}")
    assert resp.status_code == 200
    assert resp.json()["message"] == "File deleted successfully"
    assert resp.json()["deletedFile"]["id"] == file_id

    listing = await client.get("/api/v1/files/allfiles", params={"email": "a@b.com"})
    assert listing.json()["count"] == 0

    owner = await client.get("/api/v1/users/by-email", params={"email": "a@b.com"})
    assert owner.json()["user"]["files"] == []

    again = await client.delete(f"/api/v1/files/delete/{file_id}")
    assert again.status_code == 404
    assert again.json()["success"] is False


async def test_delete_invalid_id(client):
    resp = await client.delete("/api/v1/files/delete/not-a-uuid")

    assert resp.status_code == 400
    assert resp.json() == {"success": False, "message": "Invalid file ID format"}


async def test_delete_unknown_id(client):
    resp = await client.delete(f"/api/v1/files/delete/{uuid.uuid4()}")

    assert resp.status_code == 404


async def test_user_files(client):
    user = await register(client)
    first = (await upload(client)).json()["file"]["id"]
    second = (await upload(client, filename="second.txt")).json()["file"]["id"]

    resp = await client.post("/api/v1/files/user-files", json={"email": "a@b.com"})

    assert resp.status_code == 200
    data = resp.json()
    assert data["count"] == 2
    assert data["userId"] == user["id"]
    assert data["userData"]["firstName"] == "Ada"
    assert data["userData"]["totalFiles"] == 2
    assert [f["id"] for f in data["files"]] == [second, first]


async def test_user_files_requires_email(client):
    resp = await client.get("/api/v1/files/user-files")

    assert resp.status_code == 400
    assert resp.json()["message"] == "User email is required"


async def test_user_files_unknown_user(client):
    resp = await client.get("/api/v1/files/user-files", params={"email": "ghost@b.com"})

    assert resp.status_code == 404
    assert resp.json() == {"success": False, "message": "User not found"}


async def test_upload_by_user_id(client):
    user = await register(client, email="owner@b.com")

    resp = await client.post(
        "/api/v1/files/upload",
        files={"file": ("a.txt", b"abc", "text/plain")},
        data={"userId": user["id"]},
    )

    assert resp.status_code == 201
    assert resp.json()["file"]["email"] == "owner@b.com"


async def test_register_user(client):
    user = await register(client)

    assert user["email"] == "a@b.com"
    assert user["files"] == []
    assert user["image"] == "https://placehold.co/50x50"


async def test_register_duplicate_is_conflict(client):
    await register(client)

    resp = await client.post(
        "/api/v1/users",
        json={"firstName": "Ada", "lastName": "Byron", "email": "a@b.com"},
    )

    assert resp.status_code == 409
    assert resp.json() == {"success": False, "message": "User already exists"}


@pytest.mark.parametrize(
    "payload,message",
    [
        ({"firstName": "", "lastName": "Byron", "email": "a@b.com"}, "All fields are required"),
        ({"firstName": "Ada", "lastName": "Byron", "email": "bad"}, "Invalid email format"),
    ],
)
async def test_register_rejects_bad_input(client, payload, message):
    resp = await client.post("/api/v1/users", json=payload)

    assert resp.status_code == 400
    assert resp.json()["message"] == message


async def test_user_by_email_not_found(client):
    resp = await client.get("/api/v1/users/by-email", params={"email": "ghost@b.com"})

    assert resp.status_code == 404


async def test_download_non_ascii_name(client):
    stored = (await upload(client, filename="报告.txt", data=b"quarterly")).json()["file"]["storedName"]

    resp = await client.get(f"/api/v1/files/download/{stored}")

    assert resp.status_code == 200
    assert resp.content == b"quarterly"
    assert resp.headers["content-disposition"] == (
        f"attachment; filename=\"__.txt\"; filename*=UTF-8''{quote('报告.txt', safe='')}"
    )


async def test_download_strips_header_breaking_characters(client):
    stored = (await upload(client)).json()["file"]["storedName"]

    resp = await client.get(f"/api/v1/files/download/{stored}", params={"name": 'a"b\r\nc.txt'})

    assert resp.status_code == 200
    assert resp.headers["content-disposition"] == 'attachment; filename="abc.txt"'


async def test_search_treats_wildcards_literally(client):
    await upload(client, filename="a_b.txt")
    await upload(client, filename="abc.txt")
    await upload(client, filename="100%.txt")

    underscore = await client.get("/api/v1/files/allfiles", params={"q": "_"})
    percent = await client.get("/api/v1/files/allfiles", params={"q": "%"})

    assert [f["name"] for f in underscore.json()["files"]] == ["a_b.txt"]
    assert [f["name"] for f in percent.json()["files"]] == ["100%.txt"]


async def test_unexpected_error_uses_envelope(app):
    def broken_retrieval():
        raise RuntimeError("boom")

    app.dependency_overrides[get_retrieval] = broken_retrieval
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        resp = await client.get("/api/v1/files/serve/notes_1.txt")

    assert resp.status_code == 500
    assert resp.json() == {"success": False, "message": "Internal server error"}
