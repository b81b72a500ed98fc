"""Integration tests for the share API routes."""

import io
import zipfile

import pytest
from fastapi.testclient import TestClient

from bucketdrop.main import create_app

MB = 1024 * 1024
AUTH = {"X-Password": "alpha-pass"}


@pytest.fixture
def client(settings_store):
    """Test client with the app lifespan (burn queue, sweeper) running."""
    app = create_app(settings_store)
    with TestClient(app) as client:
        yield client


def _files(*items):
    return [("file", (name, io.BytesIO(content), content_type)) for name, content, content_type in items]


class TestUploadEndpoint:
    def test_upload_single_file(self, client):
        response = client.post(
            "/api/upload",
            files=_files(("report.pdf", b"%PDF-1.7", "application/pdf")),
            headers=AUTH,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["url"] == f"/d/{data['bucket_id']}/{data['share_id']}/report.pdf"
        assert data["burn_after_download"] is False
        assert data["files"] == [
            {"name": "report.pdf", "size_bytes": 8, "content_type": "application/pdf"}
        ]
        assert "expires_at" in data

    def test_upload_requires_password(self, client, settings):
        response = client.post("/api/upload", files=_files(("a.txt", b"a", "text/plain")))

        assert response.status_code == 401
        assert not settings.uploads_dir.exists()

    def test_upload_wrong_password(self, client):
        response = client.post(
            "/api/upload",
            files=_files(("a.txt", b"a", "text/plain")),
            headers={"X-Password": "guess"},
        )

        assert response.status_code == 401

    def test_upload_without_files_is_bad_request(self, client, settings):
        response = client.post("/api/upload", data={"burn": "false"}, headers=AUTH)

        assert response.status_code == 400
        assert not settings.uploads_dir.exists()

    def test_upload_without_files_or_password_is_unauthorized(self, client):
        response = client.post("/api/upload", data={"burn": "false"})

        assert response.status_code == 401

    def test_upload_unusable_filename(self, client):
        response = client.post("/api/upload", files=_files(("..", b"a", "text/plain")), headers=AUTH)

        assert response.status_code == 400

    def test_upload_over_quota(self, client, settings_store, settings):
        settings_store.replace(settings.model_copy(update={"max_bucket_size_bytes": 100}))

        response = client.post(
            "/api/upload",
            files=_files(("big.bin", b"x" * 150, "application/octet-stream")),
            headers=AUTH,
        )

        assert response.status_code == 413
        assert response.json()["detail"]["available"] == 100

    def test_upload_file_too_large(self, client, settings_store, settings):
        settings_store.replace(settings.model_copy(update={"max_file_size_bytes": 4}))

        response = client.post(
            "/api/upload",
            files=_files(("big.bin", b"12345", "application/octet-stream")),
            headers=AUTH,
        )

        assert response.status_code == 413


class TestDownloadEndpoint:
    def test_single_file_download(self, client):
        upload = client.post(
            "/api/upload", files=_files(("notes.txt", b"remember", "text/plain")), headers=AUTH
        ).json()

        response = client.get(upload["url"])

        assert response.status_code == 200
        assert response.content == b"remember"
        assert response.headers["content-type"].startswith("text/plain")
        assert response.headers["content-disposition"] == 'attachment; filename="notes.txt"'

    def test_download_without_trailing_name(self, client):
        upload = client.post(
            "/api/upload", files=_files(("notes.txt", b"remember", "text/plain")), headers=AUTH
        ).json()

        response = client.get(f"/d/{upload['bucket_id']}/{upload['share_id']}")

        assert response.status_code == 200
        assert response.content == b"remember"

    def test_multi_file_download_is_zip(self, client):
        upload = client.post(
            "/api/upload",
            files=_files(("a.txt", b"alpha", "text/plain"), ("b.txt", b"bravo", "text/plain")),
            headers=AUTH,
        ).json()

        response = client.get(upload["url"])

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/zip"
        with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
            assert sorted(archive.namelist()) == ["a.txt", "b.txt"]
            assert archive.read("b.txt") == b"bravo"

    def test_non_ascii_filename_disposition(self, client):
        upload = client.post(
            "/api/upload", files=_files(("résumé.txt", b"cv", "text/plain")), headers=AUTH
        ).json()

        response = client.get(upload["url"])

        assert response.headers["content-disposition"] == "attachment; filename*=utf-8''r%C3%A9sum%C3%A9.txt"

    def test_burn_after_download(self, client):
        upload = client.post(
            "/api/upload",
            files=_files(("once.txt", b"only once", "text/plain")),
            data={"burn": "true"},
            headers=AUTH,
        ).json()
        assert upload["burn_after_download"] is True

        first = client.get(upload["url"])
        second = client.get(upload["url"])

        assert first.status_code == 200
        assert first.content == b"only once"
        assert second.status_code == 404

    def test_unknown_share(self, client):
        assert client.get("/d/0123456789abcdef/nothing1").status_code == 404

    def test_download_needs_no_password_and_is_not_throttled(self, client):
        upload = client.post(
            "/api/upload", files=_files(("a.txt", b"a", "text/plain")), headers=AUTH
        ).json()

        statuses = {client.get(upload["url"]).status_code for _ in range(10)}

        assert statuses == {200}


class TestQuotaEndpoint:
    def test_quota(self, client):
        client.post("/api/upload", files=_files(("a.bin", b"x" * 1000, "application/octet-stream")), headers=AUTH)

        response = client.get("/api/quota", headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {"used": 1000, "max": 10 * MB, "available": 10 * MB - 1000}

    def test_quota_unauthorized(self, client):
        assert client.get("/api/quota", headers={"X-Password": "nope"}).status_code == 401

    def test_quota_rate_limited(self, client):
        statuses = [client.get("/api/quota", headers=AUTH).status_code for _ in range(4)]

        assert statuses == [200, 200, 200, 429]
        limited = client.get("/api/quota", headers=AUTH)
        assert int(limited.headers["retry-after"]) >= 1


def test_cors_preflight_allows_password_header(client):
    response = client.options(
        "/api/upload",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "X-Password",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
