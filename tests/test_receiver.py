"""
Tests for the receiving server's /status and /upload endpoints.
"""

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from filecast.receiver.app import MULTIPART_OVERHEAD, create_app


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def client(upload_dir):
    app = create_app(upload_dir=str(upload_dir), server_name="office", max_upload_size=1024)
    with TestClient(app) as c:
        yield c


class TestStatus:
    def test_reports_ok(self, client):
        response = client.get("/status")
        assert response.status_code == 200

        body = response.json()
        assert body["status"] == "ok"
        assert body["serverName"] == "office"
        assert datetime.fromisoformat(body["timestamp"]).tzinfo is not None


class TestUpload:
    def test_stores_file(self, client, upload_dir):
        response = client.post("/upload", files={"file": ("hello.txt", b"hello world")})
        assert response.status_code == 200

        body = response.json()
        assert body["status"] == "success"
        assert body["message"] == "File uploaded successfully"
        assert body["file"]["originalName"] == "hello.txt"
        assert body["file"]["size"] == 11

        stored = list(upload_dir.iterdir())
        assert len(stored) == 1
        assert stored[0].name.endswith("-hello.txt")
        assert stored[0].read_bytes() == b"hello world"
        assert body["file"]["path"] == str(stored[0])

    def test_strips_directories_from_name(self, client, upload_dir):
        response = client.post("/upload", files={"file": ("../../etc/passwd", b"x")})
        assert response.status_code == 200
        stored = list(upload_dir.iterdir())
        assert len(stored) == 1
        assert stored[0].name.endswith("-passwd")

    def test_missing_file(self, client):
        response = client.post("/upload", data={"note": "no file here"})
        assert response.status_code == 400
        assert response.json() == {"status": "error", "message": "No file uploaded"}

    def test_too_large(self, client, upload_dir):
        response = client.post("/upload", files={"file": ("big.bin", b"x" * 2048)})
        assert response.status_code == 413
        assert response.json()["status"] == "error"
        assert list(upload_dir.iterdir()) == []

    def test_declared_length_over_limit_is_refused_unread(self, client, upload_dir):
        # Not valid multipart: a parsed body would fail with 400 instead
        response = client.post(
            "/upload",
            content=b"x" * (1024 + MULTIPART_OVERHEAD + 1),
            headers={"content-type": "multipart/form-data; boundary=xyz"},
        )
        assert response.status_code == 413
        assert response.json() == {"status": "error", "message": "File too large"}
        assert not upload_dir.exists() or list(upload_dir.iterdir()) == []
