"""
Tests for client.py: status checks and uploads against a receiver.
"""

import httpx
import pytest

from filecast.receiver.app import create_app
from filecast.transfer.client import ProgressReader, TransferClient

BASE_URL = "http://10.0.0.5:8000/"


def asgi_client(app) -> TransferClient:
    return TransferClient(BASE_URL, transport=httpx.ASGITransport(app=app))


def mock_client(handler) -> TransferClient:
    return TransferClient(BASE_URL, transport=httpx.MockTransport(handler))


def refuse(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("Connection refused", request=request)


# ---------------------------------------------------------------------------
# check_status
# ---------------------------------------------------------------------------


class TestCheckStatus:
    @pytest.mark.asyncio
    async def test_ok_receiver(self, tmp_path):
        app = create_app(upload_dir=str(tmp_path), server_name="office")
        async with asgi_client(app) as client:
            outcome = await client.check_status()

        assert outcome.ok is True
        assert outcome.response.server_name == "office"

    @pytest.mark.asyncio
    async def test_non_ok_payload(self):
        def handler(request):
            assert request.url.path == "/status"
            return httpx.Response(
                200, json={"status": "maintenance", "serverName": "x", "timestamp": "t"}
            )

        async with mock_client(handler) as client:
            outcome = await client.check_status()
        assert outcome.ok is False
        assert "maintenance" in outcome.reason

    @pytest.mark.asyncio
    async def test_http_error_code(self):
        async with mock_client(lambda request: httpx.Response(500)) as client:
            outcome = await client.check_status()
        assert outcome.ok is False
        assert outcome.reason == "Server returned error: 500"

    @pytest.mark.asyncio
    async def test_malformed_body(self):
        async with mock_client(lambda request: httpx.Response(200, text="hello")) as client:
            outcome = await client.check_status()
        assert outcome.ok is False

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        async with mock_client(refuse) as client:
            outcome = await client.check_status()
        assert outcome.ok is False
        assert outcome.reason == "Connection refused"

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("", request=request)

        async with mock_client(handler) as client:
            outcome = await client.check_status()
        assert outcome.ok is False
        assert outcome.reason == "Network error"


# ---------------------------------------------------------------------------
# upload_file
# ---------------------------------------------------------------------------


class TestUploadFile:
    @pytest.mark.asyncio
    async def test_ten_megabyte_upload(self, tmp_path):
        source = tmp_path / "big.bin"
        source.write_bytes(b"\x5a" * 10485760)
        upload_dir = tmp_path / "uploads"
        app = create_app(upload_dir=str(upload_dir))

        progress: list[int] = []
        async with asgi_client(app) as client:
            outcome = await client.upload_file(str(source), on_progress=progress.append)

        assert outcome.ok is True
        assert outcome.response.status == "success"
        assert outcome.response.file.size == 10485760
        assert outcome.response.file.original_name == "big.bin"

        assert progress
        assert progress == sorted(progress)
        assert len(progress) == len(set(progress))
        assert progress[-1] == 100

        stored = list(upload_dir.iterdir())
        assert len(stored) == 1
        assert stored[0].stat().st_size == 10485760

    @pytest.mark.asyncio
    async def test_reported_file_name(self, tmp_path):
        source = tmp_path / "filecast-tmp123"
        source.write_bytes(b"photo")
        app = create_app(upload_dir=str(tmp_path / "uploads"))

        async with asgi_client(app) as client:
            outcome = await client.upload_file(str(source), file_name="holiday.jpg")

        assert outcome.response.file.original_name == "holiday.jpg"
        assert outcome.response.file.path.endswith("-holiday.jpg")

    @pytest.mark.asyncio
    async def test_unreachable_server(self, tmp_path):
        source = tmp_path / "a.txt"
        source.write_bytes(b"data")
        progress: list[int] = []

        async with mock_client(refuse) as client:
            outcome = await client.upload_file(str(source), on_progress=progress.append)

        assert outcome.ok is False
        assert outcome.reason == "Connection refused"
        assert progress == sorted(progress)

    @pytest.mark.asyncio
    async def test_rejected_upload(self, tmp_path):
        source = tmp_path / "a.txt"
        source.write_bytes(b"x" * 2048)
        app = create_app(upload_dir=str(tmp_path / "uploads"), max_upload_size=1024)

        async with asgi_client(app) as client:
            outcome = await client.upload_file(str(source))

        assert outcome.ok is False
        assert outcome.reason == "Upload failed: 413"

    @pytest.mark.asyncio
    async def test_missing_local_file(self, tmp_path):
        async with mock_client(lambda request: httpx.Response(200)) as client:
            outcome = await client.upload_file(str(tmp_path / "nope.bin"))
        assert outcome.ok is False


# ---------------------------------------------------------------------------
# ProgressReader
# ---------------------------------------------------------------------------


class TestProgressReader:
    def test_never_goes_backwards_after_rewind(self, tmp_path):
        path = tmp_path / "f.bin"
        path.write_bytes(b"a" * 1000)
        seen: list[int] = []

        with open(path, "rb") as f:
            reader = ProgressReader(f, 1000, seen.append, chunk_size=250)
            while reader.read(250):
                pass
            reader.seek(0)
            while reader.read(250):
                pass

        assert seen == [25, 50, 75, 100]

    def test_reads_are_capped_at_chunk_size(self, tmp_path):
        path = tmp_path / "f.bin"
        path.write_bytes(b"a" * 1000)

        with open(path, "rb") as f:
            reader = ProgressReader(f, 1000, None, chunk_size=100)
            assert len(reader.read()) == 100
            assert len(reader.read(5000)) == 100
            assert len(reader.read(10)) == 10
