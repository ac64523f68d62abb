"""
HTTP client for a single receiving server.

One TransferClient talks to one base URL. It is an async context
manager wrapping an httpx.AsyncClient; every call returns an outcome
value instead of raising, so callers can turn failures into state.
"""

import logging
import os
from typing import Callable

import httpx
from pydantic import ValidationError

from filecast.config import REQUEST_TIMEOUT, UPLOAD_CHUNK_SIZE
from filecast.transfer.models import (
    StatusOutcome,
    StatusResponse,
    UploadOutcome,
    UploadResponse,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class ProgressReader:
    """File wrapper reporting upload progress as whole percentages.

    httpx may rewind the file before streaming it, so the reported value
    only ever moves forward.
    """

    def __init__(
        self,
        raw,
        total: int,
        on_progress: ProgressCallback | None,
        chunk_size: int = UPLOAD_CHUNK_SIZE,
    ):
        self._raw = raw
        self._total = total
        self._on_progress = on_progress
        self._chunk_size = chunk_size
        self._position = 0
        self._last_percent = 0

    @property
    def name(self) -> str:
        return getattr(self._raw, "name", "")

    def fileno(self) -> int:
        return self._raw.fileno()

    def tell(self) -> int:
        return self._raw.tell()

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        self._position = self._raw.seek(offset, whence)
        return self._position

    def read(self, size: int = -1) -> bytes:
        if size < 0 or size > self._chunk_size:
            size = self._chunk_size
        chunk = self._raw.read(size)
        self._position += len(chunk)
        if self._total > 0 and self._on_progress is not None:
            percent = min(100, self._position * 100 // self._total)
            if percent > self._last_percent:
                self._last_percent = percent
                self._on_progress(percent)
        return chunk


class TransferClient:
    """Client for the receiver's ``/status`` and ``/upload`` endpoints."""

    def __init__(
        self,
        base_url: str,
        timeout: float = REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def __aenter__(self) -> "TransferClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def check_status(self) -> StatusOutcome:
        """Ask the server whether it is ready to accept files."""
        try:
            response = await self._http.get("status")
        except httpx.HTTPError as e:
            logger.error(f"Failed to check server status at {self.base_url}: {e!r}")
            return StatusOutcome(ok=False, reason=str(e) or "Network error")

        if response.is_success:
            try:
                body = StatusResponse.model_validate(response.json())
            except (ValueError, ValidationError) as e:
                logger.warning(f"Malformed status payload from {self.base_url}: {e}")
                return StatusOutcome(ok=False, reason="Malformed status response")
            if body.status == "ok":
                return StatusOutcome(ok=True, response=body)
            return StatusOutcome(
                ok=False, response=body, reason=f"Server status: {body.status}"
            )

        return StatusOutcome(
            ok=False, reason=f"Server returned error: {response.status_code}"
        )

    async def upload_file(
        self,
        file_path: str,
        on_progress: ProgressCallback | None = None,
        file_name: str | None = None,
    ) -> UploadOutcome:
        """
        Upload a single file as the multipart field ``file``.

        Args:
            file_path: Local path of the file to send.
            on_progress: fn(percent) called with increasing percentages
                while the body is streamed.
            file_name: Name reported to the server (defaults to the
                basename of file_path).
        """
        file_name = file_name or os.path.basename(file_path)
        try:
            total = os.path.getsize(file_path)
            with open(file_path, "rb") as f:
                reader = ProgressReader(f, total, on_progress)
                logger.info(f"Uploading {file_name} ({total} bytes) to {self.base_url}")
                response = await self._http.post(
                    "upload",
                    files={"file": (file_name, reader, "application/octet-stream")},
                )
        except (httpx.HTTPError, OSError) as e:
            logger.error(f"Failed to upload {file_name} to {self.base_url}: {e!r}")
            return UploadOutcome(ok=False, reason=str(e) or "Network error")

        if not response.is_success:
            return UploadOutcome(
                ok=False, reason=f"Upload failed: {response.status_code}"
            )

        try:
            body = UploadResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.warning(f"Malformed upload response from {self.base_url}: {e}")
            return UploadOutcome(ok=False, reason="Malformed upload response")
        return UploadOutcome(ok=True, response=body)
