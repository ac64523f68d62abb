"""
Receiving server. Accepts files uploaded by filecast clients.

Exposes ``GET /status`` for availability probes and ``POST /upload``
for multipart uploads (single field ``file``).
"""

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.responses import JSONResponse

from filecast.config import (
    MAX_UPLOAD_SIZE,
    RECEIVER_HOST,
    RECEIVER_PORT,
    SERVER_NAME,
    UPLOAD_CHUNK_SIZE,
    UPLOAD_DIR,
)
from filecast.receiver.advertise import ServiceAdvertiser

logger = logging.getLogger(__name__)

# Room for multipart boundaries and part headers around the file body
MULTIPART_OVERHEAD = 16 * 1024


class AppError(Exception):
    """An error reported to the client as ``{status: "error", message}``."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def _stored_name(original_name: str) -> str:
    base = os.path.basename(original_name or "") or "upload"
    return f"{int(time.time() * 1000)}-{base}"


def create_app(
    upload_dir: str = UPLOAD_DIR,
    server_name: str = SERVER_NAME,
    max_upload_size: int = MAX_UPLOAD_SIZE,
    advertiser: ServiceAdvertiser | None = None,
) -> FastAPI:
    """Build the receiver application."""
    upload_path = Path(upload_dir)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        upload_path.mkdir(parents=True, exist_ok=True)
        if advertiser:
            await advertiser.start()
        logger.info(f"Receiver ready, storing uploads in {upload_path}")
        try:
            yield
        finally:
            if advertiser:
                await advertiser.stop()

    app = FastAPI(title="filecast receiver", lifespan=lifespan)

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"status": "error", "message": exc.message},
        )

    @app.middleware("http")
    async def reject_oversized(request: Request, call_next):
        # Form parsing spools the whole body before the handler runs, so a
        # declared length over the limit is refused before reading anything
        length = request.headers.get("content-length")
        if (
            request.url.path == "/upload"
            and length is not None
            and length.isdigit()
            and int(length) > max_upload_size + MULTIPART_OVERHEAD
        ):
            logger.error(f"Refusing upload of {length} bytes")
            return JSONResponse(
                status_code=413,
                content={"status": "error", "message": "File too large"},
            )
        return await call_next(request)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        client = request.client.host if request.client else "-"
        logger.info(f"{request.method} {request.url.path} from {client}")
        return await call_next(request)

    @app.get("/status")
    async def status():
        return {
            "status": "ok",
            "serverName": server_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.post("/upload")
    async def upload(file: UploadFile | None = File(None)):
        if file is None:
            raise AppError(400, "No file uploaded")

        upload_path.mkdir(parents=True, exist_ok=True)
        dest = upload_path / _stored_name(file.filename)
        size = 0
        too_large = False

        with open(dest, "wb") as out:
            while chunk := await file.read(UPLOAD_CHUNK_SIZE):
                size += len(chunk)
                if size > max_upload_size:
                    too_large = True
                    break
                await asyncio.to_thread(out.write, chunk)

        if too_large:
            dest.unlink(missing_ok=True)
            raise AppError(413, "File too large")

        logger.info(f"File uploaded successfully: {file.filename} ({size} bytes)")
        return {
            "status": "success",
            "message": "File uploaded successfully",
            "file": {
                "originalName": file.filename,
                "size": size,
                "path": str(dest),
            },
        }

    return app


def run() -> None:
    """Start the receiver and advertise it on the LAN."""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    app = create_app(advertiser=ServiceAdvertiser(port=RECEIVER_PORT))
    uvicorn.run(app, host=RECEIVER_HOST, port=RECEIVER_PORT, log_level="info")


if __name__ == "__main__":
    run()
