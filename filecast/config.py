"""Application-wide configuration constants."""

import os
import platform
from pathlib import Path

# --- Identity ---
SERVER_NAME = os.environ.get("FILECAST_SERVER_NAME", platform.node())

# --- Discovery ---
SERVICE_TYPE = os.environ.get("FILECAST_SERVICE_TYPE", "_http._tcp.local.")
RESOLVE_TIMEOUT_MS = int(os.environ.get("FILECAST_RESOLVE_TIMEOUT_MS", "3000"))

# --- Networking ---
API_HOST = os.environ.get("FILECAST_API_HOST", "127.0.0.1")
API_PORT = int(os.environ.get("FILECAST_API_PORT", "8765"))
RECEIVER_HOST = os.environ.get("FILECAST_RECEIVER_HOST", "0.0.0.0")
RECEIVER_PORT = int(os.environ.get("FILECAST_RECEIVER_PORT", "8000"))
REQUEST_TIMEOUT = float(os.environ.get("FILECAST_REQUEST_TIMEOUT", "30"))  # seconds

# --- Transfer ---
UPLOAD_CHUNK_SIZE = 65536  # 64 KB
MAX_UPLOAD_SIZE = int(
    os.environ.get("FILECAST_MAX_UPLOAD_SIZE", str(100 * 1024 * 1024))
)

# --- Storage ---
UPLOAD_DIR = os.environ.get(
    "FILECAST_UPLOAD_DIR", str(Path.cwd() / "uploads")
)
