"""Pydantic models for status checks and file uploads."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class TransferState(str, Enum):
    """All possible states for an upload."""
    PENDING = "pending"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TransferInfo(BaseModel):
    """Full state of a single upload, exposed to the frontend."""
    transfer_id: str
    file_name: str
    file_size: int
    server_id: str
    server_name: str
    state: TransferState = TransferState.PENDING
    progress_percent: int = 0
    remote_path: str | None = None
    error_message: str | None = None


# --- Receiver wire payloads ---

class StatusResponse(BaseModel):
    """Body of ``GET /status``."""
    model_config = ConfigDict(populate_by_name=True)

    status: str
    server_name: str = Field(alias="serverName")
    timestamp: str


class UploadedFile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    original_name: str = Field(alias="originalName")
    size: int
    path: str


class UploadResponse(BaseModel):
    """Body of a successful ``POST /upload``."""
    status: str
    message: str
    file: UploadedFile


# --- Client outcomes ---

class StatusOutcome(BaseModel):
    ok: bool
    response: StatusResponse | None = None
    reason: str | None = None


class UploadOutcome(BaseModel):
    ok: bool
    response: UploadResponse | None = None
    reason: str | None = None
