"""Pydantic models for server discovery."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Server(BaseModel):
    """A file-receiving server discovered on the LAN.

    Records are immutable; the registry replaces them wholesale so a
    snapshot never holds a half-updated server.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str
    address: str = Field(min_length=1)
    port: int = Field(ge=1, le=65535)
    is_available: bool = True
    is_selected: bool = False

    @property
    def full_address(self) -> str:
        host = f"[{self.address}]" if ":" in self.address else self.address
        return f"http://{host}:{self.port}/"


class SessionState(str, Enum):
    """Lifecycle states of a discovery session."""
    STOPPED = "stopped"
    STARTING = "starting"
    ACTIVE = "active"
    STOPPING = "stopping"


class EventKind(str, Enum):
    FOUND = "found"
    LOST = "lost"
    RESOLVED = "resolved"
    RESOLVE_FAILED = "resolve_failed"


class ServiceEvent(BaseModel):
    """A raw notification from the discovery transport."""
    kind: EventKind
    service_name: str
    host: str | None = None
    port: int | None = None
    error_code: int = 0
    generation: int = 0
