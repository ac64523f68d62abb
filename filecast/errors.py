"""Exception types shared across the discovery and transfer layers."""


class FilecastError(Exception):
    """Base class for all filecast errors."""


class DiscoveryError(FilecastError):
    """A failure of the discovery subscription itself."""


class DiscoveryStartError(DiscoveryError):
    """Raised when the platform refuses to start service discovery."""


class ResolutionError(FilecastError):
    """A single service could not be resolved to a host and port."""

    def __init__(self, service_name: str, error_code: int = 0, message: str = ""):
        self.service_name = service_name
        self.error_code = error_code
        super().__init__(
            message or f"Failed to resolve {service_name!r} (code {error_code})"
        )


class TransferError(FilecastError):
    """An upload could not be started."""
