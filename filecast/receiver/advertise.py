"""mDNS advertisement of a receiver so clients can discover it."""

import logging
import socket

from zeroconf import IPVersion
from zeroconf.asyncio import AsyncServiceInfo, AsyncZeroconf

from filecast.config import RECEIVER_PORT, SERVER_NAME, SERVICE_TYPE

logger = logging.getLogger(__name__)


def get_local_ip() -> str:
    """Best-effort to get a usable local IPv4 (not 127.x)."""
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        # No packet is sent; this only selects the outbound interface
        s.connect(("8.8.8.8", 80))
        return s.getsockname()[0]
    except OSError:
        try:
            return socket.gethostbyname(socket.gethostname())
        except OSError:
            return "127.0.0.1"
    finally:
        s.close()


class ServiceAdvertiser:
    """Registers the receiver as a DNS-SD service for its lifetime."""

    def __init__(
        self,
        name: str = SERVER_NAME,
        port: int = RECEIVER_PORT,
        service_type: str = SERVICE_TYPE,
    ) -> None:
        self.name = name
        self.port = port
        self.service_type = service_type
        self._aiozc: AsyncZeroconf | None = None
        self._info: AsyncServiceInfo | None = None

    async def start(self) -> None:
        ip_addr = get_local_ip()
        hostname = socket.gethostname().split(".")[0]
        self._info = AsyncServiceInfo(
            self.service_type,
            f"{self.name}.{self.service_type}",
            addresses=[socket.inet_aton(ip_addr)],
            port=self.port,
            properties={"path": "/"},
            server=f"{hostname}.local.",
        )
        self._aiozc = AsyncZeroconf(ip_version=IPVersion.V4Only)
        await self._aiozc.async_register_service(self._info)
        logger.info(f"Advertising {self.name!r} at {ip_addr}:{self.port}")

    async def stop(self) -> None:
        if self._aiozc is None:
            return
        try:
            if self._info is not None:
                await self._aiozc.async_unregister_service(self._info)
        finally:
            await self._aiozc.async_close()
            self._aiozc = None
            self._info = None
        logger.info(f"Stopped advertising {self.name!r}")
