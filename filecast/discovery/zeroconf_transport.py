"""
mDNS / DNS-SD discovery transport built on python-zeroconf.

Browses one service type and reports services by their instance name
(the part before the service type), which is what the rest of the
application uses as a server id.
"""

import logging

from zeroconf import IPVersion, ServiceStateChange, Zeroconf
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from filecast.config import RESOLVE_TIMEOUT_MS
from filecast.discovery.session import DiscoveryListener, DiscoveryTransport
from filecast.errors import ResolutionError

logger = logging.getLogger(__name__)

# Resolution error codes reported through ResolutionError
RESOLVE_TIMEOUT = 1
RESOLVE_NO_ADDRESS = 2


def instance_name(full_name: str, service_type: str) -> str:
    """'Office PC._http._tcp.local.' -> 'Office PC'"""
    suffix = "." + service_type
    if full_name.endswith(suffix):
        return full_name[: -len(suffix)]
    return full_name


class ZeroconfTransport(DiscoveryTransport):
    """Browses the LAN for a service type using multicast DNS."""

    def __init__(
        self,
        resolve_timeout_ms: int = RESOLVE_TIMEOUT_MS,
        ip_version: IPVersion = IPVersion.V4Only,
    ) -> None:
        self._resolve_timeout_ms = resolve_timeout_ms
        self._ip_version = ip_version
        self._aiozc: AsyncZeroconf | None = None
        self._browser: AsyncServiceBrowser | None = None
        self._listener: DiscoveryListener | None = None
        self._service_type = ""

    async def subscribe(self, service_type: str, listener: DiscoveryListener) -> None:
        self._service_type = service_type
        self._listener = listener
        self._aiozc = AsyncZeroconf(ip_version=self._ip_version)
        try:
            self._browser = AsyncServiceBrowser(
                self._aiozc.zeroconf,
                [service_type],
                handlers=[self._on_service_state_change],
            )
        except Exception:
            await self._aiozc.async_close()
            self._aiozc = None
            raise
        logger.debug(f"Browsing for {service_type}")

    async def unsubscribe(self) -> None:
        try:
            if self._browser:
                await self._browser.async_cancel()
        finally:
            self._browser = None
            if self._aiozc:
                await self._aiozc.async_close()
                self._aiozc = None

    async def resolve(self, service_name: str) -> tuple[str, int]:
        if self._aiozc is None:
            raise ResolutionError(service_name, message="Discovery is not running")

        info = AsyncServiceInfo(
            self._service_type, f"{service_name}.{self._service_type}"
        )
        found = await info.async_request(
            self._aiozc.zeroconf, self._resolve_timeout_ms
        )
        if not found:
            raise ResolutionError(service_name, RESOLVE_TIMEOUT)

        addresses = info.parsed_addresses(self._ip_version)
        if not addresses or not info.port:
            raise ResolutionError(service_name, RESOLVE_NO_ADDRESS)
        return addresses[0], info.port

    def _on_service_state_change(
        self,
        zeroconf: Zeroconf,
        service_type: str,
        name: str,
        state_change: ServiceStateChange,
    ) -> None:
        if self._listener is None:
            return
        service_name = instance_name(name, service_type)
        # Updated records may carry a new address, so they are re-resolved
        if state_change in (ServiceStateChange.Added, ServiceStateChange.Updated):
            self._listener.service_found(service_name)
        elif state_change == ServiceStateChange.Removed:
            self._listener.service_lost(service_name)
