"""Availability probing of discovered servers."""

import asyncio
import logging
from typing import Callable

from filecast.discovery.models import Server
from filecast.discovery.registry import ServerRegistry
from filecast.transfer.client import TransferClient

logger = logging.getLogger(__name__)


class AvailabilityProber:
    """Turns a status check against a server into its availability flag."""

    def __init__(
        self,
        registry: ServerRegistry,
        client_factory: Callable[[str], TransferClient] = TransferClient,
    ) -> None:
        self._registry = registry
        self._client_factory = client_factory
        self._tasks: set[asyncio.Task] = set()

    def probe(self, server: Server) -> asyncio.Task:
        """Schedule a check of *server* without waiting for it."""
        task = asyncio.create_task(self.check(server), name=f"probe:{server.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def check(self, server: Server) -> bool:
        """Check *server* now and record the result in the registry."""
        try:
            async with self._client_factory(server.full_address) as client:
                outcome = await client.check_status()
            available = outcome.ok
            if not available:
                logger.info(f"Server {server.id} unavailable: {outcome.reason}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Probe of {server.id} failed: {e!r}")
            available = False

        self._registry.set_availability(server.id, available)
        return available

    async def wait_idle(self) -> None:
        """Wait for every in-flight probe to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel in-flight probes."""
        for task in list(self._tasks):
            task.cancel()
        await self.wait_idle()
