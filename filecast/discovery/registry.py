"""
Server registry.

The single store of known servers. Discovery events and probe results
are applied here, and every mutation republishes a fresh snapshot to
subscribers.
"""

import asyncio
import logging
import threading
from typing import AsyncIterator, Callable

from filecast.discovery.models import Server

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[list[Server]], None]


class ServerRegistry:
    """Thread-safe mapping of server id -> Server with snapshot publication."""

    def __init__(self) -> None:
        self._servers: dict[str, Server] = {}
        # Reentrant so a subscriber may read the registry from its callback
        self._lock = threading.RLock()
        self._snapshot: tuple[Server, ...] = ()
        self._version = 0
        self._subscribers: list[SnapshotCallback] = []

    @property
    def version(self) -> int:
        """Number of snapshots published so far."""
        return self._version

    def snapshot(self) -> list[Server]:
        """Return the last published state of the registry."""
        return list(self._snapshot)

    def get(self, server_id: str) -> Server | None:
        with self._lock:
            return self._servers.get(server_id)

    def upsert(self, server: Server) -> None:
        """Insert a server or replace the resolved fields of an existing one."""
        with self._lock:
            existing = self._servers.get(server.id)
            if existing is not None:
                server = server.model_copy(
                    update={"is_selected": existing.is_selected}
                )
                logger.debug(
                    f"Updated server {server.id} -> {server.address}:{server.port}"
                )
            else:
                logger.info(
                    f"Added server {server.id} ({server.address}:{server.port})"
                )
            self._servers[server.id] = server
            self._publish()

    def set_availability(self, server_id: str, available: bool) -> None:
        """Update only the availability flag. Unknown ids are ignored."""
        with self._lock:
            existing = self._servers.get(server_id)
            if existing is None:
                logger.debug(
                    f"Ignoring availability={available} for unknown server {server_id}"
                )
                return
            self._servers[server_id] = existing.model_copy(
                update={"is_available": available}
            )
            self._publish()

    def remove(self, server_id: str) -> None:
        with self._lock:
            if self._servers.pop(server_id, None) is None:
                return
            logger.info(f"Removed server {server_id}")
            self._publish()

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """
        Register a callback receiving every published snapshot.

        The callback is invoked immediately with the current snapshot.
        Returns a function that removes the subscription.
        """
        with self._lock:
            self._subscribers.append(callback)
            self._notify(callback, list(self._snapshot))

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    async def watch(self) -> AsyncIterator[list[Server]]:
        """
        Yield snapshots as they are published, latest value only.

        A slow consumer skips intermediate states instead of building up
        a backlog.
        """
        loop = asyncio.get_running_loop()
        changed = asyncio.Event()

        def wake(_servers: list[Server]) -> None:
            if not loop.is_closed():
                loop.call_soon_threadsafe(changed.set)

        unsubscribe = self.subscribe(wake)
        last_version = -1
        try:
            while True:
                with self._lock:
                    version, snapshot = self._version, list(self._snapshot)
                if version != last_version:
                    last_version = version
                    yield snapshot
                await changed.wait()
                changed.clear()
        finally:
            unsubscribe()

    def _publish(self) -> None:
        """Must be called with the lock held."""
        self._snapshot = tuple(self._servers.values())
        self._version += 1
        servers = list(self._snapshot)
        for callback in list(self._subscribers):
            self._notify(callback, servers)

    @staticmethod
    def _notify(callback: SnapshotCallback, servers: list[Server]) -> None:
        try:
            callback(servers)
        except Exception as e:
            logger.error(f"Registry subscriber error: {e}")
