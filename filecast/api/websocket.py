"""WebSocket feed of server-list snapshots and transfer events."""

import asyncio
import json
import logging

from fastapi import WebSocket

from filecast.discovery.models import Server
from filecast.discovery.registry import ServerRegistry

logger = logging.getLogger(__name__)


def servers_message(servers: list[Server]) -> str:
    return json.dumps({
        "event": "servers",
        "data": {"servers": [s.model_dump() for s in servers]},
    })


class EventFeed:
    """Fans events out to every attached UI socket.

    A newly attached socket first receives the current server list, so a
    client never has to poll ``/api/servers`` after connecting.
    """

    def __init__(self, registry: ServerRegistry) -> None:
        self._registry = registry
        self._sockets: set[WebSocket] = set()

    @property
    def client_count(self) -> int:
        return len(self._sockets)

    async def attach(self, websocket: WebSocket) -> None:
        await websocket.accept()
        # Resend if the list changed while the first copy was in flight
        while True:
            version = self._registry.version
            await websocket.send_text(servers_message(self._registry.snapshot()))
            if self._registry.version == version:
                break
        self._sockets.add(websocket)
        logger.info(f"UI attached to event feed ({self.client_count} open)")

    def detach(self, websocket: WebSocket) -> None:
        if websocket in self._sockets:
            self._sockets.discard(websocket)
            logger.info(f"UI detached from event feed ({self.client_count} open)")

    async def publish(self, event: str, data: dict) -> None:
        """Send one event to all sockets. Compatible with TransferManager.on_event()."""
        await self._send(json.dumps({"event": event, "data": data}))

    async def stream_servers(self) -> None:
        """Forward registry snapshots until cancelled, latest value only."""
        async for servers in self._registry.watch():
            await self._send(servers_message(servers))

    async def _send(self, message: str) -> None:
        sockets = list(self._sockets)
        results = await asyncio.gather(
            *(ws.send_text(message) for ws in sockets), return_exceptions=True
        )
        for ws, result in zip(sockets, results):
            if isinstance(result, Exception):
                logger.debug(f"Dropping socket after send failure: {result!r}")
                self.detach(ws)
