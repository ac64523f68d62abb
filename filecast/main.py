"""
filecast client application entry point.

Starts server discovery on startup, keeps the server list current with
availability probes, and serves the REST API and WebSocket endpoint the
UI uses to pick a server and send it a file.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from filecast import __version__
from filecast.api.routes import init_routes, router
from filecast.api.websocket import EventFeed
from filecast.config import API_HOST, API_PORT
from filecast.discovery.prober import AvailabilityProber
from filecast.discovery.registry import ServerRegistry
from filecast.discovery.session import DiscoverySession
from filecast.discovery.zeroconf_transport import ZeroconfTransport
from filecast.errors import DiscoveryStartError
from filecast.transfer.manager import TransferManager

logger = logging.getLogger(__name__)

# --- Service singletons ---
registry = ServerRegistry()
prober = AvailabilityProber(registry)
discovery_session = DiscoverySession(ZeroconfTransport(), registry, prober)
transfer_manager = TransferManager()
event_feed = EventFeed(registry)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start/stop background services."""
    logger.info("Starting filecast services...")

    stream_task = asyncio.create_task(event_feed.stream_servers())

    try:
        await discovery_session.start()
    except DiscoveryStartError as e:
        # The API stays up so discovery can be retried from the UI
        logger.error(f"Discovery unavailable: {e}")

    logger.info(f"filecast ready. API: {API_HOST}:{API_PORT}")
    try:
        yield
    finally:
        logger.info("Shutting down filecast services...")
        await discovery_session.stop()
        await transfer_manager.stop()
        await prober.aclose()
        stream_task.cancel()
        await asyncio.gather(stream_task, return_exceptions=True)


# --- FastAPI app ---
app = FastAPI(
    title="filecast",
    version=__version__,
    lifespan=lifespan,
)

# Inject services into routes
init_routes(registry, discovery_session, prober, transfer_manager)
transfer_manager.on_event(event_feed.publish)
app.include_router(router)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await event_feed.attach(websocket)
    try:
        while True:
            # Keep the connection alive; we don't expect client messages
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        event_feed.detach(websocket)


def run() -> None:
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    uvicorn.run(
        app,
        host=API_HOST,
        port=API_PORT,
        log_level="info",
    )


if __name__ == "__main__":
    run()
