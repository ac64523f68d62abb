"""REST API routes for the filecast client."""

import asyncio
import logging
import os
import shutil
import tempfile

from fastapi import APIRouter, File, Form, HTTPException, UploadFile

from filecast.errors import DiscoveryStartError, TransferError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# These will be injected by main.py at startup
_registry = None
_session = None
_prober = None
_transfer_manager = None


def init_routes(registry, session, prober, transfer_manager) -> None:
    """Inject service dependencies into the routes module."""
    global _registry, _session, _prober, _transfer_manager
    _registry = registry
    _session = session
    _prober = prober
    _transfer_manager = transfer_manager


def _get_server(server_id: str):
    server = _registry.get(server_id)
    if not server:
        raise HTTPException(status_code=404, detail="Server not found")
    return server


# --- Discovery ---

@router.get("/servers")
async def list_servers():
    """Return the current list of discovered servers."""
    return {"servers": [s.model_dump() for s in _registry.snapshot()]}


@router.get("/discovery")
async def discovery_state():
    return {"state": _session.state.value}


@router.post("/discovery/start")
async def start_discovery():
    try:
        await _session.start()
    except DiscoveryStartError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"state": _session.state.value}


@router.post("/discovery/stop")
async def stop_discovery():
    await _session.stop()
    return {"state": _session.state.value}


@router.post("/servers/{server_id}/probe")
async def probe_server(server_id: str):
    """Check a server's availability now."""
    server = _get_server(server_id)
    available = await _prober.check(server)
    return {"id": server_id, "is_available": available}


# --- Transfers ---

@router.get("/transfers")
async def list_transfers():
    """Return all transfers (active + completed)."""
    transfers = _transfer_manager.get_transfers()
    return {"transfers": [t.model_dump() for t in transfers]}


@router.post("/transfers")
async def create_transfer(server_id: str = Form(...), file: UploadFile = File(...)):
    """Send an uploaded file on to the selected server.

    The file is spooled to a temporary copy which is removed once the
    upload ends, whatever the outcome.
    """
    server = _get_server(server_id)

    fd, temp_path = tempfile.mkstemp(prefix="filecast-")
    try:
        with os.fdopen(fd, "wb") as out:
            await asyncio.to_thread(shutil.copyfileobj, file.file, out)
        info = await _transfer_manager.queue_upload(
            server,
            temp_path,
            file_name=file.filename or None,
            cleanup=True,
        )
    except (OSError, TransferError) as e:
        logger.error(f"Could not queue upload to {server_id}: {e}")
        if os.path.exists(temp_path):
            os.remove(temp_path)
        raise HTTPException(status_code=400, detail=str(e))

    return {"transfer": info.model_dump(), "message": f"Sending to {server.name}"}


@router.post("/transfers/{transfer_id}/cancel")
async def cancel_transfer(transfer_id: str):
    if not _transfer_manager.get_transfer(transfer_id):
        raise HTTPException(status_code=404, detail="Transfer not found")
    await _transfer_manager.cancel_transfer(transfer_id)
    return {"status": "cancelled"}
