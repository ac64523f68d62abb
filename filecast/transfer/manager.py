"""
Transfer Manager: orchestrates uploads to discovered servers.

Tracks the state of each upload and forwards progress and state changes
to registered event callbacks (the WebSocket layer).
"""

import asyncio
import logging
import os
import uuid
from typing import Callable

from filecast.discovery.models import Server
from filecast.errors import TransferError
from filecast.transfer.client import TransferClient
from filecast.transfer.models import TransferInfo, TransferState

logger = logging.getLogger(__name__)

_ACTIVE_STATES = (TransferState.PENDING, TransferState.UPLOADING)


class TransferManager:
    """Manages all active and completed uploads."""

    def __init__(
        self,
        client_factory: Callable[[str], TransferClient] = TransferClient,
    ) -> None:
        self._transfers: dict[str, TransferInfo] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._lock = asyncio.Lock()
        self._event_callbacks: list = []  # async fn(event_type, data)
        self._temp_files: dict[str, str] = {}  # transfer_id -> path to delete
        self._client_factory = client_factory

    def on_event(self, callback) -> None:
        """Register callback: async fn(event_type: str, data: dict)."""
        self._event_callbacks.append(callback)

    async def _emit(self, event_type: str, data: dict) -> None:
        """Emit an event to all registered callbacks."""
        for cb in self._event_callbacks:
            try:
                await cb(event_type, data)
            except Exception as e:
                logger.error(f"Event callback error: {e}")

    def get_transfers(self) -> list[TransferInfo]:
        """Return all transfers."""
        return list(self._transfers.values())

    def get_transfer(self, transfer_id: str) -> TransferInfo | None:
        return self._transfers.get(transfer_id)

    async def queue_upload(
        self,
        server: Server,
        file_path: str,
        file_name: str | None = None,
        cleanup: bool = False,
    ) -> TransferInfo:
        """
        Start uploading a file to a server.

        Args:
            server: Destination server.
            file_path: Local path of the file to send.
            file_name: Name reported to the server (defaults to basename).
            cleanup: Delete file_path once the upload ends, whatever the
                outcome. Used for temporary copies.
        """
        if not os.path.isfile(file_path):
            raise TransferError(f"File not found: {file_path}")

        info = TransferInfo(
            transfer_id=str(uuid.uuid4()),
            file_name=file_name or os.path.basename(file_path),
            file_size=os.path.getsize(file_path),
            server_id=server.id,
            server_name=server.name,
        )

        async with self._lock:
            self._transfers[info.transfer_id] = info

        if cleanup:
            self._temp_files[info.transfer_id] = file_path

        task = asyncio.create_task(self._upload_task(server, file_path, info))
        self._tasks[info.transfer_id] = task

        await self._emit("transfer_state", info.model_dump())
        return info

    async def wait(self, transfer_id: str) -> TransferInfo | None:
        """Wait for an upload to finish and return its final state."""
        task = self._tasks.get(transfer_id)
        if task:
            await asyncio.gather(task, return_exceptions=True)
        return self._transfers.get(transfer_id)

    async def _upload_task(
        self, server: Server, file_path: str, info: TransferInfo
    ) -> None:
        """Task wrapper for uploading a single file."""
        progress: asyncio.Queue[TransferInfo | None] = asyncio.Queue()
        forwarder = asyncio.create_task(self._forward_progress(progress))
        try:
            info.state = TransferState.UPLOADING
            await self._on_state_change(info)

            def on_progress(percent: int) -> None:
                info.progress_percent = percent
                progress.put_nowait(info.model_copy())

            async with self._client_factory(server.full_address) as client:
                outcome = await client.upload_file(
                    file_path, on_progress=on_progress, file_name=info.file_name
                )

            if outcome.ok:
                info.state = TransferState.COMPLETED
                info.progress_percent = 100
                info.remote_path = outcome.response.file.path
            else:
                info.state = TransferState.FAILED
                info.error_message = outcome.reason

        except asyncio.CancelledError:
            info.state = TransferState.CANCELLED
        except Exception as e:
            logger.error(f"Upload error for {info.file_name}: {e}")
            info.state = TransferState.FAILED
            info.error_message = str(e)
        finally:
            # Progress goes out before the final state
            progress.put_nowait(None)
            await asyncio.gather(forwarder, return_exceptions=True)
            self._tasks.pop(info.transfer_id, None)
            self._remove_temp_file(info.transfer_id)

        await self._on_state_change(info)

    async def _forward_progress(self, progress: asyncio.Queue) -> None:
        while (snapshot := await progress.get()) is not None:
            await self._on_progress(snapshot)

    async def cancel_transfer(self, transfer_id: str) -> None:
        """Cancel an upload that has not finished yet."""
        info = self._transfers.get(transfer_id)
        if info and info.state in _ACTIVE_STATES:
            task = self._tasks.get(transfer_id)
            if task:
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
            await self._finish_unstarted(info)

    async def stop(self) -> None:
        """Cancel all active uploads."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        for info in self.get_transfers():
            await self._finish_unstarted(info)
        logger.info("Transfer manager stopped")

    async def _finish_unstarted(self, info: TransferInfo) -> None:
        """Settle an upload whose task was cancelled before it ran."""
        if info.state == TransferState.PENDING:
            self._tasks.pop(info.transfer_id, None)
            self._remove_temp_file(info.transfer_id)
            info.state = TransferState.CANCELLED
            await self._on_state_change(info)

    def _remove_temp_file(self, transfer_id: str) -> None:
        file_path = self._temp_files.pop(transfer_id, None)
        if file_path is None:
            return
        try:
            os.remove(file_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove temporary file {file_path}: {e}")

    async def _on_progress(self, info: TransferInfo) -> None:
        await self._emit("transfer_progress", info.model_dump())

    async def _on_state_change(self, info: TransferInfo) -> None:
        async with self._lock:
            self._transfers[info.transfer_id] = info
        await self._emit("transfer_state", info.model_dump())

        # Generate user-facing notifications
        notification = None
        if info.state == TransferState.COMPLETED:
            notification = {
                "type": "success",
                "message": f"'{info.file_name}' sent to {info.server_name}.",
            }
        elif info.state == TransferState.FAILED:
            notification = {
                "type": "error",
                "message": f"Transfer of '{info.file_name}' failed: {info.error_message}",
            }
        elif info.state == TransferState.CANCELLED:
            notification = {
                "type": "info",
                "message": f"Transfer of '{info.file_name}' cancelled.",
            }

        if notification:
            await self._emit("notification", notification)
