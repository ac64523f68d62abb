"""
Discovery session.

Owns the subscription to the service-broadcast transport and turns its
found / lost / resolved notifications into registry mutations. All
notifications pass through one queue, so events for the same service
are applied in the order they were observed.
"""

import abc
import asyncio
import logging
from typing import Protocol

from pydantic import ValidationError

from filecast.config import SERVICE_TYPE
from filecast.discovery.models import EventKind, Server, ServiceEvent, SessionState
from filecast.discovery.prober import AvailabilityProber
from filecast.discovery.registry import ServerRegistry
from filecast.errors import DiscoveryStartError, ResolutionError

logger = logging.getLogger(__name__)


class DiscoveryListener(Protocol):
    """Receiver of browse notifications. May be called from any thread."""

    def service_found(self, service_name: str) -> None: ...

    def service_lost(self, service_name: str) -> None: ...


class DiscoveryTransport(abc.ABC):
    """The platform's service-broadcast mechanism."""

    @abc.abstractmethod
    async def subscribe(self, service_type: str, listener: DiscoveryListener) -> None:
        """Start browsing; raises on failure."""

    @abc.abstractmethod
    async def unsubscribe(self) -> None:
        """Stop browsing."""

    @abc.abstractmethod
    async def resolve(self, service_name: str) -> tuple[str, int]:
        """Return (host, port) for a service or raise ResolutionError."""


class DiscoverySession:
    """Lifecycle of one discovery subscription feeding a ServerRegistry."""

    def __init__(
        self,
        transport: DiscoveryTransport,
        registry: ServerRegistry,
        prober: AvailabilityProber,
        service_type: str = SERVICE_TYPE,
    ) -> None:
        self._transport = transport
        self._registry = registry
        self._prober = prober
        self._service_type = service_type
        self._state = SessionState.STOPPED
        self._lifecycle_lock = asyncio.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._events: asyncio.Queue[ServiceEvent] = asyncio.Queue()
        self._dispatch_task: asyncio.Task | None = None
        self._resolving: dict[str, asyncio.Task] = {}
        self._generations: dict[str, int] = {}

    @property
    def state(self) -> SessionState:
        return self._state

    async def start(self) -> None:
        """Subscribe to discovery. No-op if already started."""
        async with self._lifecycle_lock:
            if self._state in (SessionState.STARTING, SessionState.ACTIVE):
                return

            self._state = SessionState.STARTING
            self._loop = asyncio.get_running_loop()
            self._events = asyncio.Queue()
            logger.info(f"Starting discovery for {self._service_type}")

            try:
                await self._transport.subscribe(self._service_type, self)
            except Exception as e:
                self._state = SessionState.STOPPED
                logger.error(f"Failed to start discovery: {e!r}")
                raise DiscoveryStartError(f"Failed to start discovery: {e}") from e

            self._dispatch_task = asyncio.create_task(
                self._dispatch_loop(), name="discovery-dispatch"
            )
            self._state = SessionState.ACTIVE
            logger.info("Service discovery started")

    async def stop(self) -> None:
        """Unsubscribe. In-flight probes are left to finish."""
        async with self._lifecycle_lock:
            if self._state == SessionState.STOPPED:
                return

            self._state = SessionState.STOPPING
            try:
                await self._transport.unsubscribe()
            except Exception as e:
                logger.error(f"Failed to stop discovery: {e!r}")

            for task in list(self._resolving.values()):
                task.cancel()
            if self._dispatch_task:
                self._dispatch_task.cancel()
                await asyncio.gather(self._dispatch_task, return_exceptions=True)
                self._dispatch_task = None
            if self._resolving:
                await asyncio.gather(
                    *self._resolving.values(), return_exceptions=True
                )
            self._resolving.clear()
            self._generations.clear()

            self._state = SessionState.STOPPED
            logger.info("Service discovery stopped")

    async def wait_idle(self) -> None:
        """Wait until queued events and pending resolutions are handled."""
        while True:
            if self._resolving:
                await asyncio.gather(
                    *list(self._resolving.values()), return_exceptions=True
                )
            if self._state == SessionState.ACTIVE:
                await self._events.join()
            if not self._resolving and (
                self._events.empty() or self._state != SessionState.ACTIVE
            ):
                return

    # --- DiscoveryListener ---

    def service_found(self, service_name: str) -> None:
        self._post(ServiceEvent(kind=EventKind.FOUND, service_name=service_name))

    def service_lost(self, service_name: str) -> None:
        self._post(ServiceEvent(kind=EventKind.LOST, service_name=service_name))

    def _post(self, event: ServiceEvent) -> None:
        """Queue an event from any thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._events.put_nowait(event)
        else:
            loop.call_soon_threadsafe(self._events.put_nowait, event)

    # --- Event handling ---

    async def _dispatch_loop(self) -> None:
        while True:
            event = await self._events.get()
            try:
                if self._state == SessionState.ACTIVE:
                    self._handle(event)
            except Exception as e:
                # One bad event must not end the subscription
                logger.error(
                    f"Error handling {event.kind.value} for {event.service_name}: {e!r}"
                )
            finally:
                self._events.task_done()

    def _handle(self, event: ServiceEvent) -> None:
        name = event.service_name
        if event.kind == EventKind.FOUND:
            logger.debug(f"Service found: {name}")
            pending = self._resolving.get(name)
            if pending is not None and not pending.done():
                logger.debug(f"Resolution of {name} already in progress")
                return
            generation = self._generations.get(name, 0)
            task = asyncio.create_task(
                self._resolve(name, generation), name=f"resolve:{name}"
            )
            self._resolving[name] = task
            task.add_done_callback(lambda t, n=name: self._resolve_done(n, t))

        elif event.kind == EventKind.LOST:
            logger.debug(f"Service lost: {name}")
            # Results of resolutions started before this point are stale
            self._generations[name] = self._generations.get(name, 0) + 1
            pending = self._resolving.pop(name, None)
            if pending:
                pending.cancel()
            self._registry.remove(name)

        elif event.generation != self._generations.get(name, 0):
            logger.debug(f"Dropping stale {event.kind.value} for {name}")

        elif event.kind == EventKind.RESOLVED:
            logger.debug(f"Service resolved: {name} -> {event.host}:{event.port}")
            try:
                server = Server(
                    id=name,
                    name=name,
                    address=event.host or "",
                    port=event.port or 0,
                    is_available=True,
                )
            except ValidationError as e:
                logger.warning(f"Ignoring malformed resolution for {name}: {e}")
                return
            self._registry.upsert(server)
            self._prober.probe(server)

        elif event.kind == EventKind.RESOLVE_FAILED:
            logger.error(f"Failed to resolve service {name}: {event.error_code}")

    async def _resolve(self, name: str, generation: int) -> None:
        try:
            host, port = await self._transport.resolve(name)
        except ResolutionError as e:
            self._post(ServiceEvent(
                kind=EventKind.RESOLVE_FAILED,
                service_name=name,
                error_code=e.error_code,
                generation=generation,
            ))
            return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Resolver error for {name}: {e!r}")
            self._post(ServiceEvent(
                kind=EventKind.RESOLVE_FAILED,
                service_name=name,
                generation=generation,
            ))
            return

        try:
            event = ServiceEvent(
                kind=EventKind.RESOLVED,
                service_name=name,
                host=host,
                port=port,
                generation=generation,
            )
        except ValidationError as e:
            logger.warning(f"Resolver returned a malformed address for {name}: {e}")
            event = ServiceEvent(
                kind=EventKind.RESOLVE_FAILED,
                service_name=name,
                generation=generation,
            )
        self._post(event)

    def _resolve_done(self, name: str, task: asyncio.Task) -> None:
        if self._resolving.get(name) is task:
            del self._resolving[name]
