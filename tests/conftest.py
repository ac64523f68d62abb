"""
Shared fixtures for the discovery and transfer tests.
"""

import pytest

from fakes import FakeTransport, StubClientFactory
from filecast.discovery.prober import AvailabilityProber
from filecast.discovery.registry import ServerRegistry
from filecast.discovery.session import DiscoverySession


@pytest.fixture
def registry():
    return ServerRegistry()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def status_factory():
    return StubClientFactory(ok=True)


@pytest.fixture
def prober(registry, status_factory):
    return AvailabilityProber(registry, client_factory=status_factory)


@pytest.fixture
def session(transport, registry, prober):
    return DiscoverySession(transport, registry, prober, service_type="_http._tcp.local.")
