"""
Tests for the client REST API routes.
"""

import time

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from fakes import FakeTransport, StubClientFactory, make_server
from filecast.api.routes import init_routes, router
from filecast.discovery.prober import AvailabilityProber
from filecast.discovery.registry import ServerRegistry
from filecast.discovery.session import DiscoverySession
from filecast.receiver.app import create_app
from filecast.transfer.client import TransferClient
from filecast.transfer.manager import TransferManager


@pytest.fixture
def services(tmp_path):
    registry = ServerRegistry()
    transport = FakeTransport()
    prober = AvailabilityProber(registry, client_factory=StubClientFactory(ok=False))
    session = DiscoverySession(transport, registry, prober)
    receiver = create_app(upload_dir=str(tmp_path / "uploads"))
    manager = TransferManager(
        client_factory=lambda url: TransferClient(
            url, transport=httpx.ASGITransport(app=receiver)
        )
    )
    init_routes(registry, session, prober, manager)
    return registry, transport, session, manager


@pytest.fixture
def client(services):
    app = FastAPI()
    app.include_router(router)
    with TestClient(app) as c:
        yield c


class TestServers:
    def test_lists_snapshot(self, client, services):
        registry = services[0]
        registry.upsert(make_server("svc1"))
        registry.upsert(make_server("svc2", port=9000))

        body = client.get("/api/servers").json()
        assert [s["id"] for s in body["servers"]] == ["svc1", "svc2"]
        assert body["servers"][1]["port"] == 9000

    def test_probe_updates_availability(self, client, services):
        registry = services[0]
        registry.upsert(make_server("svc1"))

        response = client.post("/api/servers/svc1/probe")
        assert response.status_code == 200
        assert response.json() == {"id": "svc1", "is_available": False}
        assert registry.get("svc1").is_available is False

    def test_probe_unknown_server(self, client):
        assert client.post("/api/servers/nope/probe").status_code == 404


class TestDiscovery:
    def test_start_and_stop(self, client):
        assert client.get("/api/discovery").json() == {"state": "stopped"}
        assert client.post("/api/discovery/start").json() == {"state": "active"}
        assert client.post("/api/discovery/stop").json() == {"state": "stopped"}

    def test_start_failure_is_reported(self, client, services):
        transport = services[1]
        transport.fail_subscribe = True

        response = client.post("/api/discovery/start")
        assert response.status_code == 503
        assert "discovery denied" in response.json()["detail"]
        assert client.get("/api/discovery").json() == {"state": "stopped"}


class TestTransfers:
    def test_unknown_server(self, client):
        response = client.post(
            "/api/transfers",
            data={"server_id": "nope"},
            files={"file": ("a.txt", b"data")},
        )
        assert response.status_code == 404

    def test_queues_upload(self, client, services):
        registry = services[0]
        registry.upsert(make_server("svc1"))

        response = client.post(
            "/api/transfers",
            data={"server_id": "svc1"},
            files={"file": ("a.txt", b"data")},
        )
        assert response.status_code == 200
        transfer = response.json()["transfer"]
        assert transfer["file_name"] == "a.txt"
        assert transfer["server_id"] == "svc1"

        listed = client.get("/api/transfers").json()["transfers"]
        assert [t["transfer_id"] for t in listed] == [transfer["transfer_id"]]

    def test_spooled_copy_reaches_receiver(self, client, services, tmp_path):
        registry = services[0]
        registry.upsert(make_server("svc1"))

        response = client.post(
            "/api/transfers",
            data={"server_id": "svc1"},
            files={"file": ("notes.txt", b"meeting notes")},
        )
        transfer_id = response.json()["transfer"]["transfer_id"]

        state = None
        for _ in range(50):
            listed = client.get("/api/transfers").json()["transfers"]
            state = next(t["state"] for t in listed if t["transfer_id"] == transfer_id)
            if state == "completed":
                break
            time.sleep(0.02)

        assert state == "completed"
        stored = list((tmp_path / "uploads").iterdir())
        assert [p.read_bytes() for p in stored] == [b"meeting notes"]

    def test_cancel_unknown_transfer(self, client):
        assert client.post("/api/transfers/nope/cancel").status_code == 404
