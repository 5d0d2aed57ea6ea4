import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SENDGRID_API_KEY", "")

from collections import defaultdict
from typing import Any, Callable, Dict, List

import fakeredis
import httpx
import pytest
from fastapi.testclient import TestClient

from agent_relay.client.api import AgentApiClient
from agent_relay.db.database import SessionLocal, create_tables, drop_tables
from agent_relay.db.redis import get_redis
from agent_relay.realtime.hub import RelayHub
from agent_relay.services.presence_service import PresenceService


class RecordingEmitter:
    """Collects what the hub would send over Socket.IO"""

    def __init__(self):
        self.emitted: List[Dict[str, Any]] = []
        self.memberships = defaultdict(set)

    async def emit(self, event, data, to=None, skip_sid=None):
        self.emitted.append({"event": event, "data": data, "to": to, "skip_sid": skip_sid})

    async def enter_room(self, sid, room):
        self.memberships[sid].add(room)

    def events(self, name: str) -> List[Dict[str, Any]]:
        return [e for e in self.emitted if e["event"] == name]


class FakeSocket:
    """Stands in for socketio.AsyncClient in client session tests"""

    def __init__(self):
        self.handlers: Dict[str, Callable] = {}
        self.emitted: List[tuple] = []
        self.connected = False
        self.url = None

    def on(self, event, handler):
        self.handlers[event] = handler

    async def connect(self, url, socketio_path=None):
        self.url = url
        self.connected = True
        await self.trigger("connect")

    async def disconnect(self):
        self.connected = False
        await self.trigger("disconnect")

    async def emit(self, event, data=None):
        self.emitted.append((event, data))

    async def trigger(self, event, *args):
        handler = self.handlers.get(event)
        if handler is not None:
            await handler(*args)

    def emitted_events(self) -> List[str]:
        return [event for event, _ in self.emitted]


class SocketFactory:
    def __init__(self):
        self.sockets: List[FakeSocket] = []

    def __call__(self) -> FakeSocket:
        socket = FakeSocket()
        self.sockets.append(socket)
        return socket

    @property
    def last(self) -> FakeSocket:
        return self.sockets[-1]


class MockRelay:
    """Scripted REST responses for client tests, keyed by (method, path)"""

    def __init__(self):
        self.routes: Dict[tuple, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, path: str, status_code: int = 200, json: Any = None, handler=None):
        self.routes[(method, path)] = handler or (lambda request: httpx.Response(status_code, json=json))

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"detail": "Not Found"})
        return route(request)


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def presence(fake_redis):
    return PresenceService(fake_redis)


@pytest.fixture
def db_tables():
    create_tables()
    yield
    drop_tables()


@pytest.fixture
def db_session(db_tables):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def emitter():
    return RecordingEmitter()


@pytest.fixture
def hub(emitter, fake_redis, db_tables):
    return RelayHub(
        emitter=emitter,
        session_factory=SessionLocal,
        presence_factory=lambda: PresenceService(fake_redis),
    )


@pytest.fixture
def client(hub, fake_redis):
    from agent_relay.main import app
    from agent_relay.realtime.server import get_hub

    app.dependency_overrides[get_redis] = lambda: fake_redis
    app.dependency_overrides[get_hub] = lambda: hub
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def relay():
    return MockRelay()


@pytest.fixture
async def api(relay):
    client = AgentApiClient(
        "http://relay.test",
        client=httpx.AsyncClient(base_url="http://relay.test", transport=httpx.MockTransport(relay)),
    )
    yield client
    await client.aclose()


@pytest.fixture
def sockets():
    return SocketFactory()
