import inspect
from typing import Any, Dict, Iterable, Optional, Union
from urllib.parse import parse_qs

import socketio
import structlog

from agent_relay.config import get_settings
from agent_relay.db.database import SessionLocal
from agent_relay.db.redis import get_redis
from agent_relay.realtime.hub import RelayHub
from agent_relay.services.presence_service import PresenceService

logger = structlog.get_logger()
settings = get_settings()


class SocketIOEmitter:
    """Adapts a Socket.IO server to the hub's emitter interface"""

    def __init__(self, server: socketio.AsyncServer):
        self.server = server

    async def emit(self, event: str, data: Dict[str, Any], to: Union[str, Iterable[str], None] = None,
                   skip_sid: Optional[str] = None) -> None:
        await self.server.emit(event, data, to=to, skip_sid=skip_sid)

    async def enter_room(self, sid: str, room: str) -> None:
        result = self.server.enter_room(sid, room)
        # coroutine on current python-socketio releases, plain call on older ones
        if inspect.isawaitable(result):
            await result


def register_handlers(server: socketio.AsyncServer, hub: RelayHub) -> None:
    """Wire Socket.IO events to the relay hub"""

    @server.event
    async def connect(sid, environ, auth=None):
        query = parse_qs(environ.get("QUERY_STRING", ""))
        role = (query.get("role") or ["user"])[0]
        room = (query.get("room") or [None])[0]
        await hub.connect(sid, role, room)

    @server.event
    async def disconnect(sid, *args):
        hub.disconnect(sid)

    server.on("agent:join_room", hub.join_room)
    server.on("agent:user_message", hub.user_message)
    server.on("agent:admin_reply", hub.admin_reply)
    server.on("agent:user_end", hub.user_end)
    server.on("agent:get_history", hub.get_history)
    server.on("agent:request_email", hub.request_email)
    server.on("agent:admin_status:get", hub.admin_status_get)


sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=settings.cors_origins,
    logger=False,
    engineio_logger=False,
)

hub = RelayHub(
    emitter=SocketIOEmitter(sio),
    session_factory=SessionLocal,
    presence_factory=lambda: PresenceService(get_redis()),
)

register_handlers(sio, hub)


def get_hub() -> RelayHub:
    """Dependency to get the relay hub"""
    return hub
