"""Room protocol for the live chat relay.

Visitors join the group named after their room id. Admin connections join
the ``admins`` group and see every room's traffic, filtering by the room
they have selected. Every event that touches a room's history is persisted
and emitted while holding that room's lock, so all participants observe
one total order per room, equal to server receipt order, and history
snapshots are always a prefix of it.

Database and presence calls are blocking, so they run in the threadpool;
a slow write in one room never holds up the event loop for the others.
"""
import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Iterable, Optional, Protocol, Union

from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError
from sqlalchemy.orm import Session
import structlog

from agent_relay.models.schemas import (
    ConnectionRole, MessageRole, RoomPayload, RoomTextPayload,
)
from agent_relay.services.knowledge_service import KnowledgeService
from agent_relay.services.presence_service import PresenceService
from agent_relay.services.room_service import RoomService, to_message_out
from agent_relay.utils.logging import log_room_event

logger = structlog.get_logger()

ADMINS_GROUP = "admins"

USER_ENDED_NOTICE = "Chat ended by user."
EMAIL_REQUESTED_NOTICE = "Email request sent to the user."

# Event names, as seen on the wire
ADMIN_STATUS = "agent:admin_status"
USER_MESSAGE = "agent:user_message"
ADMIN_REPLY = "agent:admin_reply"
AGENT_REPLY = "agent:agent_reply"
SYSTEM = "agent:system"
ROOM_HISTORY = "agent:room_history"
USER_ENDED = "agent:user_ended"
REQUEST_EMAIL = "agent:request_email"


class Emitter(Protocol):
    async def emit(self, event: str, data: Dict[str, Any], to: Union[str, Iterable[str], None] = None,
                   skip_sid: Optional[str] = None) -> None: ...

    async def enter_room(self, sid: str, room: str) -> None: ...


class RelayHub:
    def __init__(
        self,
        emitter: Emitter,
        session_factory: Callable[[], Session],
        presence_factory: Callable[[], PresenceService],
    ):
        self.emitter = emitter
        self.session_factory = session_factory
        self.presence_factory = presence_factory
        # a room's lock lives only while some event holds or awaits it
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = defaultdict(int)
        self._roles: Dict[str, ConnectionRole] = {}

    # Connection lifecycle
    async def connect(self, sid: str, role: str, room: Optional[str] = None) -> ConnectionRole:
        try:
            conn_role = ConnectionRole(role)
        except ValueError:
            conn_role = ConnectionRole.USER
        self._roles[sid] = conn_role
        if conn_role == ConnectionRole.ADMIN:
            await self.emitter.enter_room(sid, ADMINS_GROUP)
        if room:
            await self.emitter.enter_room(sid, room)
        logger.info("Connection opened", sid=sid, role=conn_role.value, room=room)
        return conn_role

    def disconnect(self, sid: str) -> None:
        # a dropped connection never ends its room; the visitor may come back
        role = self._roles.pop(sid, None)
        logger.info("Connection closed", sid=sid, role=role.value if role else None)

    def role_of(self, sid: str) -> ConnectionRole:
        return self._roles.get(sid, ConnectionRole.USER)

    def is_admin(self, sid: str) -> bool:
        return self.role_of(sid) == ConnectionRole.ADMIN

    def forget_room(self, room: str) -> None:
        if not self._lock_users.get(room):
            self._lock_users.pop(room, None)
            self._locks.pop(room, None)

    @asynccontextmanager
    async def room_lock(self, room: str):
        lock = self._locks.get(room)
        if lock is None:
            lock = self._locks[room] = asyncio.Lock()
        self._lock_users[room] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[room] -= 1
            if not self._lock_users[room]:
                del self._lock_users[room]
                self._locks.pop(room, None)

    def _admin_online(self) -> bool:
        return self.presence_factory().is_online()

    # Client -> server events
    async def join_room(self, sid: str, data: Any) -> None:
        payload = self._parse(RoomPayload, data, "join_room", sid)
        if payload:
            await self.emitter.enter_room(sid, payload.room)
            log_room_event("join_room", payload.room, sid=sid, role=self.role_of(sid).value)

    async def admin_status_get(self, sid: str, data: Any = None) -> None:
        online = await run_in_threadpool(self._admin_online)
        await self.emitter.emit(ADMIN_STATUS, {"online": online}, to=sid)

    async def user_message(self, sid: str, data: Any) -> None:
        payload = self._parse(RoomTextPayload, data, "user_message", sid)
        if not payload:
            return

        room, text = payload.room, payload.text
        async with self.room_lock(room):
            ts, email = await run_in_threadpool(self._store_user_message, room, text)
            await self.emitter.emit(
                USER_MESSAGE,
                {"room": room, "text": text, "ts": ts, "email": email},
                to=[room, ADMINS_GROUP],
                skip_sid=sid,
            )
            log_room_event("user_message", room, sid=sid)

            # admin went offline between the visitor's check and delivery
            if not await run_in_threadpool(self._admin_online):
                await self._auto_answer(room, text)

    def _store_user_message(self, room: str, text: str):
        with self.session_factory() as db:
            service = RoomService(db)
            message = service.append_message(room, MessageRole.USER, text)
            return to_message_out(message).ts, service.get_room(room).email

    async def _auto_answer(self, room: str, text: str) -> None:
        answer = await run_in_threadpool(self._store_agent_answer, room, text)
        if answer is None:
            return
        reply_text, ts, score = answer
        await self.emitter.emit(
            AGENT_REPLY,
            {"room": room, "text": reply_text, "ts": ts},
            to=[room, ADMINS_GROUP],
        )
        log_room_event("agent_reply", room, score=score)

    def _store_agent_answer(self, room: str, text: str):
        with self.session_factory() as db:
            match = KnowledgeService(db).search(text)
            if not match:
                return None
            reply = RoomService(db).append_message(room, MessageRole.AGENT, match.answer)
            return match.answer, to_message_out(reply).ts, match.score

    async def admin_reply(self, sid: str, data: Any) -> None:
        if not self.is_admin(sid):
            logger.warning("Ignoring admin_reply from non-admin connection", sid=sid)
            return
        payload = self._parse(RoomTextPayload, data, "admin_reply", sid)
        if not payload:
            return

        room, text = payload.room, payload.text
        async with self.room_lock(room):
            ts = await run_in_threadpool(self._store_message, room, MessageRole.ADMIN, text)
            await self.emitter.emit(
                ADMIN_REPLY,
                {"room": room, "text": text, "ts": ts},
                to=[room, ADMINS_GROUP],
                skip_sid=sid,
            )
            log_room_event("admin_reply", room, sid=sid)

    def _store_message(self, room: str, role: MessageRole, text: str) -> str:
        with self.session_factory() as db:
            return to_message_out(RoomService(db).append_message(room, role, text)).ts

    async def user_end(self, sid: str, data: Any) -> None:
        payload = self._parse(RoomPayload, data, "user_end", sid)
        if not payload:
            return

        room = payload.room
        async with self.room_lock(room):
            ts = await run_in_threadpool(self._end_room, room)
            await self.emitter.emit(
                SYSTEM,
                {"room": room, "text": USER_ENDED_NOTICE, "ts": ts},
                to=[room, ADMINS_GROUP],
                skip_sid=sid,
            )
            await self.emitter.emit(USER_ENDED, {}, to=room, skip_sid=sid)
            log_room_event("user_end", room, sid=sid)

    def _end_room(self, room: str) -> str:
        with self.session_factory() as db:
            service = RoomService(db)
            ts = to_message_out(service.append_message(room, MessageRole.SYSTEM, USER_ENDED_NOTICE)).ts
            service.end_room(room)
            return ts

    async def get_history(self, sid: str, data: Any) -> None:
        if not self.is_admin(sid):
            logger.warning("Ignoring get_history from non-admin connection", sid=sid)
            return
        payload = self._parse(RoomPayload, data, "get_history", sid)
        if not payload:
            return

        room = payload.room
        async with self.room_lock(room):
            messages, email = await run_in_threadpool(self._read_history, room)
            await self.emitter.emit(
                ROOM_HISTORY,
                {"room": room, "messages": messages, "email": email},
                to=sid,
            )
        log_room_event("get_history", room, sid=sid, count=len(messages))

    def _read_history(self, room: str):
        with self.session_factory() as db:
            service = RoomService(db)
            record = service.get_room(room)
            messages = [to_message_out(m).model_dump() for m in service.get_messages(room, limit=10_000)]
            email = record.email if record else None
            service.mark_read(room)
            return messages, email

    async def request_email(self, sid: str, data: Any) -> None:
        if not self.is_admin(sid):
            logger.warning("Ignoring request_email from non-admin connection", sid=sid)
            return
        payload = self._parse(RoomPayload, data, "request_email", sid)
        if not payload:
            return

        room = payload.room
        async with self.room_lock(room):
            ts = await run_in_threadpool(self._store_message, room, MessageRole.SYSTEM, EMAIL_REQUESTED_NOTICE)
            await self.emitter.emit(REQUEST_EMAIL, {}, to=room, skip_sid=sid)
            await self.emitter.emit(
                SYSTEM,
                {"room": room, "text": EMAIL_REQUESTED_NOTICE, "ts": ts},
                to=ADMINS_GROUP,
                skip_sid=sid,
            )
            log_room_event("request_email", room, sid=sid)

    # Server-initiated broadcasts
    async def broadcast_presence(self, online: bool) -> None:
        await self.emitter.emit(ADMIN_STATUS, {"online": online})

    def _parse(self, model, data: Any, event: str, sid: str):
        try:
            return model.model_validate(data or {})
        except ValidationError as e:
            logger.warning("Rejected malformed event", event=event, sid=sid, errors=e.error_count())
            return None
