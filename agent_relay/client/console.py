"""Admin live console session.

Selecting a room asks for its history over the socket and schedules a REST
fetch as a fallback. Each selection bumps a generation counter; a history
response is applied only while its generation is still current, so a late
answer for a room the admin has already left is dropped. Socket history
always replaces the list and cancels the fallback; REST history replaces
it only if socket history has not landed for the same selection.
"""
import asyncio
from typing import Any, Callable, Dict, List, Optional, Union

import httpx
import structlog

from agent_relay.client.api import AgentApiClient, AgentApiError, normalize_history_item
from agent_relay.client.capture import is_valid_email
from agent_relay.client.transport import SOCKET_ERRORS, NoticeBoard, SocketFactory, default_socket_factory, socket_url
from agent_relay.models.schemas import ChatMessage, MessageRole, RoomSummary, now_iso

logger = structlog.get_logger()

EMAIL_REQUESTED_TEXT = "Email request sent to the user."

Confirm = Union[bool, Callable[[], bool]]


class AdminConsoleSession:
    def __init__(
        self,
        api: AgentApiClient,
        base_url: str = "",
        socket_factory: SocketFactory = default_socket_factory,
        socketio_path: str = "socket.io",
        history_fallback_delay: float = 0.6,
        history_limit: int = 200,
    ):
        self.api = api
        self.base_url = base_url
        self.socket_factory = socket_factory
        self.socketio_path = socketio_path
        self.history_fallback_delay = history_fallback_delay
        self.history_limit = history_limit

        self.online = False
        self.rooms: List[RoomSummary] = []
        self.room_filter = ""
        self.inbox: List[Dict[str, Any]] = []
        self.selected_room: Optional[str] = None
        self.selected_room_email = ""
        self.messages: List[ChatMessage] = []
        self.loading_history = False
        self.forwarding = False
        self.deleting = False
        self.notices = NoticeBoard()

        self.socket: Any = None
        self._generation = 0
        self._socket_history_generation = -1
        self._fallback_task: Optional[asyncio.Task] = None

    @property
    def generation(self) -> int:
        """Counter bumped on every room selection"""
        return self._generation

    # Transport
    async def connect(self) -> None:
        socket = self.socket_factory()
        socket.on("connect", self._on_connect)
        socket.on("agent:admin_status", self._on_admin_status)
        socket.on("agent:user_message", self._on_user_message)
        socket.on("agent:admin_reply", self._on_admin_reply)
        socket.on("agent:agent_reply", self._on_agent_reply)
        socket.on("agent:system", self._on_system)
        socket.on("agent:room_history", self._on_room_history)
        self.socket = socket
        try:
            await socket.connect(socket_url(self.base_url, {"role": "admin"}), socketio_path=self.socketio_path)
        except SOCKET_ERRORS as e:
            logger.warning("Console realtime connect failed", error=str(e))

    async def disconnect(self) -> None:
        self._cancel_fallback()
        socket, self.socket = self.socket, None
        if socket is not None:
            await socket.disconnect()

    async def _emit(self, event: str, data: Any = None) -> bool:
        if self.socket is None:
            return False
        try:
            await self.socket.emit(event, data)
            return True
        except SOCKET_ERRORS as e:
            logger.warning("Console emit failed", event=event, error=str(e))
            return False

    # Socket events
    async def _on_connect(self) -> None:
        await self._emit("agent:admin_status:get")

    async def _on_admin_status(self, data: dict) -> None:
        self.online = bool((data or {}).get("online"))

    def _append_live(self, room: str, role: MessageRole, text: str, ts: str = None) -> bool:
        if not room or room != self.selected_room:
            return False
        self.messages.append(ChatMessage(role=role, text=text or "", ts=ts or now_iso()))
        return True

    async def _on_user_message(self, data: dict) -> None:
        data = data or {}
        if self._append_live(data.get("room"), MessageRole.USER, data.get("text"), data.get("ts")):
            if data.get("email") and not self.selected_room_email:
                self.selected_room_email = data["email"]
        await self.refresh_rooms()

    async def _on_admin_reply(self, data: dict) -> None:
        data = data or {}
        self._append_live(data.get("room"), MessageRole.ADMIN, data.get("text"), data.get("ts"))

    async def _on_agent_reply(self, data: dict) -> None:
        data = data or {}
        self._append_live(data.get("room"), MessageRole.AGENT, data.get("text"), data.get("ts"))

    async def _on_system(self, data: dict) -> None:
        data = data or {}
        self._append_live(data.get("room"), MessageRole.SYSTEM, data.get("text"), data.get("ts"))

    async def _on_room_history(self, data: dict) -> None:
        data = data or {}
        room = data.get("room")
        if not room or room != self.selected_room:
            logger.debug("Dropping history for unselected room", room=room)
            return
        self._replace_history(data.get("messages") or [], data.get("email"))
        self._socket_history_generation = self._generation
        self._cancel_fallback()
        self.loading_history = False

    # History
    def _replace_history(self, items: List[Any], email: Optional[str]) -> None:
        messages = []
        for item in items:
            message = item if not isinstance(item, dict) else normalize_history_item(item)
            messages.append(ChatMessage(role=message.role, text=message.text, ts=message.ts))
        self.messages = messages
        if email:
            self.selected_room_email = email

    def _cancel_fallback(self) -> None:
        if self._fallback_task is not None:
            self._fallback_task.cancel()
            self._fallback_task = None

    async def _fallback_later(self, room: str, generation: int) -> None:
        await asyncio.sleep(self.history_fallback_delay)
        self._fallback_task = None
        await self.fetch_history_rest(room, generation)

    async def fetch_history_rest(self, room: str, generation: int) -> bool:
        """REST history; applied only if the selection it was made for is still current"""
        try:
            data = await self.api.get_room_messages(room, page=1, limit=self.history_limit)
        except (AgentApiError, httpx.HTTPError) as e:
            logger.info("REST history fetch failed", room=room, error=str(e))
            data = None

        current = generation == self._generation and room == self.selected_room
        if not current:
            logger.debug("Dropping stale REST history", room=room)
            return False
        self.loading_history = False
        if data is None or self._socket_history_generation == generation:
            return False
        self._replace_history(data["items"], None if self.selected_room_email else data.get("email"))
        return True

    async def select_room(self, room: Optional[str]) -> None:
        self._generation += 1
        self._cancel_fallback()
        self.selected_room = room
        self.messages = []
        if not room:
            self.loading_history = False
            self.selected_room_email = ""
            return

        meta = next((r for r in self.rooms if r.room_id == room), None)
        self.selected_room_email = (meta.email if meta else None) or ""
        self.loading_history = True

        await self._emit("agent:get_history", {"room": room})
        self._fallback_task = asyncio.create_task(self._fallback_later(room, self._generation))

    # Rooms
    async def refresh_rooms(self, search: str = None, page: int = 1, limit: int = 50) -> List[RoomSummary]:
        if search is not None:
            self.room_filter = search
        try:
            self.rooms = await self.api.get_rooms(page=page, limit=limit, search=self.room_filter)
        except (AgentApiError, httpx.HTTPError) as e:
            logger.info("Room list refresh failed", error=str(e))
        return self.rooms

    # Actions
    async def load_presence(self) -> None:
        try:
            self.online = await self.api.get_presence()
        except (AgentApiError, httpx.HTTPError) as e:
            logger.info("Presence fetch failed", error=str(e))

    async def toggle_presence(self) -> bool:
        desired = not self.online
        self.online = desired
        try:
            await self.api.set_presence(desired)
        except (AgentApiError, httpx.HTTPError) as e:
            logger.warning("Presence update failed", error=str(e))
            self.online = not desired
            self.notices.error("Failed to update presence")
            return self.online
        self.notices.success("You’re now Online" if desired else "You’re now Offline")
        return self.online

    async def send_reply(self, text: str) -> Optional[ChatMessage]:
        """Optimistic append, then fire-and-forget emit"""
        text = (text or "").strip()
        if not text or not self.selected_room:
            return None
        message = ChatMessage(role=MessageRole.ADMIN, text=text)
        self.messages.append(message)
        await self._emit("agent:admin_reply", {"room": self.selected_room, "text": text})
        return message

    async def request_email(self) -> None:
        if not self.selected_room:
            return
        await self._emit("agent:request_email", {"room": self.selected_room})
        self.messages.append(ChatMessage(role=MessageRole.SYSTEM, text=EMAIL_REQUESTED_TEXT))
        self.notices.success("Email request sent to the user")

    async def forward_transcript(self, to: str, subject: str = "") -> bool:
        if not self.selected_room:
            return False
        if not to or not is_valid_email(to):
            self.notices.error("Enter a valid email to forward to.")
            return False

        self.forwarding = True
        try:
            await self.api.forward_transcript(
                self.selected_room,
                to.strip(),
                (subject or "").strip() or f"Chat transcript — Room {self.selected_room}",
            )
        except (AgentApiError, httpx.HTTPError) as e:
            logger.warning("Transcript forward failed", room=self.selected_room, error=str(e))
            self.notices.error("Could not forward transcript")
            return False
        finally:
            self.forwarding = False
        self.notices.success("Transcript forwarded")
        return True

    async def delete_room(self, confirm: Confirm = False) -> bool:
        """Delete the selected room and its history once confirmed"""
        room = self.selected_room
        if not room:
            return False
        confirmed = confirm() if callable(confirm) else bool(confirm)
        if not confirmed:
            return False

        self.deleting = True
        try:
            await self.api.delete_room(room)
        except (AgentApiError, httpx.HTTPError) as e:
            logger.warning("Room delete failed", room=room, error=str(e))
            self.notices.error("Could not delete room")
            return False
        finally:
            self.deleting = False

        self.rooms = [r for r in self.rooms if r.room_id != room]
        await self.select_room(None)
        self.notices.success("Room deleted")
        await self.refresh_rooms()
        return True

    # Inbox
    async def load_inbox(self, status: str = "", page: int = 1, limit: int = 50) -> List[Dict[str, Any]]:
        try:
            data = await self.api.get_inbox(page=page, limit=limit, status=status)
            self.inbox = data.get("items") or []
        except (AgentApiError, httpx.HTTPError) as e:
            logger.info("Inbox fetch failed", error=str(e))
        return self.inbox

    async def update_inbox_status(self, entry_id: int, status: str) -> bool:
        try:
            updated = await self.api.update_inbox_status(entry_id, status)
        except (AgentApiError, httpx.HTTPError) as e:
            logger.warning("Inbox status update failed", entry_id=entry_id, error=str(e))
            self.notices.error("Failed to update")
            return False
        self.inbox = [updated if item.get("id") == entry_id else item for item in self.inbox]
        self.notices.success("Status updated")
        return True
