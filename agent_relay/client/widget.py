"""Visitor-side chat session: the state and actions behind the chat widget.

A message is answered locally when the intent gate is confident, relayed
to a live specialist when one is online and the channel is up, and
otherwise searched remotely and finally captured in the offline inbox.
"""
import asyncio
from typing import Any, List, Optional

import httpx
import structlog

from agent_relay.brain.gate import decide
from agent_relay.client.api import AgentApiClient, AgentApiError
from agent_relay.client.capture import CaptureOutcome, capture_offline_question, is_meaningful, is_valid_email
from agent_relay.client.room_store import RoomStore
from agent_relay.client.transport import SOCKET_ERRORS, NoticeBoard, SocketFactory, default_socket_factory, socket_url
from agent_relay.models.schemas import ChatMessage, MessageRole, now_iso

logger = structlog.get_logger()

WELCOME_TEXT = (
    "\U0001F44B Hi! I’m Khisima’s AI assistant. "
    "Ask me about services, languages, pricing, timelines, or data for LLMs."
)
NEW_CHAT_TEXT = "\U0001F44B New chat started. Ask me about services, languages, pricing, timelines, or data for LLMs."
CLEARED_TEXT = "\U0001F44B Chat cleared. How can I help now?"
ENDED_TEXT = "\U0001F512 Chat ended. You can start a new conversation anytime using the launcher."
USER_ENDED_TEXT = "\U0001F512 Chat ended by user. You can start a new conversation anytime."
ASK_EMAIL_TEXT = "Could you share your email so our specialist can follow up if needed?"
MORE_DETAIL_TEXT = (
    "Could you share a bit more detail so I can help? "
    "For example: “Translate 2 pages EN→FR, 24h deadline.”"
)
OFFLINE_TEXT = (
    "I couldn’t find a confident answer and our team is offline. "
    "Leave your email and we’ll follow up shortly."
)
SPECIALIST_ONLINE_TEXT = "Great news: a specialist is online now. Please continue here in the chat."
CAPTURED_TEXT = "Thanks! We’ve logged your question and will email you shortly."

NO_QUESTION_ERROR = "Please ask your question first."
INVALID_EMAIL_ERROR = "Please enter a valid email."
CAPTURE_FAILED_ERROR = "Couldn’t submit right now. Please try again in a bit."


def welcome(text: str = WELCOME_TEXT) -> ChatMessage:
    return ChatMessage(id="welcome", role=MessageRole.AGENT, text=text)


class VisitorChat:
    def __init__(
        self,
        api: AgentApiClient,
        base_url: str = "",
        room_store: RoomStore = None,
        socket_factory: SocketFactory = default_socket_factory,
        socketio_path: str = "socket.io",
        presence_check_delay: float = 0.4,
    ):
        self.api = api
        self.base_url = base_url
        self.room_store = room_store or RoomStore()
        self.socket_factory = socket_factory
        self.socketio_path = socketio_path
        self.presence_check_delay = presence_check_delay

        self.room: str = self.room_store.get_or_create_room_id()
        self.messages: List[ChatMessage] = self.room_store.load_messages(self.room) or [welcome()]
        self.email: str = self.room_store.load_email(self.room) or ""
        self.is_open = False
        self.admin_online = False
        self.email_needed = False
        self.sending = False
        self.searching = False
        self.notices = NoticeBoard()

        self.socket: Any = None
        self._check_task: Optional[asyncio.Task] = None

    # Transport
    @property
    def connected(self) -> bool:
        return self.socket is not None and bool(self.socket.connected)

    async def connect(self) -> None:
        socket = self.socket_factory()
        socket.on("connect", self._on_connect)
        socket.on("disconnect", self._on_disconnect)
        socket.on("agent:admin_status", self._on_admin_status)
        socket.on("agent:admin_reply", self._on_admin_reply)
        socket.on("agent:agent_reply", self._on_agent_reply)
        socket.on("agent:user_ended", self._on_user_ended)
        socket.on("agent:request_email", self._on_request_email)
        self.socket = socket
        try:
            await socket.connect(
                socket_url(self.base_url, {"role": "user", "room": self.room}),
                socketio_path=self.socketio_path,
            )
        except SOCKET_ERRORS as e:
            # reconnection belongs to the transport; the widget keeps working offline
            logger.warning("Realtime connect failed", room=self.room, error=str(e))

    async def disconnect(self) -> None:
        self._clear_check()
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
            logger.warning("Realtime emit failed", event=event, room=self.room, error=str(e))
            return False

    def _clear_check(self) -> None:
        if self._check_task is not None:
            self._check_task.cancel()
            self._check_task = None

    async def _check_presence_later(self) -> None:
        await asyncio.sleep(self.presence_check_delay)
        self._check_task = None
        await self._emit("agent:admin_status:get")

    # Socket events
    async def _on_connect(self) -> None:
        await self._emit("agent:join_room", {"room": self.room})
        self._clear_check()
        self._check_task = asyncio.create_task(self._check_presence_later())

    async def _on_disconnect(self, *args) -> None:
        self._clear_check()

    async def _on_admin_status(self, data: dict) -> None:
        self.admin_online = bool((data or {}).get("online"))
        self._clear_check()

    async def _on_admin_reply(self, data: dict) -> None:
        data = data or {}
        self.append(MessageRole.ADMIN, data.get("text") or "", data.get("ts"))

    async def _on_agent_reply(self, data: dict) -> None:
        data = data or {}
        self.append(MessageRole.AGENT, data.get("text") or "", data.get("ts"))

    async def _on_user_ended(self, data: dict = None) -> None:
        self.append(MessageRole.AGENT, USER_ENDED_TEXT)

    async def _on_request_email(self, data: dict = None) -> None:
        self.append(MessageRole.AGENT, ASK_EMAIL_TEXT)
        self.email_needed = True

    # History
    def append(self, role: MessageRole, text: str, ts: str = None) -> ChatMessage:
        message = ChatMessage(role=role, text=text, ts=ts or now_iso())
        self.messages.append(message)
        self.room_store.save_messages(self.room, self.messages)
        return message

    # Actions
    async def open(self) -> None:
        """Show the widget and refresh presence from REST"""
        self.is_open = True
        try:
            self.admin_online = await self.api.get_status()
        except (AgentApiError, httpx.HTTPError) as e:
            logger.info("Presence fetch failed", error=str(e))

    def close(self) -> None:
        self.is_open = False

    async def send(self, text: str) -> None:
        text = (text or "").strip()
        if not text:
            return

        self.email_needed = False
        self.append(MessageRole.USER, text)

        local = decide(text)
        if local.ok:
            self.append(MessageRole.AGENT, local.answer)
            return

        if self.admin_online and self.connected:
            await self._emit("agent:user_message", {"room": self.room, "text": text})
            return

        if not is_meaningful(text):
            self.append(MessageRole.AGENT, MORE_DETAIL_TEXT)
            return

        self.sending = True
        self.searching = True
        try:
            answer = await self.api.search(text, self.room)
        except (AgentApiError, httpx.HTTPError) as e:
            logger.info("Remote search failed", room=self.room, error=str(e))
            answer = None
        finally:
            self.searching = False
            self.sending = False

        if answer:
            self.append(MessageRole.AGENT, answer)
            return

        self.append(MessageRole.AGENT, OFFLINE_TEXT)
        self.email_needed = True

    def last_question(self) -> Optional[str]:
        for message in reversed(self.messages):
            if message.role == MessageRole.USER:
                return message.text
        return None

    async def submit_email(self, email: str = None) -> Optional[CaptureOutcome]:
        """Capture the pending question with the visitor's email"""
        if email is not None:
            self.email = email
        question = self.last_question()
        if not question:
            self.notices.error(NO_QUESTION_ERROR)
            return None
        if not is_valid_email(self.email):
            self.notices.error(INVALID_EMAIL_ERROR)
            return None

        address = self.email.strip().lower()
        self.sending = True
        try:
            outcome = await capture_offline_question(self.api, self.room, address, question)
        except (AgentApiError, httpx.HTTPError) as e:
            logger.warning("Offline capture failed", room=self.room, error=str(e))
            self.notices.error(CAPTURE_FAILED_ERROR)
            return None
        finally:
            self.sending = False

        if outcome == CaptureOutcome.CONFLICT:
            self.admin_online = True
            self.append(MessageRole.AGENT, SPECIALIST_ONLINE_TEXT)
        else:
            self.room_store.save_email(self.room, address)
            self.append(MessageRole.AGENT, CAPTURED_TEXT)
        self.email_needed = False
        return outcome

    async def end_chat(self) -> str:
        """Close the conversation and move to a fresh room id"""
        await self._emit("agent:user_end", {"room": self.room})
        self.append(MessageRole.AGENT, ENDED_TEXT)

        self.room = self.room_store.rotate_room_id()
        self.email_needed = False
        self.email = self.room_store.load_email(self.room) or ""
        self.messages = [welcome(NEW_CHAT_TEXT)]
        self.room_store.save_messages(self.room, self.messages)

        if self.socket is not None:
            await self.disconnect()
            await self.connect()
        return self.room

    def clear_chat(self) -> None:
        self.messages = [welcome(CLEARED_TEXT)]
        self.room_store.save_messages(self.room, self.messages)
        self.email_needed = False
