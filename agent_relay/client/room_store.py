"""Durable visitor room identity and the per-room history cache.

History and email live under keys derived from the room id, so rotating
the id starts an empty history while the old one stays addressable under
its own key. Storage failures never propagate: reads degrade to "nothing
stored" and writes are dropped after a warning.
"""
import json
import time
import uuid
from typing import Callable, List, Optional

from pydantic import ValidationError
import structlog

from agent_relay.client.storage import KeyValueStore, MemoryStore
from agent_relay.models.schemas import ChatMessage

logger = structlog.get_logger()

ROOM_KEY = "khisima_chat_room_id"
MESSAGES_PREFIX = "khisima_chat_messages"
EMAIL_PREFIX = "khisima_chat_email"


def messages_key(room_id: str) -> str:
    return f"{MESSAGES_PREFIX}_{room_id}"


def email_key(room_id: str) -> str:
    return f"{EMAIL_PREFIX}_{room_id}"


def new_room_id() -> str:
    return f"{uuid.uuid4()}-{int(time.time() * 1000)}"


class RoomStore:
    def __init__(self, store: KeyValueStore = None, id_factory: Callable[[], str] = new_room_id):
        self.store = store if store is not None else MemoryStore()
        self.id_factory = id_factory

    def _read(self, key: str) -> Optional[str]:
        try:
            return self.store.get(key)
        except Exception as e:
            logger.warning("Client storage read failed", key=key, error=str(e))
            return None

    def _write(self, key: str, value: str) -> None:
        try:
            self.store.set(key, value)
        except Exception as e:
            logger.warning("Client storage write failed", key=key, error=str(e))

    # Room identity
    def get_or_create_room_id(self) -> str:
        room_id = self._read(ROOM_KEY)
        if not room_id:
            room_id = self.id_factory()
            self._write(ROOM_KEY, room_id)
            logger.info("Room id created", room=room_id)
        return room_id

    def rotate_room_id(self) -> str:
        room_id = self.id_factory()
        self._write(ROOM_KEY, room_id)
        logger.info("Room id rotated", room=room_id)
        return room_id

    # History
    def load_messages(self, room_id: str) -> Optional[List[ChatMessage]]:
        """Stored history, or None when nothing usable is stored"""
        raw = self._read(messages_key(room_id))
        if raw is None:
            return None
        try:
            return [ChatMessage.model_validate(m) for m in json.loads(raw)]
        except (ValueError, TypeError, ValidationError) as e:
            logger.warning("Discarding unreadable chat history", room=room_id, error=str(e))
            return None

    def save_messages(self, room_id: str, messages: List[ChatMessage]) -> None:
        self._write(messages_key(room_id), json.dumps([m.model_dump() for m in messages]))

    def clear_messages(self, room_id: str) -> None:
        self._write(messages_key(room_id), "[]")

    # Captured email
    def load_email(self, room_id: str) -> Optional[str]:
        return self._read(email_key(room_id))

    def save_email(self, room_id: str, email: str) -> None:
        self._write(email_key(room_id), email)
