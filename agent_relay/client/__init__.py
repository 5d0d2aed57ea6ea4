from agent_relay.client.api import AgentApiClient, AgentApiError
from agent_relay.client.capture import CaptureOutcome, capture_offline_question
from agent_relay.client.console import AdminConsoleSession
from agent_relay.client.room_store import RoomStore
from agent_relay.client.storage import JsonFileStore, MemoryStore
from agent_relay.client.widget import VisitorChat

__all__ = [
    "AgentApiClient",
    "AgentApiError",
    "CaptureOutcome",
    "capture_offline_question",
    "AdminConsoleSession",
    "RoomStore",
    "JsonFileStore",
    "MemoryStore",
    "VisitorChat",
]
