from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlencode

from pydantic import BaseModel, Field
import socketio
from socketio.exceptions import SocketIOError

from agent_relay.models.schemas import now_iso

# Transport-level failures that initiating actions turn into notices.
SOCKET_ERRORS = (SocketIOError,)


class Notice(BaseModel):
    """Non-blocking, user-facing notice (a toast)"""
    level: str
    text: str
    ts: str = Field(default_factory=now_iso)


class NoticeBoard:
    def __init__(self):
        self.items: List[Notice] = []

    def success(self, text: str) -> None:
        self.items.append(Notice(level="success", text=text))

    def error(self, text: str) -> None:
        self.items.append(Notice(level="error", text=text))

    def errors(self) -> List[Notice]:
        return [n for n in self.items if n.level == "error"]


SocketFactory = Callable[[], Any]


def socket_url(base_url: str, query: Dict[str, Optional[str]]) -> str:
    params = {k: v for k, v in query.items() if v is not None}
    return f"{base_url.rstrip('/')}?{urlencode(params)}"


def default_socket_factory() -> socketio.AsyncClient:
    return socketio.AsyncClient(reconnection=True, logger=False, engineio_logger=False)
