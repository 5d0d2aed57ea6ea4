from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
import structlog

from agent_relay.models.schemas import MessageOut, MessageRole, RoomSummary, now_iso

logger = structlog.get_logger()


class AgentApiError(Exception):
    """Non-2xx answer from the relay's REST API"""

    def __init__(self, status_code: int, detail: str = ""):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{status_code}: {detail}")


def normalize_history_item(item: Dict[str, Any]) -> MessageOut:
    """Accept both {role, text, ts} and {sender, message, createdAt} shapes"""
    role = item.get("role")
    if role not in {r.value for r in MessageRole}:
        sender = item.get("sender")
        role = "admin" if sender == "admin" else "system" if sender == "system" else "user"
    return MessageOut(
        role=role,
        text=item.get("text") or item.get("message") or "",
        ts=item.get("ts") or item.get("createdAt") or now_iso(),
    )


class AgentApiClient:
    """Async client for the /api/agent REST endpoints"""

    def __init__(self, base_url: str, prefix: str = "/api/agent", client: httpx.AsyncClient = None,
                 timeout: float = 10.0):
        self.prefix = prefix.rstrip("/")
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        response = await self.client.request(method, f"{self.prefix}{path}", **kwargs)
        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = None
            detail = body.get("detail", "") if isinstance(body, dict) else response.text
            logger.warning("Agent API call failed", method=method, path=path,
                           status_code=response.status_code)
            raise AgentApiError(response.status_code, str(detail))
        return response

    async def _json(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        response = await self._request(method, path, **kwargs)
        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            # proxies and gateways answer with HTML pages under a 200
            logger.warning("Agent API returned a non-JSON body", method=method, path=path,
                           content_type=response.headers.get("content-type"))
            raise AgentApiError(response.status_code, "Unexpected response body")
        return data

    # Presence
    async def get_status(self) -> bool:
        data = await self._json("GET", "/status")
        return bool(data.get("online"))

    async def get_presence(self) -> bool:
        data = await self._json("GET", "/presence")
        return bool(data.get("online"))

    async def set_presence(self, online: bool) -> bool:
        data = await self._json("PUT", "/presence", json={"online": bool(online)})
        return bool(data.get("online"))

    # Search
    async def search(self, q: str, room: str) -> Optional[str]:
        data = await self._json("GET", "/search", params={"q": q, "room": room})
        return data.get("answer") or None

    # Inbox
    async def create_inbox(self, room: str, email: str, question: str) -> Dict[str, Any]:
        payload = {"room": room, "email": email, "question": question}
        return await self._json("POST", "/inbox", json=payload)

    async def get_inbox(self, page: int = 1, limit: int = 50, status: str = "") -> Dict[str, Any]:
        params = {"page": page, "limit": limit}
        if status:
            params["status"] = status
        return await self._json("GET", "/inbox", params=params)

    async def update_inbox_status(self, entry_id: int, status: str) -> Dict[str, Any]:
        return await self._json("PUT", f"/inbox/{entry_id}", json={"status": status})

    # Rooms
    async def get_rooms(self, page: int = 1, limit: int = 50, search: str = "") -> List[RoomSummary]:
        params = {"page": page, "limit": limit, "search": search}
        data = await self._json("GET", "/rooms", params=params)
        return [RoomSummary.model_validate(r) for r in data.get("items") or []]

    async def get_room_messages(self, room_id: str, page: int = 1, limit: int = 200) -> Dict[str, Any]:
        """History as {"items": [MessageOut], "email": str | None}"""
        params = {"page": page, "limit": limit}
        data = await self._json("GET", f"/rooms/{quote(room_id, safe='')}/messages", params=params)
        items = data.get("items") or data.get("messages") or []
        return {"items": [normalize_history_item(i) for i in items], "email": data.get("email")}

    async def forward_transcript(self, room_id: str, to: str, subject: str) -> Dict[str, Any]:
        payload = {"to": to, "subject": subject}
        return await self._json("POST", f"/rooms/{quote(room_id, safe='')}/forward", json=payload)

    async def delete_room(self, room_id: str) -> None:
        await self._request("DELETE", f"/rooms/{quote(room_id, safe='')}")
