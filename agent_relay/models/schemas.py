from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from typing import Optional, List
from enum import Enum
import uuid

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


def now_iso() -> str:
    return datetime.utcnow().isoformat() + "Z"


class MessageRole(str, Enum):
    USER = "user"
    AGENT = "agent"
    ADMIN = "admin"
    SYSTEM = "system"


class InboxStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class ConnectionRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


# Message schemas
class MessageOut(BaseModel):
    """One history entry as it travels over REST and the realtime channel"""
    model_config = ConfigDict(use_enum_values=True)

    role: MessageRole
    text: str = ""
    ts: str


class ChatMessage(MessageOut):
    """Client-held message; `id` only keys list rendering"""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:10])
    ts: str = Field(default_factory=now_iso)


# Realtime payloads
class RoomPayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    room: str = Field(..., min_length=1)


class RoomTextPayload(RoomPayload):
    text: str = Field(..., min_length=1)


# Room schemas
class RoomSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_id: str = Field(..., alias="roomId")
    last_msg_at: Optional[datetime] = Field(None, alias="lastMsgAt")
    unread: int = 0
    email: Optional[str] = None


class RoomListResponse(BaseModel):
    items: List[RoomSummary] = []
    total: int = 0
    page: int = 1
    limit: int = 50


class RoomMessagesResponse(BaseModel):
    items: List[MessageOut] = []
    email: Optional[str] = None


class ForwardRequest(BaseModel):
    to: str = Field(..., pattern=EMAIL_PATTERN)
    subject: Optional[str] = Field(None, max_length=500)


class ForwardResponse(BaseModel):
    success: bool
    message: str


# Presence schemas
class PresenceUpdate(BaseModel):
    online: bool


class PresenceResponse(BaseModel):
    online: bool


# Search schemas
class SearchResponse(BaseModel):
    answer: Optional[str] = None


# Inbox schemas
class InboxCreate(BaseModel):
    room: str = Field(..., min_length=1)
    email: str = Field(..., pattern=EMAIL_PATTERN)
    question: str = Field(..., min_length=1)


class InboxStatusUpdate(BaseModel):
    status: InboxStatus


class InboxResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    room: str
    email: str
    question: str
    status: InboxStatus
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")


class InboxListResponse(BaseModel):
    items: List[InboxResponse] = []
    total: int = 0
    page: int = 1
    limit: int = 50


# Knowledge schemas
class KnowledgeCreate(BaseModel):
    question: str = Field(..., min_length=1)
    keywords: List[str] = Field(default_factory=list)
    answer: str = Field(..., min_length=1)


class KnowledgeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    question: str
    keywords: str
    answer: str
    is_active: bool


class KnowledgeMatch(BaseModel):
    entry_id: int
    answer: str
    score: float


# Delivery result
class DeliveryResult(BaseModel):
    success: bool
    message: str
    error_code: Optional[str] = None
    external_id: Optional[str] = None


# Health check response
class HealthResponse(BaseModel):
    status: str = "healthy"
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    service: str = "agent-relay"
    version: str = "1.0.0"
