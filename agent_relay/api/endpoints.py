from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
import redis
import structlog

from agent_relay.config import get_settings
from agent_relay.db.database import get_db
from agent_relay.db.redis import get_redis
from agent_relay.models.schemas import (
    PresenceUpdate, PresenceResponse, SearchResponse,
    InboxCreate, InboxResponse, InboxListResponse, InboxStatusUpdate, InboxStatus,
    RoomSummary, RoomListResponse, RoomMessagesResponse,
    ForwardRequest, ForwardResponse,
    KnowledgeCreate, KnowledgeResponse,
    HealthResponse,
)
from agent_relay.realtime.hub import RelayHub
from agent_relay.realtime.server import get_hub
from agent_relay.services.inbox_service import InboxService
from agent_relay.services.knowledge_service import KnowledgeService
from agent_relay.services.presence_service import PresenceService
from agent_relay.services.room_service import RoomService, to_message_out
from agent_relay.services.transcript_service import TranscriptMailer, default_subject, render_transcript

logger = structlog.get_logger()
settings = get_settings()

router = APIRouter()


def get_presence(client=Depends(get_redis)) -> PresenceService:
    return PresenceService(client)


def get_mailer() -> TranscriptMailer:
    return TranscriptMailer()


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint"""
    return HealthResponse()


# Presence endpoints
@router.get("/status", response_model=PresenceResponse)
async def get_status(presence: PresenceService = Depends(get_presence)):
    """Public presence check used by the visitor widget"""
    return PresenceResponse(online=presence.is_online())


@router.get("/presence", response_model=PresenceResponse)
async def get_presence_state(presence: PresenceService = Depends(get_presence)):
    """Presence as seen by the admin console"""
    return PresenceResponse(online=presence.is_online())


@router.put("/presence", response_model=PresenceResponse)
async def set_presence(
    update: PresenceUpdate,
    presence: PresenceService = Depends(get_presence),
    hub: RelayHub = Depends(get_hub),
):
    """Set the global presence flag and broadcast it to every connection"""
    try:
        online = presence.set_online(update.online)
    except redis.RedisError as e:
        logger.error("Failed to update presence", error=str(e))
        raise HTTPException(status_code=503, detail="Presence store unavailable")
    await hub.broadcast_presence(online)
    return PresenceResponse(online=online)


# Search endpoint
@router.get("/search", response_model=SearchResponse, response_model_exclude_none=True)
async def search(
    q: str = Query("", max_length=2000),
    room: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """Remote knowledge search tried before offline capture"""
    match = KnowledgeService(db).search(q)
    logger.info("Search request", room=room, answered=match is not None)
    return SearchResponse(answer=match.answer if match else None)


# Inbox endpoints
@router.post("/inbox", response_model=InboxResponse, status_code=status.HTTP_201_CREATED)
async def create_inbox_entry(
    entry_data: InboxCreate,
    db: Session = Depends(get_db),
    presence: PresenceService = Depends(get_presence),
):
    """Capture an offline question; refused once a specialist is online"""
    if presence.is_online():
        raise HTTPException(status_code=409, detail="A specialist is online")
    return InboxService(db).create_entry(entry_data)


@router.get("/inbox", response_model=InboxListResponse)
async def list_inbox(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    status_filter: Optional[InboxStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
):
    """List captured questions"""
    entries, total = InboxService(db).list_entries(page, limit, status_filter)
    return InboxListResponse(
        items=[InboxResponse.model_validate(e) for e in entries],
        total=total,
        page=page,
        limit=limit,
    )


@router.put("/inbox/{entry_id}", response_model=InboxResponse)
async def update_inbox_status(
    entry_id: int,
    update: InboxStatusUpdate,
    db: Session = Depends(get_db),
):
    """Move a captured question through queued / in_progress / done"""
    entry = InboxService(db).update_status(entry_id, update.status)
    if not entry:
        raise HTTPException(status_code=404, detail="Inbox entry not found")
    return entry


# Room endpoints
@router.get("/rooms", response_model=RoomListResponse)
async def list_rooms(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.rooms_page_limit, ge=1, le=200),
    search: str = Query(""),
    db: Session = Depends(get_db),
):
    """List rooms, most recent activity first"""
    rooms, total = RoomService(db).list_rooms(page, limit, search.strip())
    return RoomListResponse(
        items=[
            RoomSummary(room_id=r.room_id, last_msg_at=r.last_msg_at, unread=r.unread or 0, email=r.email)
            for r in rooms
        ],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/rooms/{room_id}/messages", response_model=RoomMessagesResponse)
async def get_room_messages(
    room_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.history_page_limit, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    """REST history, the fallback path for the admin console"""
    service = RoomService(db)
    room = service.get_room(room_id)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")

    items = [to_message_out(m) for m in service.get_messages(room_id, limit=limit, offset=(page - 1) * limit)]
    email = room.email
    service.mark_read(room_id)
    return RoomMessagesResponse(items=items, email=email)


@router.post("/rooms/{room_id}/forward", response_model=ForwardResponse)
async def forward_transcript(
    room_id: str,
    request: ForwardRequest,
    db: Session = Depends(get_db),
    mailer: TranscriptMailer = Depends(get_mailer),
):
    """Email a room transcript"""
    service = RoomService(db)
    room = service.get_room(room_id)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")

    messages = [to_message_out(m) for m in service.get_messages(room_id, limit=10_000)]
    result = mailer.send(
        to=request.to.strip(),
        subject=(request.subject or "").strip() or default_subject(room_id),
        html_content=render_transcript(room_id, messages, room.email),
    )
    if not result.success:
        raise HTTPException(status_code=502, detail=result.message)
    return ForwardResponse(success=True, message=result.message)


@router.delete("/rooms/{room_id}")
async def delete_room(
    room_id: str,
    db: Session = Depends(get_db),
    hub: RelayHub = Depends(get_hub),
):
    """Delete a room and its whole history"""
    if not RoomService(db).delete_room(room_id):
        raise HTTPException(status_code=404, detail="Room not found")
    hub.forget_room(room_id)
    return {"message": "Room deleted successfully"}


# Knowledge endpoints
@router.post("/knowledge", response_model=KnowledgeResponse, status_code=status.HTTP_201_CREATED)
async def create_knowledge_entry(
    knowledge_data: KnowledgeCreate,
    db: Session = Depends(get_db),
):
    """Add an answer to the search corpus"""
    return KnowledgeService(db).create_entry(knowledge_data)


@router.get("/knowledge", response_model=List[KnowledgeResponse])
async def list_knowledge_entries(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """List active knowledge entries"""
    return KnowledgeService(db).get_entries(limit=limit, offset=offset)
