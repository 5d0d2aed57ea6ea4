from sqlalchemy.orm import Session
from sqlalchemy import or_
from typing import Optional, List, Tuple
from datetime import datetime
import structlog

from agent_relay.models.database import Room, RoomMessage
from agent_relay.models.schemas import MessageOut, MessageRole

logger = structlog.get_logger()


def to_message_out(message: RoomMessage) -> MessageOut:
    return MessageOut(
        role=message.role,
        text=message.text or "",
        ts=message.created_at.isoformat() + "Z",
    )


class RoomService:
    def __init__(self, db: Session):
        self.db = db

    def get_room(self, room_id: str) -> Optional[Room]:
        """Get a room by id"""
        return self.db.query(Room).filter(Room.room_id == room_id).first()

    def ensure_room(self, room_id: str) -> Room:
        """Get a room, creating it on first use"""
        room = self.get_room(room_id)
        if room:
            return room
        room = Room(room_id=room_id)
        self.db.add(room)
        self.db.flush()
        logger.info("Room created", room=room_id)
        return room

    def append_message(self, room_id: str, role: MessageRole, text: str) -> RoomMessage:
        """Append one message to a room's history"""
        try:
            room = self.ensure_room(room_id)
            now = datetime.utcnow()
            message = RoomMessage(room_id=room_id, role=MessageRole(role).value, text=text, created_at=now)
            self.db.add(message)

            room.last_msg_at = now
            if message.role == MessageRole.USER.value:
                room.unread = (room.unread or 0) + 1

            self.db.commit()
            self.db.refresh(message)

            logger.info("Message appended", room=room_id, role=message.role, message_id=message.id)
            return message
        except Exception as e:
            self.db.rollback()
            logger.error("Failed to append message", room=room_id, error=str(e))
            raise

    def get_messages(self, room_id: str, limit: int = 200, offset: int = 0) -> List[RoomMessage]:
        """Get a room's messages in delivery order"""
        return (self.db.query(RoomMessage)
                .filter(RoomMessage.room_id == room_id)
                .order_by(RoomMessage.id.asc())
                .limit(limit)
                .offset(offset)
                .all())

    def mark_read(self, room_id: str) -> None:
        room = self.get_room(room_id)
        if room and room.unread:
            room.unread = 0
            self.db.commit()

    def set_email(self, room_id: str, email: str) -> Room:
        """Attach a visitor email to a room"""
        try:
            room = self.ensure_room(room_id)
            room.email = email
            self.db.commit()
            self.db.refresh(room)
            return room
        except Exception as e:
            self.db.rollback()
            logger.error("Failed to set room email", room=room_id, error=str(e))
            raise

    def end_room(self, room_id: str) -> Optional[Room]:
        """Mark a room conversationally closed; the room stays usable"""
        room = self.get_room(room_id)
        if not room:
            return None
        room.ended_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(room)
        logger.info("Room ended", room=room_id)
        return room

    def list_rooms(self, page: int = 1, limit: int = 50, search: str = "") -> Tuple[List[Room], int]:
        """List rooms, most recent activity first"""
        query = self.db.query(Room)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Room.room_id.ilike(pattern), Room.email.ilike(pattern)))
        total = query.count()
        rooms = (query.order_by(Room.last_msg_at.desc())
                 .limit(limit)
                 .offset((page - 1) * limit)
                 .all())
        return rooms, total

    def delete_room(self, room_id: str) -> bool:
        """Delete a room and its whole history"""
        room = self.get_room(room_id)
        if not room:
            return False
        try:
            self.db.delete(room)
            self.db.commit()
            logger.info("Room deleted", room=room_id)
            return True
        except Exception as e:
            self.db.rollback()
            logger.error("Failed to delete room", room=room_id, error=str(e))
            raise
