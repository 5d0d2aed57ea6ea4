from sqlalchemy.orm import Session
from typing import Optional, List, Tuple
from datetime import datetime
import structlog

from agent_relay.models.database import InboxEntry
from agent_relay.models.schemas import InboxCreate, InboxStatus
from agent_relay.services.room_service import RoomService
from agent_relay.utils.logging import mask_email

logger = structlog.get_logger()


class InboxService:
    """Offline capture store for questions asked while no admin was available"""

    def __init__(self, db: Session):
        self.db = db

    def create_entry(self, entry_data: InboxCreate) -> InboxEntry:
        """Capture a question and mirror the visitor email onto the room"""
        try:
            email = entry_data.email.strip().lower()
            entry = InboxEntry(
                room=entry_data.room,
                email=email,
                question=entry_data.question.strip(),
                status=InboxStatus.QUEUED.value,
            )
            self.db.add(entry)
            RoomService(self.db).ensure_room(entry_data.room).email = email
            self.db.commit()
            self.db.refresh(entry)

            logger.info("Inbox entry captured", entry_id=entry.id, room=entry.room, email=mask_email(email))
            return entry
        except Exception as e:
            self.db.rollback()
            logger.error("Failed to capture inbox entry", room=entry_data.room, error=str(e))
            raise

    def get_entry(self, entry_id: int) -> Optional[InboxEntry]:
        return self.db.query(InboxEntry).filter(InboxEntry.id == entry_id).first()

    def list_entries(
        self,
        page: int = 1,
        limit: int = 50,
        status: Optional[InboxStatus] = None,
    ) -> Tuple[List[InboxEntry], int]:
        """List captured questions, newest first"""
        query = self.db.query(InboxEntry)
        if status:
            query = query.filter(InboxEntry.status == InboxStatus(status).value)
        total = query.count()
        entries = (query.order_by(InboxEntry.created_at.desc(), InboxEntry.id.desc())
                   .limit(limit)
                   .offset((page - 1) * limit)
                   .all())
        return entries, total

    def update_status(self, entry_id: int, status: InboxStatus) -> Optional[InboxEntry]:
        entry = self.get_entry(entry_id)
        if not entry:
            return None

        try:
            entry.status = InboxStatus(status).value
            entry.updated_at = datetime.utcnow()
            self.db.commit()
            self.db.refresh(entry)

            logger.info("Inbox status updated", entry_id=entry_id, status=entry.status)
            return entry
        except Exception as e:
            self.db.rollback()
            logger.error("Failed to update inbox status", entry_id=entry_id, error=str(e))
            raise
