from sqlalchemy import Column, String, DateTime, Text, Boolean, ForeignKey, Integer
from sqlalchemy.orm import relationship, declarative_base
from datetime import datetime

Base = declarative_base()


class Room(Base):
    __tablename__ = "agent_rooms"

    room_id = Column(String, primary_key=True)
    email = Column(String, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_msg_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    unread = Column(Integer, default=0, nullable=False)
    ended_at = Column(DateTime, nullable=True)

    # Relationships
    messages = relationship(
        "RoomMessage",
        back_populates="room",
        cascade="all, delete-orphan",
        order_by="RoomMessage.id",
    )


class RoomMessage(Base):
    __tablename__ = "agent_room_messages"

    # autoincrement id is the per-room delivery order
    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(String, ForeignKey("agent_rooms.room_id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String, nullable=False)  # user, agent, admin, system
    text = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    room = relationship("Room", back_populates="messages")


class InboxEntry(Base):
    __tablename__ = "agent_inbox"

    id = Column(Integer, primary_key=True, autoincrement=True)
    room = Column(String, nullable=False, index=True)
    email = Column(String, nullable=False)
    question = Column(Text, nullable=False)
    status = Column(String, default="queued", nullable=False)  # queued, in_progress, done
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class KnowledgeEntry(Base):
    __tablename__ = "agent_knowledge"

    id = Column(Integer, primary_key=True, autoincrement=True)
    question = Column(Text, nullable=False)
    keywords = Column(Text, nullable=False, default="")
    answer = Column(Text, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
