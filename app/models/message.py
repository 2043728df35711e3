import uuid
import enum
from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey, Index, Uuid
from app.db.base import Base, JSONType, utcnow


class MessageType(str, enum.Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    FILE = "file"
    LOCATION = "location"


class Message(Base):
    __tablename__ = "messages"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    conversation_id = Column(Uuid(as_uuid=True), ForeignKey("conversations.id"), nullable=False)
    sender_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    message_type = Column(String(20), default=MessageType.TEXT.value, nullable=False)
    media_url = Column(String(500))

    is_pinned = Column(Boolean, default=False, nullable=False)
    is_edited = Column(Boolean, default=False, nullable=False)
    edited_at = Column(DateTime(timezone=True))
    # Soft delete only; unfriend flags history, never erases it
    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime(timezone=True))

    # [{"user_id": str, "read_at": iso}]
    read_by = Column(JSONType, default=list)
    # [{"user_id": str, "emoji": str, "created_at": iso}]
    reactions = Column(JSONType, default=list)
    reply_to_id = Column(Uuid(as_uuid=True), ForeignKey("messages.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index('ix_message_conversation_created', 'conversation_id', 'created_at'),
    )
