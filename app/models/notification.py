import uuid
import enum
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Index, Uuid
from app.db.base import Base, JSONType, utcnow


class NotificationType(str, enum.Enum):
    MATCH = "match"
    MESSAGE = "message"
    MESSAGE_REQUEST = "message_request"
    FOLLOW = "follow"


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    recipient_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    sender_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True)
    type = Column(String(30), nullable=False)
    title = Column(String(100), nullable=False)
    message = Column(String(500), nullable=False)
    data = Column(JSONType, default=dict)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index('ix_notification_recipient_created', 'recipient_id', 'created_at'),
    )
