import uuid
import enum
from sqlalchemy import Column, String, Boolean, DateTime, Uuid
from app.db.base import Base, JSONType, utcnow


class MessagePrivacy(str, enum.Enum):
    EVERYONE = "everyone"
    FRIENDS = "friends"   # Followers only; others may send a request
    NONE = "none"


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class User(Base):
    """
    Directory record. Profile data is owned by the profile service; this core
    reads it and maintains only the follow/block lists.
    """
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username = Column(String(50), unique=True, index=True)
    name = Column(String(255))
    avatar = Column(String(500))
    status = Column(String(20), default=UserStatus.ACTIVE.value, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Lists of user ids (as strings)
    followers = Column(JSONType, default=list)
    following = Column(JSONType, default=list)
    blocked_users = Column(JSONType, default=list)

    allow_messages_from = Column(String(20), default=MessagePrivacy.EVERYONE.value, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def display_name(self) -> str:
        return self.name or self.username or ""
