import uuid
import enum
from sqlalchemy import Column, String, Boolean, Integer, DateTime, ForeignKey, UniqueConstraint, Index, Uuid
from app.db.base import Base, utcnow


class MatchOrigin(str, enum.Enum):
    LIKE = "like"
    SUPER_LIKE = "super_like"
    MUTUAL_LIKE = "mutual_like"
    MESSAGE_REQUEST = "message_request"  # Rows created to carry a request between strangers


class Match(Base):
    """
    Directed match row: what `owner` sees about `partner`. Always written in
    pairs (owner->partner and partner->owner) in the same transaction and never
    deleted, only deactivated or flag-reset.
    """
    __tablename__ = "matches"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    partner_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)

    # Denormalized partner display fields
    partner_name = Column(String(255), nullable=False, default="")
    partner_avatar = Column(String(500))

    match_date = Column(DateTime(timezone=True), default=utcnow)
    match_score = Column(Integer, default=0, nullable=False)
    interaction_type = Column(String(20), default=MatchOrigin.MUTUAL_LIKE.value, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Messaging request/approval flow
    message_request_pending = Column(Boolean, default=False, nullable=False)
    message_request_from = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True)
    messaging_approved = Column(Boolean, default=False, nullable=False)

    chat_id = Column(Uuid(as_uuid=True), ForeignKey("conversations.id"), nullable=True)
    unread_count = Column(Integer, default=0, nullable=False)
    last_message = Column(String(200))
    last_message_date = Column(DateTime(timezone=True))

    # Optimistic concurrency token for per-pair writes
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint('owner_id', 'partner_id', name='uq_match_owner_partner'),
        Index('ix_match_owner_date', 'owner_id', 'match_date'),
        Index('ix_match_partner_date', 'partner_id', 'match_date'),
    )
