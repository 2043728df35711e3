import uuid
import enum
from typing import Tuple
from sqlalchemy import Column, String, Boolean, Integer, DateTime, ForeignKey, UniqueConstraint, Index, Uuid
from app.db.base import Base, JSONType, utcnow


class ConsentState(str, enum.Enum):
    NONE = "none"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"


class Conversation(Base):
    """
    Two-party conversation addressed by its canonical participant pair
    (participant_low < participant_high by string form).
    """
    __tablename__ = "conversations"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    participant_low = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    participant_high = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)

    consent_state = Column(String(20), default=ConsentState.NONE.value, nullable=False)
    is_approved = Column(Boolean, default=False, nullable=False)
    request_from = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True)

    # Shared by both participants, not per-user
    pinned_message_ids = Column(JSONType, default=list)
    unread_count = Column(Integer, default=0, nullable=False)

    last_message_id = Column(Uuid(as_uuid=True), nullable=True)
    last_message = Column(String(200))
    last_activity = Column(DateTime(timezone=True), default=utcnow, index=True)

    # Legacy secondary PIN; clients still display it but nothing enforces it
    chat_pin = Column(String(6))

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint('participant_low', 'participant_high', name='uq_conversation_pair'),
        Index('ix_conversation_low_activity', 'participant_low', 'last_activity'),
        Index('ix_conversation_high_activity', 'participant_high', 'last_activity'),
    )

    @property
    def participants(self) -> Tuple[uuid.UUID, uuid.UUID]:
        return (self.participant_low, self.participant_high)

    def has_participant(self, user_id: uuid.UUID) -> bool:
        return str(user_id) in (str(self.participant_low), str(self.participant_high))

    def other_participant(self, user_id: uuid.UUID) -> uuid.UUID:
        if str(user_id) == str(self.participant_low):
            return self.participant_high
        return self.participant_low

    @property
    def state(self) -> ConsentState:
        return ConsentState(self.consent_state)

    def set_state(self, state: ConsentState, request_from: uuid.UUID = None):
        self.consent_state = state.value
        self.is_approved = state == ConsentState.APPROVED
        self.request_from = request_from if state == ConsentState.PENDING_APPROVAL else None
