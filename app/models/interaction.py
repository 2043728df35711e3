import uuid
import enum
from sqlalchemy import Column, String, Boolean, Integer, DateTime, ForeignKey, Index, Uuid, text
from app.db.base import Base, JSONType, utcnow


class InteractionType(str, enum.Enum):
    LIKE = "like"
    SUPERLIKE = "superlike"
    DISLIKE = "dislike"
    PASS = "pass"
    BLOCK = "block"
    UNBLOCK = "unblock"
    FOLLOW = "follow"
    UNFOLLOW = "unfollow"
    VIEW = "view"
    MESSAGE = "message"
    GIFT = "gift"
    SUBSCRIPTION = "subscription"
    REPORT = "report"

    @classmethod
    def _missing_(cls, value):
        # Older clients send "super_like"
        if isinstance(value, str) and value.lower().replace("_", "") == "superlike":
            return cls.SUPERLIKE
        return None


class InteractionContext(str, enum.Enum):
    MATCHING = "matching"
    PROFILE = "profile"
    FEED = "feed"
    STREAM = "stream"
    CHAT = "chat"
    SEARCH = "search"
    SUGGESTIONS = "suggestions"
    POST = "post"
    REEL = "reel"


# Swipes shown in the arcade; each target is offered only once
SWIPE_TYPES = frozenset({
    InteractionType.LIKE,
    InteractionType.SUPERLIKE,
    InteractionType.DISLIKE,
    InteractionType.PASS,
})

# Positive swipes that can form a match
LIKE_TYPES = frozenset({InteractionType.LIKE, InteractionType.SUPERLIKE})

# Types whose reciprocal record marks both sides mutual
MUTUAL_TYPES = frozenset({InteractionType.LIKE, InteractionType.SUPERLIKE, InteractionType.FOLLOW})

# At most one active record per (actor, target, type, context)
SINGLETON_TYPES = frozenset({InteractionType.BLOCK, InteractionType.FOLLOW})

_WEIGHTS = {
    InteractionType.SUPERLIKE: 5,
    InteractionType.LIKE: 3,
    InteractionType.VIEW: 1,
    InteractionType.MESSAGE: 4,
    InteractionType.GIFT: 8,
    InteractionType.SUBSCRIPTION: 10,
    InteractionType.BLOCK: 0,
    InteractionType.DISLIKE: 0,
}
DEFAULT_WEIGHT = 2


def interaction_weight(interaction_type: InteractionType) -> int:
    """Ranking weight of an interaction, 0..10."""
    return _WEIGHTS.get(InteractionType(interaction_type), DEFAULT_WEIGHT)


class Interaction(Base):
    """A unilateral action of actor on target (swipe, follow, block, ...)."""
    __tablename__ = "interactions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    actor_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    target_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    interaction_type = Column(String(20), nullable=False)
    context = Column(String(20), default=InteractionContext.PROFILE.value, nullable=False)
    metadata_ = Column("metadata", JSONType, default=dict)

    is_active = Column(Boolean, default=True, nullable=False)
    is_mutual = Column(Boolean, default=False, nullable=False)
    mutual_at = Column(DateTime(timezone=True))
    weight = Column(Integer, default=DEFAULT_WEIGHT, nullable=False)
    expires_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('ix_interaction_pair_type', 'actor_id', 'target_id', 'interaction_type'),
        Index('ix_interaction_actor_type_created', 'actor_id', 'interaction_type', 'created_at'),
        Index('ix_interaction_target_type_created', 'target_id', 'interaction_type', 'created_at'),
        Index('ix_interaction_pair_context', 'actor_id', 'target_id', 'context'),
        Index(
            'uq_interaction_active_singleton',
            'actor_id', 'target_id', 'interaction_type', 'context',
            unique=True,
            postgresql_where=text(
                "is_active AND interaction_type IN ('block', 'follow')"
            ),
            sqlite_where=text(
                "is_active = 1 AND interaction_type IN ('block', 'follow')"
            ),
        ),
    )

    @property
    def type(self) -> InteractionType:
        return InteractionType(self.interaction_type)
