from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, or_, and_, case
from sqlalchemy.exc import IntegrityError
from app.models.interaction import (
    Interaction, InteractionType, InteractionContext, interaction_weight,
    SWIPE_TYPES, LIKE_TYPES, MUTUAL_TYPES,
)
from app.models.match import Match, MatchOrigin
from app.models.user import User, UserStatus
from app.services.user_service import UserService
from app.services.match_service import MatchService
from app.core.exceptions import ConflictError, ValidationError
from app.db.base import utcnow
from app.db.transaction import commit
from app.config.constants import (
    DEFAULT_POTENTIAL_MATCHES_LIMIT, MAX_POTENTIAL_MATCHES_LIMIT,
    DEFAULT_INTERACTIONS_PAGE_SIZE, MAX_INTERACTIONS_PAGE_SIZE,
    ANALYTICS_PERIODS_HOURS, DEFAULT_ANALYTICS_PERIOD,
)
from app.utils.identifiers import id_in
from datetime import datetime, timedelta
from typing import List, Dict, Any, Optional, Iterable
import math
import uuid
import logging

logger = logging.getLogger(__name__)


def _values(types: Iterable[InteractionType]) -> List[str]:
    return [t.value for t in types]


class InteractionService:
    """
    Ledger of unilateral interactions between users.

    Every write is an idempotent upsert: repeating an action while the prior
    record is active refreshes that record instead of adding a new one.
    """
    def __init__(self, session: AsyncSession, match_service: Optional[MatchService] = None):
        self.session = session
        self.match_service = match_service or MatchService(session)

    async def record_interaction(
        self,
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
        interaction_type,
        context=InteractionContext.PROFILE,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Interaction:
        itype = InteractionType(interaction_type)
        ctx = InteractionContext(context)
        try:
            record = await self._upsert(actor_id, target_id, itype, ctx, metadata)
            await self.session.flush()
        except IntegrityError:
            # Lost the race on the singleton index; the winner's row is now visible
            await self.session.rollback()
            logger.warning(f"Duplicate {itype.value} from {actor_id} to {target_id}, retrying upsert")
            try:
                record = await self._upsert(actor_id, target_id, itype, ctx, metadata)
                await self.session.flush()
            except IntegrityError as e:
                await self.session.rollback()
                raise ConflictError(f"Concurrent {itype.value} on the same user, retry the operation") from e

        await commit(self.session)
        return record

    async def _upsert(
        self,
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
        itype: InteractionType,
        ctx: InteractionContext,
        metadata: Optional[Dict[str, Any]],
    ) -> Interaction:
        existing = await self._find_active(actor_id, target_id, itype, ctx)

        if itype == InteractionType.BLOCK:
            await self.deactivate_pair(actor_id, target_id, keep_id=existing.id if existing else None)

        now = utcnow()
        if existing:
            merged = dict(existing.metadata_ or {})
            merged.update(metadata or {})
            existing.metadata_ = merged
            existing.updated_at = now
            record = existing
        else:
            record = Interaction(
                actor_id=actor_id,
                target_id=target_id,
                interaction_type=itype.value,
                context=ctx.value,
                metadata_=dict(metadata or {}),
                is_active=True,
                is_mutual=False,
                weight=interaction_weight(itype),
                created_at=now,
                updated_at=now,
            )
            self.session.add(record)

        if itype in MUTUAL_TYPES and not record.is_mutual:
            stmt = select(Interaction).where(
                Interaction.actor_id == target_id,
                Interaction.target_id == actor_id,
                Interaction.interaction_type == itype.value,
                Interaction.is_active.is_(True),
            ).limit(1)
            result = await self.session.execute(stmt)
            reciprocal = result.scalar_one_or_none()
            if reciprocal:
                mutual_at = reciprocal.mutual_at or now
                reciprocal.is_mutual = True
                reciprocal.mutual_at = mutual_at
                record.is_mutual = True
                record.mutual_at = mutual_at

        return record

    async def _find_active(
        self,
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
        itype: InteractionType,
        ctx: Optional[InteractionContext] = None,
    ) -> Optional[Interaction]:
        stmt = select(Interaction).where(
            Interaction.actor_id == actor_id,
            Interaction.target_id == target_id,
            Interaction.interaction_type == itype.value,
            Interaction.is_active.is_(True),
        )
        if ctx is not None:
            stmt = stmt.where(Interaction.context == ctx.value)
        stmt = stmt.order_by(Interaction.created_at.desc()).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def has_interaction(self, actor_id, target_id, interaction_type, context=None) -> Optional[Interaction]:
        ctx = InteractionContext(context) if context else None
        return await self._find_active(actor_id, target_id, InteractionType(interaction_type), ctx)

    async def find_active_swipe(self, actor_id: uuid.UUID, target_id: uuid.UUID) -> Optional[Interaction]:
        stmt = select(Interaction).where(
            Interaction.actor_id == actor_id,
            Interaction.target_id == target_id,
            Interaction.interaction_type.in_(_values(SWIPE_TYPES)),
            Interaction.context == InteractionContext.MATCHING.value,
            Interaction.is_active.is_(True),
        ).order_by(Interaction.created_at.desc()).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_mutual_interactions(self, user_a: uuid.UUID, user_b: uuid.UUID) -> List[Interaction]:
        stmt = select(Interaction).where(
            or_(
                and_(Interaction.actor_id == user_a, Interaction.target_id == user_b),
                and_(Interaction.actor_id == user_b, Interaction.target_id == user_a),
            ),
            Interaction.is_mutual.is_(True),
            Interaction.is_active.is_(True),
        ).order_by(Interaction.mutual_at.desc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def deactivate_pair(self, user_a: uuid.UUID, user_b: uuid.UUID, keep_id: Optional[uuid.UUID] = None) -> int:
        """Deactivate every active record between the pair, in both directions."""
        stmt = update(Interaction).where(
            or_(
                and_(Interaction.actor_id == user_a, Interaction.target_id == user_b),
                and_(Interaction.actor_id == user_b, Interaction.target_id == user_a),
            ),
            Interaction.is_active.is_(True),
        )
        if keep_id is not None:
            stmt = stmt.where(Interaction.id != keep_id)
        result = await self.session.execute(
            stmt.values(is_active=False, updated_at=utcnow()).execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    async def deactivate(self, actor_id: uuid.UUID, target_id: uuid.UUID, interaction_type, reason: str = "") -> int:
        """Deactivate the actor's active records of one type on target (unblock, unfollow)."""
        stmt = select(Interaction).where(
            Interaction.actor_id == actor_id,
            Interaction.target_id == target_id,
            Interaction.interaction_type == InteractionType(interaction_type).value,
            Interaction.is_active.is_(True),
        )
        result = await self.session.execute(stmt)
        records = result.scalars().all()
        now = utcnow()
        for record in records:
            meta = dict(record.metadata_ or {})
            meta["deactivated_at"] = now.isoformat()
            if reason:
                meta["deactivation_reason"] = reason
            record.metadata_ = meta
            record.is_active = False
        await commit(self.session)
        return len(records)

    async def check_for_match(self, record: Interaction) -> bool:
        """
        For like/superlike records: create the match pair when the target has an
        active like or superlike back. Returns True when a match exists.
        """
        if record.type not in LIKE_TYPES:
            return False

        stmt = select(Interaction.id).where(
            Interaction.actor_id == record.target_id,
            Interaction.target_id == record.actor_id,
            Interaction.interaction_type.in_(_values(LIKE_TYPES)),
            Interaction.is_active.is_(True),
        ).limit(1)
        result = await self.session.execute(stmt)
        if result.scalar_one_or_none() is None:
            return False

        await self.match_service.ensure_match_pair(record.actor_id, record.target_id, MatchOrigin.MUTUAL_LIKE)
        logger.info(f"Match confirmed between {record.actor_id} and {record.target_id}")
        return True

    async def get_potential_matches(
        self,
        user_id: uuid.UUID,
        limit: int = DEFAULT_POTENTIAL_MATCHES_LIMIT,
        exclude_blocked_by: bool = False,
    ) -> List[Dict[str, Any]]:
        """
        Discovery candidates: active users the actor has not blocked, matched
        or already swiped on. Users who blocked the actor are kept unless
        exclude_blocked_by is set.
        """
        limit = max(1, min(int(limit), MAX_POTENTIAL_MATCHES_LIMIT))
        me = await UserService(self.session).require_user(user_id)

        exclude = {str(user_id)}
        exclude.update(str(b) for b in (me.blocked_users or []))

        stmt = select(Match.owner_id, Match.partner_id).where(
            or_(Match.owner_id == user_id, Match.partner_id == user_id)
        )
        result = await self.session.execute(stmt)
        for owner_id, partner_id in result.all():
            exclude.add(str(partner_id) if str(owner_id) == str(user_id) else str(owner_id))

        stmt = select(Interaction.target_id).where(
            Interaction.actor_id == user_id,
            Interaction.interaction_type.in_(_values(SWIPE_TYPES)),
            Interaction.context == InteractionContext.MATCHING.value,
            Interaction.is_active.is_(True),
        )
        result = await self.session.execute(stmt)
        exclude.update(str(t) for t in result.scalars().all())

        exclude_ids = []
        for value in exclude:
            try:
                exclude_ids.append(uuid.UUID(value))
            except ValueError:
                continue

        stmt = select(User).where(
            User.id.notin_(exclude_ids),
            User.status == UserStatus.ACTIVE.value,
            User.is_active.is_(True),
        ).order_by(User.created_at.desc())
        if not exclude_blocked_by:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        users = result.scalars().all()

        if exclude_blocked_by:
            users = [u for u in users if not id_in(user_id, u.blocked_users)][:limit]

        return [
            {
                "id": str(u.id),
                "username": u.username,
                "name": u.display_name,
                "avatar": u.avatar,
                "photos": [u.avatar] if u.avatar else [],
            }
            for u in users
        ]

    async def _count(self, *criteria) -> int:
        stmt = select(func.count(Interaction.id)).where(Interaction.is_active.is_(True), *criteria)
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def get_user_stats(self, user_id: uuid.UUID) -> Dict[str, int]:
        likes = _values(LIKE_TYPES)
        likes_given = await self._count(Interaction.actor_id == user_id, Interaction.interaction_type.in_(likes))
        likes_received = await self._count(Interaction.target_id == user_id, Interaction.interaction_type.in_(likes))
        superlikes_given = await self._count(
            Interaction.actor_id == user_id,
            Interaction.interaction_type == InteractionType.SUPERLIKE.value,
        )
        passes_given = await self._count(
            Interaction.actor_id == user_id,
            Interaction.interaction_type == InteractionType.PASS.value,
        )
        dislikes_given = await self._count(
            Interaction.actor_id == user_id,
            Interaction.interaction_type == InteractionType.DISLIKE.value,
        )

        stmt = select(func.count(Match.id)).where(Match.owner_id == user_id, Match.is_active.is_(True))
        result = await self.session.execute(stmt)
        matches = result.scalar() or 0

        return {
            "likes_given": likes_given,
            "likes_received": likes_received,
            "superlikes_given": superlikes_given,
            "passes_given": passes_given,
            "dislikes_given": dislikes_given,
            "matches": matches,
        }

    async def get_user_interactions(
        self,
        user_id: uuid.UUID,
        direction: str = "both",
        types: Optional[List[str]] = None,
        context: Optional[str] = None,
        since: Optional[datetime] = None,
        page: int = 1,
        limit: int = DEFAULT_INTERACTIONS_PAGE_SIZE,
        include_inactive: bool = False,
    ) -> Dict[str, Any]:
        page = max(1, int(page))
        limit = max(1, min(int(limit), MAX_INTERACTIONS_PAGE_SIZE))

        if direction == "outgoing":
            criteria = [Interaction.actor_id == user_id]
        elif direction == "incoming":
            criteria = [Interaction.target_id == user_id]
        else:
            criteria = [or_(Interaction.actor_id == user_id, Interaction.target_id == user_id)]

        try:
            if types:
                criteria.append(Interaction.interaction_type.in_([InteractionType(t).value for t in types]))
            if context:
                criteria.append(Interaction.context == InteractionContext(context).value)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        if since:
            criteria.append(Interaction.created_at >= since)
        if not include_inactive:
            criteria.append(Interaction.is_active.is_(True))

        result = await self.session.execute(select(func.count(Interaction.id)).where(*criteria))
        total = result.scalar() or 0

        stmt = (
            select(Interaction)
            .where(*criteria)
            .order_by(Interaction.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        interactions = list(result.scalars().all())

        return {
            "interactions": interactions,
            "pagination": {
                "total": total,
                "page": page,
                "pages": math.ceil(total / limit) if total else 0,
                "has_more": (page - 1) * limit + len(interactions) < total,
            },
        }

    async def get_analytics(self, user_id: uuid.UUID, period: str = DEFAULT_ANALYTICS_PERIOD) -> List[Dict[str, Any]]:
        hours = ANALYTICS_PERIODS_HOURS.get(period, ANALYTICS_PERIODS_HOURS[DEFAULT_ANALYTICS_PERIOD])
        since = utcnow() - timedelta(hours=hours)

        stmt = (
            select(
                Interaction.interaction_type,
                func.count(Interaction.id),
                func.sum(case((Interaction.target_id == user_id, 1), else_=0)),
                func.sum(case((Interaction.actor_id == user_id, 1), else_=0)),
                func.sum(case((Interaction.is_mutual.is_(True), 1), else_=0)),
            )
            .where(
                or_(Interaction.actor_id == user_id, Interaction.target_id == user_id),
                Interaction.created_at >= since,
                Interaction.is_active.is_(True),
            )
            .group_by(Interaction.interaction_type)
        )
        result = await self.session.execute(stmt)
        return [
            {
                "type": itype,
                "count": count,
                "incoming": int(incoming or 0),
                "outgoing": int(outgoing or 0),
                "mutual": int(mutual or 0),
            }
            for itype, count, incoming, outgoing, mutual in result.all()
        ]

    async def reset_swipe_history(self, user_id: uuid.UUID) -> int:
        """Deactivate the user's swipes in matching so those users show up again."""
        stmt = (
            update(Interaction)
            .where(
                Interaction.actor_id == user_id,
                Interaction.interaction_type.in_(_values(SWIPE_TYPES)),
                Interaction.context == InteractionContext.MATCHING.value,
                Interaction.is_active.is_(True),
            )
            .values(is_active=False, updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(stmt)
        await commit(self.session)
        count = result.rowcount or 0
        logger.info(f"Reset {count} swipes for user {user_id}")
        return count
