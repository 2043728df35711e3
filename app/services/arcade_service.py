"""
Arcade operations: swipes, blocks, follows and the match list.

Thin orchestration over the interaction ledger, the match registry and the
user directory. Each public method is what one HTTP route calls.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from app.models.interaction import Interaction, InteractionType, InteractionContext, LIKE_TYPES
from app.models.match import Match
from app.models.notification import NotificationType
from app.models.user import User
from app.services.user_service import UserService
from app.services.match_service import MatchService
from app.services.interaction_service import InteractionService
from app.services.notification_service import NotificationService
from app.core.config import settings
from app.core.exceptions import ValidationError, ConflictError
from app.db.transaction import commit
from app.config.constants import (
    DEFAULT_POTENTIAL_MATCHES_LIMIT, DEFAULT_ANALYTICS_PERIOD, NEW_MATCH_TITLE, NEW_MATCH_TEXT,
    NEW_FOLLOWER_TITLE, UNKNOWN_SENDER_NAME,
)
from typing import Any, Dict, List, Optional
import uuid
import logging

logger = logging.getLogger(__name__)

_SWIPE_VERBS = {
    InteractionType.LIKE: "like",
    InteractionType.SUPERLIKE: "super like",
    InteractionType.DISLIKE: "dislike",
    InteractionType.PASS: "pass on",
}


class ArcadeService:
    def __init__(
        self,
        session: AsyncSession,
        notifier: Optional[NotificationService] = None,
        reconcile_on_read: Optional[bool] = None,
    ):
        self.session = session
        self.users = UserService(session)
        self.matches = MatchService(session)
        self.interactions = InteractionService(session, self.matches)
        self.notifier = notifier or NotificationService()
        self.reconcile_on_read = settings.RECONCILE_ON_READ if reconcile_on_read is None else reconcile_on_read

    # ========================
    # Swipes
    # ========================

    async def _swipe(
        self,
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
        itype: InteractionType,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        if str(actor_id) == str(target_id):
            raise ValidationError(f"Cannot {_SWIPE_VERBS[itype]} yourself")
        target = await self.users.require_user(target_id, active_only=True)

        existing = await self.interactions.find_active_swipe(actor_id, target.id)
        if existing and existing.interaction_type != itype.value:
            raise ConflictError(f"You already responded to this user with {existing.interaction_type}")

        record = await self.interactions.record_interaction(
            actor_id, target.id, itype, InteractionContext.MATCHING, metadata
        )

        is_match = False
        if itype in LIKE_TYPES:
            is_match = await self.interactions.check_for_match(record)
            # A retried like must not notify twice
            if is_match and existing is None:
                await self._notify_match(actor_id, target.id)

        return {"interaction": record, "is_match": is_match}

    async def like(self, actor_id, target_id, metadata=None) -> Dict[str, Any]:
        return await self._swipe(actor_id, target_id, InteractionType.LIKE, metadata)

    async def superlike(self, actor_id, target_id, metadata=None) -> Dict[str, Any]:
        return await self._swipe(actor_id, target_id, InteractionType.SUPERLIKE, metadata)

    async def dislike(self, actor_id, target_id, metadata=None) -> Dict[str, Any]:
        return await self._swipe(actor_id, target_id, InteractionType.DISLIKE, metadata)

    async def pass_user(self, actor_id, target_id, metadata=None) -> Dict[str, Any]:
        return await self._swipe(actor_id, target_id, InteractionType.PASS, metadata)

    async def _notify_match(self, actor_id: uuid.UUID, target_id: uuid.UUID):
        for recipient_id, sender_id in ((target_id, actor_id), (actor_id, target_id)):
            await self.notifier.notify(
                recipient_id,
                NotificationType.MATCH,
                NEW_MATCH_TITLE,
                NEW_MATCH_TEXT,
                sender_id=sender_id,
                data={"user_id": sender_id},
            )

    async def get_potential_matches(self, user_id, limit: int = DEFAULT_POTENTIAL_MATCHES_LIMIT) -> List[Dict[str, Any]]:
        return await self.interactions.get_potential_matches(user_id, limit)

    async def reset_swipe_history(self, user_id) -> int:
        return await self.interactions.reset_swipe_history(user_id)

    # ========================
    # Matches
    # ========================

    async def get_matches(self, user_id: uuid.UUID) -> List[Match]:
        if self.reconcile_on_read:
            await self.matches.reconciliation_sweep(user_id)
        return await self.matches.list_matches(user_id)

    async def remove_match(self, actor_id: uuid.UUID, target_id: uuid.UUID):
        if str(actor_id) == str(target_id):
            raise ValidationError("Cannot remove yourself")
        await self.users.require_user(target_id)
        return await self.matches.remove_match(actor_id, target_id)

    # ========================
    # Block / follow
    # ========================

    async def block(self, actor_id: uuid.UUID, target_id: uuid.UUID, reason: Optional[str] = None) -> Interaction:
        if str(actor_id) == str(target_id):
            raise ValidationError("Cannot block yourself")
        await self.users.require_user(actor_id)
        await self.users.require_user(target_id)

        metadata = {"reason": reason} if reason else None
        record = await self.interactions.record_interaction(
            actor_id, target_id, InteractionType.BLOCK, InteractionContext.PROFILE, metadata
        )

        # Reloaded: the ledger may have rolled back and expired earlier instances
        actor = await self.users.require_user(actor_id)
        self.users.add_block(actor, target_id)
        await self.matches.deactivate_pair(actor_id, target_id)
        await commit(self.session)
        logger.info(f"User {actor_id} blocked {target_id}")
        return record

    async def unblock(self, actor_id: uuid.UUID, target_id: uuid.UUID) -> Interaction:
        if str(actor_id) == str(target_id):
            raise ValidationError("Cannot unblock yourself")
        await self.users.require_user(actor_id)

        await self.interactions.deactivate(actor_id, target_id, InteractionType.BLOCK, reason="unblock")
        record = await self.interactions.record_interaction(
            actor_id, target_id, InteractionType.UNBLOCK, InteractionContext.PROFILE
        )

        actor = await self.users.require_user(actor_id)
        self.users.remove_block(actor, target_id)
        await commit(self.session)
        logger.info(f"User {actor_id} unblocked {target_id}")
        return record

    async def get_blocked_users(self, user_id: uuid.UUID) -> List[User]:
        me = await self.users.require_user(user_id)
        ids = []
        for value in me.blocked_users or []:
            try:
                ids.append(uuid.UUID(str(value)))
            except ValueError:
                logger.warning(f"Skipping malformed blocked id {value!r} of user {user_id}")
        users = await self.users.get_users(ids)
        return [users[str(i)] for i in ids if str(i) in users]

    async def follow(self, actor_id: uuid.UUID, target_id: uuid.UUID) -> Interaction:
        if str(actor_id) == str(target_id):
            raise ValidationError("Cannot follow yourself")
        await self.users.require_user(actor_id)
        await self.users.require_user(target_id, active_only=True)

        record = await self.interactions.record_interaction(
            actor_id, target_id, InteractionType.FOLLOW, InteractionContext.PROFILE
        )

        actor = await self.users.require_user(actor_id)
        target = await self.users.require_user(target_id)
        if self.users.add_follow(actor, target):
            await commit(self.session)
            await self.notifier.notify(
                target_id,
                NotificationType.FOLLOW,
                NEW_FOLLOWER_TITLE,
                f"{actor.display_name or UNKNOWN_SENDER_NAME} started following you",
                sender_id=actor_id,
            )
        return record

    async def unfollow(self, actor_id: uuid.UUID, target_id: uuid.UUID) -> Interaction:
        if str(actor_id) == str(target_id):
            raise ValidationError("Cannot unfollow yourself")
        await self.users.require_user(actor_id)
        await self.users.require_user(target_id)

        await self.interactions.deactivate(actor_id, target_id, InteractionType.FOLLOW, reason="unfollow")
        record = await self.interactions.record_interaction(
            actor_id, target_id, InteractionType.UNFOLLOW, InteractionContext.PROFILE
        )

        actor = await self.users.require_user(actor_id)
        target = await self.users.require_user(target_id)
        self.users.remove_follow(actor, target)
        await commit(self.session)
        return record

    async def relationship(self, actor_id: uuid.UUID, target_id: uuid.UUID) -> Dict[str, Any]:
        """Block state from the directory plus follow and mutual state from the ledger."""
        actor = await self.users.require_user(actor_id)
        target = await self.users.require_user(target_id)
        data: Dict[str, Any] = self.users.relationship(actor, target)

        following = await self.interactions.has_interaction(actor.id, target.id, InteractionType.FOLLOW)
        followed_by = await self.interactions.has_interaction(target.id, actor.id, InteractionType.FOLLOW)
        mutual = await self.interactions.get_mutual_interactions(actor.id, target.id)
        data.update({
            "following": following is not None,
            "followed_by": followed_by is not None,
            "mutual": sorted({i.interaction_type for i in mutual}),
        })
        return data

    # ========================
    # History & stats
    # ========================

    async def get_interaction_history(self, user_id: uuid.UUID, **filters) -> Dict[str, Any]:
        return await self.interactions.get_user_interactions(user_id, **filters)

    async def get_stats(self, user_id: uuid.UUID) -> Dict[str, int]:
        return await self.interactions.get_user_stats(user_id)

    async def get_analytics(self, user_id: uuid.UUID, period: str = DEFAULT_ANALYTICS_PERIOD) -> List[Dict[str, Any]]:
        return await self.interactions.get_analytics(user_id, period)
