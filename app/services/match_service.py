from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, or_, and_
from app.models.match import Match, MatchOrigin
from app.models.interaction import Interaction, InteractionContext, LIKE_TYPES
from app.models.user import User
from app.services.user_service import UserService
from app.core.exceptions import NotFoundError, ValidationError
from app.db.base import utcnow
from app.db.transaction import commit, flush
from app.config.constants import MIN_MATCH_SCORE, MAX_MATCH_SCORE, LAST_MESSAGE_PREVIEW_LENGTH
from datetime import datetime
from typing import List, Optional, Tuple
import uuid
import logging

logger = logging.getLogger(__name__)

# Rows of these origins are real matches; message_request rows only carry a request
MATCHED_ORIGINS = (MatchOrigin.LIKE.value, MatchOrigin.SUPER_LIKE.value, MatchOrigin.MUTUAL_LIKE.value)


class MatchService:
    """
    Registry of directed match rows. Both directions of a pair are written in
    the same transaction; rows are deactivated, never deleted.
    """
    def __init__(self, session: AsyncSession):
        self.session = session
        self.users = UserService(session)

    async def find_match(self, owner_id: uuid.UUID, partner_id: uuid.UUID) -> Optional[Match]:
        stmt = select(Match).where(Match.owner_id == owner_id, Match.partner_id == partner_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_pair(self, user_a: uuid.UUID, user_b: uuid.UUID) -> List[Match]:
        stmt = select(Match).where(
            or_(
                and_(Match.owner_id == user_a, Match.partner_id == user_b),
                and_(Match.owner_id == user_b, Match.partner_id == user_a),
            )
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def ensure_match(
        self,
        owner_id: uuid.UUID,
        partner_id: uuid.UUID,
        partner_name: str,
        partner_avatar: Optional[str] = None,
        interaction_type=MatchOrigin.MUTUAL_LIKE,
        score: int = 0,
    ) -> Match:
        """
        Create or refresh one directed row. A matching origin reactivates the
        row; a message_request origin creates or revives a request-only row
        without touching an active match. Flushes only.
        """
        origin = MatchOrigin(interaction_type)
        score = max(MIN_MATCH_SCORE, min(int(score or 0), MAX_MATCH_SCORE))
        now = utcnow()

        match = await self.find_match(owner_id, partner_id)
        if not match:
            match = Match(
                owner_id=owner_id,
                partner_id=partner_id,
                partner_name=partner_name or "",
                partner_avatar=partner_avatar,
                match_date=now,
                match_score=score,
                interaction_type=origin.value,
                is_active=True,
                message_request_pending=False,
                messaging_approved=False,
                unread_count=0,
            )
            self.session.add(match)
        else:
            match.partner_name = partner_name or match.partner_name
            match.partner_avatar = partner_avatar or match.partner_avatar
            if origin == MatchOrigin.MESSAGE_REQUEST:
                if not match.is_active:
                    match.is_active = True
                    match.interaction_type = origin.value
            else:
                if not match.is_active or match.interaction_type == MatchOrigin.MESSAGE_REQUEST.value:
                    match.match_date = now
                match.interaction_type = origin.value
                match.match_score = max(match.match_score or 0, score)
                match.is_active = True

        await flush(self.session)
        return match

    async def ensure_match_pair(
        self,
        user_a: uuid.UUID,
        user_b: uuid.UUID,
        interaction_type=MatchOrigin.MUTUAL_LIKE,
        score: int = 0,
        commit_changes: bool = True,
    ) -> Tuple[Match, Match]:
        if str(user_a) == str(user_b):
            raise ValidationError("Cannot match a user with themselves")
        users = await self.users.get_users([user_a, user_b])
        a, b = users.get(str(user_a)), users.get(str(user_b))
        if not a or not b:
            raise NotFoundError("User not found")

        forward = await self.ensure_match(a.id, b.id, b.display_name, b.avatar, interaction_type, score)
        backward = await self.ensure_match(b.id, a.id, a.display_name, a.avatar, interaction_type, score)
        if commit_changes:
            await commit(self.session)
        return forward, backward

    async def list_matches(self, user_id: uuid.UUID, include_requests: bool = False) -> List[Match]:
        stmt = select(Match).where(Match.owner_id == user_id, Match.is_active.is_(True))
        if not include_requests:
            stmt = stmt.where(
                or_(Match.interaction_type.in_(MATCHED_ORIGINS), Match.message_request_pending.is_(True))
            )
        stmt = stmt.order_by(Match.match_date.desc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def reconciliation_sweep(self, user_id: uuid.UUID) -> int:
        """
        Create missing match rows for reciprocal active likes involving user_id.

        A crash between recording a like and writing the pair can leave two
        users liking each other with no match; this repairs it. Returns the
        number of repaired pairs.
        """
        likes = [t.value for t in LIKE_TYPES]
        base = [
            Interaction.interaction_type.in_(likes),
            Interaction.context == InteractionContext.MATCHING.value,
            Interaction.is_active.is_(True),
        ]
        result = await self.session.execute(select(Interaction.target_id).where(Interaction.actor_id == user_id, *base))
        outgoing = {str(t) for t in result.scalars().all()}
        result = await self.session.execute(select(Interaction.actor_id).where(Interaction.target_id == user_id, *base))
        incoming = {str(a) for a in result.scalars().all()}

        repaired = 0
        for partner in sorted(outgoing & incoming):
            partner_id = uuid.UUID(partner)
            rows = await self.get_pair(user_id, partner_id)
            matched = [r for r in rows if r.is_active and r.interaction_type in MATCHED_ORIGINS]
            if len(matched) == 2:
                continue

            await self.ensure_match_pair(user_id, partner_id, MatchOrigin.MUTUAL_LIKE, commit_changes=False)

            stmt = select(Interaction).where(
                or_(
                    and_(Interaction.actor_id == user_id, Interaction.target_id == partner_id),
                    and_(Interaction.actor_id == partner_id, Interaction.target_id == user_id),
                ),
                Interaction.is_mutual.is_(False),
                *base,
            )
            result = await self.session.execute(stmt)
            now = utcnow()
            for record in result.scalars().all():
                record.is_mutual = True
                record.mutual_at = now
            repaired += 1

        if repaired:
            await commit(self.session)
            logger.info(f"Reconciled {repaired} missing matches for user {user_id}")
        return repaired

    async def remove_match(self, owner_id: uuid.UUID, partner_id: uuid.UUID) -> Tuple[Match, Match]:
        """
        Unfriend: keep both rows active but drop messaging consent so the next
        message starts a fresh request. History is soft-deleted.
        """
        from app.services.conversation_service import ConversationService

        if str(owner_id) == str(partner_id):
            raise ValidationError("Cannot remove yourself")

        forward, backward = await self.ensure_match_pair(owner_id, partner_id, commit_changes=False)
        for row in (forward, backward):
            row.is_active = True
            row.message_request_pending = False
            row.message_request_from = None
            row.messaging_approved = False

        conversation = await ConversationService(self.session).reset_consent(owner_id, partner_id)
        if conversation is not None:
            for row in (forward, backward):
                if row.chat_id is None:
                    row.chat_id = conversation.id
                row.last_message = None
                row.unread_count = 0

        await commit(self.session)
        logger.info(f"User {owner_id} unfriended {partner_id}")
        return forward, backward

    async def flag_message_request(self, recipient: User, sender: User, chat_id: Optional[uuid.UUID] = None) -> Match:
        """Raise the pending-request flag on the recipient-owned row. Flushes only."""
        row = await self.ensure_match(
            recipient.id, sender.id, sender.display_name, sender.avatar, MatchOrigin.MESSAGE_REQUEST
        )
        mirror = await self.ensure_match(
            sender.id, recipient.id, recipient.display_name, recipient.avatar, MatchOrigin.MESSAGE_REQUEST
        )
        row.message_request_pending = True
        row.message_request_from = sender.id
        row.messaging_approved = False
        if chat_id is not None:
            row.chat_id = row.chat_id or chat_id
            mirror.chat_id = mirror.chat_id or chat_id
        await flush(self.session)
        return row

    async def clear_message_requests(self, user_a: uuid.UUID, user_b: uuid.UUID, approved: bool = True) -> List[Match]:
        rows = await self.get_pair(user_a, user_b)
        for row in rows:
            row.message_request_pending = False
            row.message_request_from = None
            row.messaging_approved = approved
        await flush(self.session)
        return rows

    async def record_last_message(
        self,
        sender_id: uuid.UUID,
        recipient_id: uuid.UUID,
        content: str,
        sent_at: datetime,
        chat_id: Optional[uuid.UUID] = None,
    ) -> None:
        """Mirror the preview onto both rows and count it unread for the recipient."""
        preview = (content or "")[:LAST_MESSAGE_PREVIEW_LENGTH]
        for row in await self.get_pair(sender_id, recipient_id):
            row.last_message = preview
            row.last_message_date = sent_at
            if chat_id is not None and row.chat_id is None:
                row.chat_id = chat_id
            if str(row.owner_id) == str(recipient_id):
                row.unread_count = (row.unread_count or 0) + 1
        await flush(self.session)

    async def reset_unread(self, owner_id: uuid.UUID, partner_id: uuid.UUID) -> None:
        row = await self.find_match(owner_id, partner_id)
        if row and row.unread_count:
            row.unread_count = 0
            await flush(self.session)

    async def attach_chat(self, user_a: uuid.UUID, user_b: uuid.UUID, chat_id: uuid.UUID) -> int:
        """Backfill chat_id onto existing rows of the pair."""
        attached = 0
        for row in await self.get_pair(user_a, user_b):
            if row.chat_id is None:
                row.chat_id = chat_id
                attached += 1
        if attached:
            await flush(self.session)
        return attached

    async def deactivate_pair(self, user_a: uuid.UUID, user_b: uuid.UUID) -> int:
        rows = await self.get_pair(user_a, user_b)
        changed = 0
        for row in rows:
            if row.is_active:
                row.is_active = False
                changed += 1
            row.message_request_pending = False
            row.message_request_from = None
            row.messaging_approved = False
        await flush(self.session)
        return changed
