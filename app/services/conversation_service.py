from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, or_
from sqlalchemy.exc import IntegrityError
from app.models.conversation import Conversation, ConsentState
from app.models.message import Message, MessageType
from app.models.notification import NotificationType
from app.models.user import User
from app.services.user_service import UserService
from app.services.match_service import MatchService
from app.services.notification_service import NotificationService
from app.services import consent_policy
from app.realtime.publisher import RealtimePublisher, conversation_channel, user_channel
from app.core.exceptions import (
    ValidationError, NotFoundError, PermissionDenied, ConflictError, DenialCode,
)
from app.db.base import utcnow
from app.db.transaction import commit
from app.utils.identifiers import canonical_pair, id_in
from app.config.constants import (
    MIN_MESSAGE_LENGTH, MAX_MESSAGE_LENGTH, MAX_MEDIA_URL_LENGTH, MAX_REACTION_LENGTH,
    DEFAULT_MESSAGES_PAGE_SIZE, MAX_MESSAGES_PAGE_SIZE,
    DEFAULT_CONVERSATIONS_PAGE_SIZE, MAX_CONVERSATIONS_PAGE_SIZE,
    LAST_MESSAGE_PREVIEW_LENGTH, CHAT_PIN_MIN, CHAT_PIN_MAX, NEW_MESSAGE_EVENT,
    NEW_MESSAGE_TITLE, MESSAGE_REQUEST_TITLE, UNKNOWN_SENDER_NAME,
)
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import math
import secrets
import uuid
import logging

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    delivered: bool
    request_pending: bool = False
    message: Optional[Message] = None
    conversation: Optional[Conversation] = None


def generate_pin() -> str:
    return str(CHAT_PIN_MIN + secrets.randbelow(CHAT_PIN_MAX - CHAT_PIN_MIN + 1))


class ConversationService:
    """
    Gatekeeper for two-party conversations.

    Consent is re-evaluated on every create and send. A send that needs the
    recipient's approval is not stored as a message: it raises the request flag
    on the recipient's match row instead.
    """
    def __init__(
        self,
        session: AsyncSession,
        publisher: Optional[RealtimePublisher] = None,
        notifier: Optional[NotificationService] = None,
    ):
        self.session = session
        self.users = UserService(session)
        self.matches = MatchService(session)
        self.publisher = publisher or RealtimePublisher()
        self.notifier = notifier or NotificationService()

    async def _load_pair(self, user_a: uuid.UUID, user_b: uuid.UUID):
        users = await self.users.get_users([user_a, user_b])
        a, b = users.get(str(user_a)), users.get(str(user_b))
        if not a or not b:
            raise NotFoundError("User not found")
        return a, b

    async def find_by_pair(self, user_a: uuid.UUID, user_b: uuid.UUID, for_update: bool = False) -> Optional[Conversation]:
        low, high = canonical_pair(user_a, user_b)
        stmt = select(Conversation).where(
            Conversation.participant_low == low,
            Conversation.participant_high == high,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create(self, initiator_id: uuid.UUID, other_id: uuid.UUID) -> Conversation:
        if str(initiator_id) == str(other_id):
            raise ValidationError("A conversation needs exactly two distinct participants")

        initiator, other = await self._load_pair(initiator_id, other_id)
        decision = consent_policy.evaluate(initiator, other)
        if not decision.allowed:
            logger.warning(f"Conversation {initiator_id} -> {other_id} denied: {decision.reason_code.value}")
            raise PermissionDenied(decision.reason_code)

        conversation = await self.find_by_pair(initiator.id, other.id)
        if not conversation:
            low, high = canonical_pair(initiator.id, other.id)
            conversation = Conversation(
                participant_low=low,
                participant_high=high,
                is_active=True,
                pinned_message_ids=[],
                unread_count=0,
                last_activity=utcnow(),
                chat_pin=generate_pin(),
            )
            conversation.set_state(
                ConsentState.NONE if decision.requires_approval else ConsentState.APPROVED
            )
            self.session.add(conversation)
            try:
                await self.session.flush()
            except IntegrityError as e:
                # Created concurrently by the other participant
                await self.session.rollback()
                conversation = await self.find_by_pair(initiator_id, other_id)
                if conversation is None:
                    raise ConflictError("Conversation could not be created, retry the operation") from e
            else:
                logger.info(f"Created conversation {conversation.id} in state {conversation.consent_state}")

        await self.matches.attach_chat(initiator_id, other_id, conversation.id)
        await commit(self.session)
        return conversation

    async def get_conversation(self, conversation_id: uuid.UUID, user_id: uuid.UUID, for_update: bool = False) -> Conversation:
        stmt = select(Conversation).where(Conversation.id == conversation_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        conversation = result.scalar_one_or_none()
        if not conversation:
            raise NotFoundError("Chat not found")
        if not conversation.has_participant(user_id):
            raise PermissionDenied(DenialCode.NOT_PARTICIPANT)
        return conversation

    async def list_conversations(
        self,
        user_id: uuid.UUID,
        page: int = 1,
        limit: int = DEFAULT_CONVERSATIONS_PAGE_SIZE,
    ) -> List[Conversation]:
        page = max(1, int(page))
        limit = max(1, min(int(limit), MAX_CONVERSATIONS_PAGE_SIZE))
        stmt = (
            select(Conversation)
            .where(
                or_(Conversation.participant_low == user_id, Conversation.participant_high == user_id),
                Conversation.is_active.is_(True),
            )
            .order_by(Conversation.last_activity.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    def _validate_content(content: str) -> str:
        content = (content or "").strip()
        if not MIN_MESSAGE_LENGTH <= len(content) <= MAX_MESSAGE_LENGTH:
            raise ValidationError(
                f"Message must be between {MIN_MESSAGE_LENGTH} and {MAX_MESSAGE_LENGTH} characters"
            )
        return content

    async def send_message(
        self,
        conversation_id: uuid.UUID,
        sender_id: uuid.UUID,
        content: str,
        message_type=MessageType.TEXT,
        reply_to_id: Optional[uuid.UUID] = None,
        media_url: Optional[str] = None,
    ) -> SendResult:
        content = self._validate_content(content)
        try:
            mtype = MessageType(message_type)
        except ValueError:
            raise ValidationError(f"Unsupported message type: {message_type}")
        if media_url and len(media_url) > MAX_MEDIA_URL_LENGTH:
            raise ValidationError("Media URL is too long")

        conversation = await self.get_conversation(conversation_id, sender_id, for_update=True)
        sender, recipient = await self._load_pair(sender_id, conversation.other_participant(sender_id))

        # Blocks win over any earlier approval
        if id_in(sender.id, recipient.blocked_users):
            raise PermissionDenied(DenialCode.BLOCKED_BY_PEER)
        if id_in(recipient.id, sender.blocked_users):
            raise PermissionDenied(DenialCode.I_BLOCKED)

        decision = consent_policy.evaluate(sender, recipient)
        if not decision.allowed:
            logger.warning(f"Message {sender.id} -> {recipient.id} denied: {decision.reason_code.value}")
            raise PermissionDenied(decision.reason_code)

        state = conversation.state
        if state == ConsentState.NONE:
            if decision.requires_approval:
                conversation.set_state(ConsentState.PENDING_APPROVAL, request_from=sender.id)
                return await self._queue_request(conversation, sender, recipient)
            conversation.set_state(ConsentState.APPROVED)
        elif state == ConsentState.PENDING_APPROVAL:
            # Reset by unfriend: the first sender becomes the requester
            if conversation.request_from is None:
                conversation.request_from = sender.id
            return await self._queue_request(conversation, sender, recipient)

        return await self._deliver(conversation, sender, recipient, content, mtype, reply_to_id, media_url)

    async def _queue_request(self, conversation: Conversation, sender: User, recipient: User) -> SendResult:
        await self.matches.flag_message_request(recipient, sender, chat_id=conversation.id)
        conversation.last_activity = utcnow()
        await commit(self.session)
        logger.info(f"Message request queued from {sender.id} to {recipient.id} in {conversation.id}")

        await self.notifier.notify(
            recipient.id,
            NotificationType.MESSAGE_REQUEST,
            MESSAGE_REQUEST_TITLE,
            f"{sender.display_name or UNKNOWN_SENDER_NAME} wants to send you a message",
            sender_id=sender.id,
            data={"chat_id": conversation.id},
        )
        return SendResult(delivered=False, request_pending=True, conversation=conversation)

    async def _deliver(
        self,
        conversation: Conversation,
        sender: User,
        recipient: User,
        content: str,
        mtype: MessageType,
        reply_to_id: Optional[uuid.UUID],
        media_url: Optional[str],
    ) -> SendResult:
        if reply_to_id is not None:
            await self._get_message(conversation.id, reply_to_id)

        now = utcnow()
        message = Message(
            conversation_id=conversation.id,
            sender_id=sender.id,
            content=content,
            message_type=mtype.value,
            media_url=media_url,
            reply_to_id=reply_to_id,
            read_by=[],
            reactions=[],
            created_at=now,
        )
        self.session.add(message)
        await self.session.flush()

        conversation.last_message_id = message.id
        conversation.last_message = content[:LAST_MESSAGE_PREVIEW_LENGTH]
        conversation.last_activity = now
        conversation.unread_count = (conversation.unread_count or 0) + 1
        await self.matches.record_last_message(sender.id, recipient.id, content, now, chat_id=conversation.id)
        await commit(self.session)

        payload = {
            "chat_id": str(conversation.id),
            "message": serialize_message(message),
        }
        await self.publisher.publish(conversation_channel(conversation.id), NEW_MESSAGE_EVENT, payload)
        await self.publisher.publish(user_channel(recipient.id), NEW_MESSAGE_EVENT, payload)

        await self.notifier.notify(
            recipient.id,
            NotificationType.MESSAGE,
            NEW_MESSAGE_TITLE,
            f"{sender.display_name or UNKNOWN_SENDER_NAME} sent you a message",
            sender_id=sender.id,
            data={"chat_id": conversation.id, "message_id": message.id},
        )
        return SendResult(delivered=True, message=message, conversation=conversation)

    async def approve(self, conversation_id: uuid.UUID, approver_id: uuid.UUID) -> Conversation:
        conversation = await self.get_conversation(conversation_id, approver_id, for_update=True)
        state = conversation.state
        if state == ConsentState.APPROVED:
            return conversation
        # Only the recipient of a pending request can approve it
        if state != ConsentState.PENDING_APPROVAL or conversation.request_from is None:
            raise ValidationError("There is no pending message request to approve")
        if str(conversation.request_from) == str(approver_id):
            raise ValidationError("You cannot approve your own message request")

        conversation.set_state(ConsentState.APPROVED)
        await self.matches.clear_message_requests(approver_id, conversation.other_participant(approver_id), approved=True)
        await commit(self.session)
        logger.info(f"Conversation {conversation.id} approved by {approver_id}")
        return conversation

    async def reset_consent(self, user_a: uuid.UUID, user_b: uuid.UUID) -> Optional[Conversation]:
        """
        Drop approval for the pair and soft-delete its history. The caller
        commits; returns None when the pair never had a conversation.
        """
        conversation = await self.find_by_pair(user_a, user_b, for_update=True)
        if conversation is None:
            return None

        now = utcnow()
        await self.session.execute(
            update(Message)
            .where(Message.conversation_id == conversation.id, Message.is_deleted.is_(False))
            .values(is_deleted=True, deleted_at=now)
            .execution_options(synchronize_session="fetch")
        )
        conversation.set_state(ConsentState.PENDING_APPROVAL)
        conversation.pinned_message_ids = []
        conversation.last_message_id = None
        conversation.last_message = None
        conversation.unread_count = 0
        conversation.last_activity = now
        await self.session.flush()
        return conversation

    async def _get_message(self, conversation_id: uuid.UUID, message_id: uuid.UUID) -> Message:
        stmt = select(Message).where(Message.id == message_id, Message.conversation_id == conversation_id)
        result = await self.session.execute(stmt)
        message = result.scalar_one_or_none()
        if not message or message.is_deleted:
            raise NotFoundError("Message not found")
        return message

    async def pin_message(self, conversation_id: uuid.UUID, user_id: uuid.UUID, message_id: uuid.UUID) -> List[str]:
        conversation = await self.get_conversation(conversation_id, user_id)
        message = await self._get_message(conversation.id, message_id)
        pinned = [str(p) for p in (conversation.pinned_message_ids or [])]
        if str(message.id) not in pinned:
            pinned.append(str(message.id))
            conversation.pinned_message_ids = pinned
        message.is_pinned = True
        await commit(self.session)
        return pinned

    async def unpin_message(self, conversation_id: uuid.UUID, user_id: uuid.UUID, message_id: uuid.UUID) -> List[str]:
        conversation = await self.get_conversation(conversation_id, user_id)
        pinned = [str(p) for p in (conversation.pinned_message_ids or []) if str(p) != str(message_id)]
        conversation.pinned_message_ids = pinned
        stmt = select(Message).where(Message.id == message_id, Message.conversation_id == conversation.id)
        result = await self.session.execute(stmt)
        message = result.scalar_one_or_none()
        if message:
            message.is_pinned = False
        await commit(self.session)
        return pinned

    async def mark_read(self, conversation_id: uuid.UUID, user_id: uuid.UUID) -> int:
        """Clear unread counters and add read receipts. Returns the number of receipts added."""
        conversation = await self.get_conversation(conversation_id, user_id)
        other_id = conversation.other_participant(user_id)

        conversation.unread_count = 0
        await self.matches.reset_unread(user_id, other_id)

        stmt = (
            select(Message)
            .where(
                Message.conversation_id == conversation.id,
                Message.sender_id == other_id,
                Message.is_deleted.is_(False),
            )
            .order_by(Message.created_at.desc())
            .limit(DEFAULT_MESSAGES_PAGE_SIZE)
        )
        result = await self.session.execute(stmt)
        read_at = utcnow().isoformat()
        marked = 0
        for message in result.scalars().all():
            receipts = list(message.read_by or [])
            if any(r.get("user_id") == str(user_id) for r in receipts):
                continue
            receipts.append({"user_id": str(user_id), "read_at": read_at})
            message.read_by = receipts
            marked += 1

        await commit(self.session)
        return marked

    async def get_messages(
        self,
        conversation_id: uuid.UUID,
        user_id: uuid.UUID,
        page: int = 1,
        limit: int = DEFAULT_MESSAGES_PAGE_SIZE,
        include_deleted: bool = False,
    ) -> Dict[str, Any]:
        """Page 1 holds the newest messages; each page is returned oldest first."""
        conversation = await self.get_conversation(conversation_id, user_id)
        page = max(1, int(page))
        limit = max(1, min(int(limit), MAX_MESSAGES_PAGE_SIZE))

        criteria = [Message.conversation_id == conversation.id]
        if not include_deleted:
            criteria.append(Message.is_deleted.is_(False))

        result = await self.session.execute(select(func.count(Message.id)).where(*criteria))
        total = result.scalar() or 0

        stmt = (
            select(Message)
            .where(*criteria)
            .order_by(Message.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        messages = list(reversed(result.scalars().all()))

        return {
            "messages": messages,
            "pagination": {
                "total": total,
                "page": page,
                "pages": math.ceil(total / limit) if total else 0,
                "has_more": (page - 1) * limit + len(messages) < total,
            },
        }

    async def _get_own_message(self, conversation_id, user_id, message_id) -> Message:
        await self.get_conversation(conversation_id, user_id)
        message = await self._get_message(conversation_id, message_id)
        if str(message.sender_id) != str(user_id):
            raise PermissionDenied(DenialCode.NOT_PARTICIPANT, "You can only change your own messages")
        return message

    async def edit_message(self, conversation_id, user_id, message_id, content: str) -> Message:
        content = self._validate_content(content)
        message = await self._get_own_message(conversation_id, user_id, message_id)
        message.content = content
        message.is_edited = True
        message.edited_at = utcnow()

        stmt = select(Conversation).where(Conversation.id == conversation_id)
        conversation = (await self.session.execute(stmt)).scalar_one()
        if str(conversation.last_message_id) == str(message.id):
            conversation.last_message = content[:LAST_MESSAGE_PREVIEW_LENGTH]
        await commit(self.session)
        return message

    async def delete_message(self, conversation_id, user_id, message_id) -> Message:
        message = await self._get_own_message(conversation_id, user_id, message_id)
        message.is_deleted = True
        message.deleted_at = utcnow()
        message.is_pinned = False

        stmt = select(Conversation).where(Conversation.id == conversation_id)
        conversation = (await self.session.execute(stmt)).scalar_one()
        conversation.pinned_message_ids = [
            str(p) for p in (conversation.pinned_message_ids or []) if str(p) != str(message.id)
        ]
        await commit(self.session)
        return message

    async def add_reaction(self, conversation_id, user_id, message_id, emoji: str) -> Message:
        """One reaction per user; a second reaction replaces the first."""
        emoji = (emoji or "").strip()
        if not emoji or len(emoji) > MAX_REACTION_LENGTH:
            raise ValidationError("Invalid reaction")
        await self.get_conversation(conversation_id, user_id)
        message = await self._get_message(conversation_id, message_id)

        reactions = [r for r in (message.reactions or []) if r.get("user_id") != str(user_id)]
        reactions.append({"user_id": str(user_id), "emoji": emoji, "created_at": utcnow().isoformat()})
        message.reactions = reactions
        await commit(self.session)
        return message

    async def remove_reaction(self, conversation_id, user_id, message_id) -> Message:
        await self.get_conversation(conversation_id, user_id)
        message = await self._get_message(conversation_id, message_id)
        message.reactions = [r for r in (message.reactions or []) if r.get("user_id") != str(user_id)]
        await commit(self.session)
        return message

    async def reset_pin(self, conversation_id: uuid.UUID, user_id: uuid.UUID) -> str:
        conversation = await self.get_conversation(conversation_id, user_id)
        conversation.chat_pin = generate_pin()
        await commit(self.session)
        return conversation.chat_pin


def serialize_message(message: Message) -> Dict[str, Any]:
    return {
        "id": str(message.id),
        "chat_id": str(message.conversation_id),
        "sender_id": str(message.sender_id),
        "content": message.content,
        "message_type": message.message_type,
        "media_url": message.media_url,
        "reply_to_id": str(message.reply_to_id) if message.reply_to_id else None,
        "is_pinned": bool(message.is_pinned),
        "is_edited": bool(message.is_edited),
        "created_at": message.created_at.isoformat() if message.created_at else None,
    }
