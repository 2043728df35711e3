"""Chat API: two-party conversations with consent-gated delivery."""
import logging
import uuid
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from app.db.session import AsyncSessionLocal
from app.api.deps import require_user_id
from app.models import Conversation, Message
from app.schemas.chat import (
    CreateConversationRequest, SendMessageRequest, EditMessageRequest, PinRequest, ReactionRequest,
)
from app.services.conversation_service import ConversationService, serialize_message
from app.services.notification_service import list_notifications, count_unread
from app.core.exceptions import ValidationError
from app.utils.identifiers import parse_id
from app.config.constants import (
    DEFAULT_MESSAGES_PAGE_SIZE, MAX_MESSAGES_PAGE_SIZE,
    DEFAULT_CONVERSATIONS_PAGE_SIZE, MAX_CONVERSATIONS_PAGE_SIZE,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


def serialize_conversation(c: Conversation, user_id: uuid.UUID) -> dict:
    return {
        "id": str(c.id),
        "participants": [str(p) for p in c.participants],
        "other_participant": str(c.other_participant(user_id)),
        "consent_state": c.consent_state,
        "is_approved": c.is_approved,
        "request_from": str(c.request_from) if c.request_from else None,
        "pinned_messages": list(c.pinned_message_ids or []),
        "last_message": c.last_message,
        "last_activity": c.last_activity.isoformat() if c.last_activity else None,
        "unread_count": c.unread_count or 0,
    }


def _full_message(m: Message) -> dict:
    data = serialize_message(m)
    data.update({
        "is_deleted": bool(m.is_deleted),
        "read_by": list(m.read_by or []),
        "reactions": list(m.reactions or []),
    })
    return data


@router.get("")
async def list_conversations(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_CONVERSATIONS_PAGE_SIZE, ge=1, le=MAX_CONVERSATIONS_PAGE_SIZE),
    user_id: uuid.UUID = Depends(require_user_id),
):
    async with AsyncSessionLocal() as session:
        conversations = await ConversationService(session).list_conversations(user_id, page, limit)
        return {"success": True, "data": [serialize_conversation(c, user_id) for c in conversations]}


@router.post("")
async def create_conversation(req: CreateConversationRequest, user_id: uuid.UUID = Depends(require_user_id)):
    """Create or get the conversation with one other user."""
    others = {str(parse_id(p, "participant id")) for p in req.participants} - {str(user_id)}
    if len(others) != 1:
        raise ValidationError("Group chats not supported")
    other_id = uuid.UUID(others.pop())

    async with AsyncSessionLocal() as session:
        conversation = await ConversationService(session).get_or_create(user_id, other_id)
        return {"success": True, "data": serialize_conversation(conversation, user_id)}


@router.get("/notifications")
async def get_notifications(unread_only: bool = False, user_id: uuid.UUID = Depends(require_user_id)):
    async with AsyncSessionLocal() as session:
        notifications = await list_notifications(session, user_id, unread_only)
        unread = await count_unread(session, user_id)
        return {
            "success": True,
            "data": {
                "notifications": [
                    {
                        "id": str(n.id),
                        "type": n.type,
                        "title": n.title,
                        "message": n.message,
                        "sender_id": str(n.sender_id) if n.sender_id else None,
                        "data": n.data or {},
                        "is_read": n.is_read,
                        "created_at": n.created_at.isoformat() if n.created_at else None,
                    }
                    for n in notifications
                ],
                "unread_count": unread,
            },
        }


@router.get("/{chat_id}")
async def get_conversation(chat_id: str, user_id: uuid.UUID = Depends(require_user_id)):
    cid = parse_id(chat_id, "chat id")
    async with AsyncSessionLocal() as session:
        conversation = await ConversationService(session).get_conversation(cid, user_id)
        return {"success": True, "data": serialize_conversation(conversation, user_id)}


@router.post("/{chat_id}/messages")
async def send_message(chat_id: str, req: SendMessageRequest, user_id: uuid.UUID = Depends(require_user_id)):
    cid = parse_id(chat_id, "chat id")
    reply_to = parse_id(req.reply_to_id, "reply id") if req.reply_to_id else None
    async with AsyncSessionLocal() as session:
        result = await ConversationService(session).send_message(
            cid, user_id, req.content, req.type, reply_to_id=reply_to, media_url=req.media_url
        )
        if result.request_pending:
            return JSONResponse(
                status_code=202,
                content={
                    "success": True,
                    "message": "Message request sent. Waiting for approval.",
                    "data": {"request_pending": True},
                },
            )
        return {"success": True, "message": "Message sent successfully", "data": serialize_message(result.message)}


@router.get("/{chat_id}/messages")
async def get_messages(
    chat_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_MESSAGES_PAGE_SIZE, ge=1, le=MAX_MESSAGES_PAGE_SIZE),
    include_deleted: bool = False,
    user_id: uuid.UUID = Depends(require_user_id),
):
    cid = parse_id(chat_id, "chat id")
    async with AsyncSessionLocal() as session:
        result = await ConversationService(session).get_messages(cid, user_id, page, limit, include_deleted)
        return {
            "success": True,
            "data": {
                "messages": [_full_message(m) for m in result["messages"]],
                "has_more": result["pagination"]["has_more"],
                "pagination": result["pagination"],
            },
        }


@router.post("/{chat_id}/approve")
async def approve(chat_id: str, user_id: uuid.UUID = Depends(require_user_id)):
    cid = parse_id(chat_id, "chat id")
    async with AsyncSessionLocal() as session:
        await ConversationService(session).approve(cid, user_id)
    return {"success": True, "message": "Chat request approved"}


@router.post("/{chat_id}/pin")
async def pin_message(chat_id: str, req: PinRequest, user_id: uuid.UUID = Depends(require_user_id)):
    cid = parse_id(chat_id, "chat id")
    mid = parse_id(req.message_id, "message id")
    async with AsyncSessionLocal() as session:
        pinned = await ConversationService(session).pin_message(cid, user_id, mid)
    return {"success": True, "data": pinned}


@router.post("/{chat_id}/unpin")
async def unpin_message(chat_id: str, req: PinRequest, user_id: uuid.UUID = Depends(require_user_id)):
    cid = parse_id(chat_id, "chat id")
    mid = parse_id(req.message_id, "message id")
    async with AsyncSessionLocal() as session:
        pinned = await ConversationService(session).unpin_message(cid, user_id, mid)
    return {"success": True, "data": pinned}


@router.post("/{chat_id}/read")
async def mark_read(chat_id: str, user_id: uuid.UUID = Depends(require_user_id)):
    cid = parse_id(chat_id, "chat id")
    async with AsyncSessionLocal() as session:
        marked = await ConversationService(session).mark_read(cid, user_id)
    return {"success": True, "message": "Chat marked as read", "data": {"unread_count": 0, "marked": marked}}


@router.put("/{chat_id}/messages/{message_id}")
async def edit_message(chat_id: str, message_id: str, req: EditMessageRequest, user_id: uuid.UUID = Depends(require_user_id)):
    cid, mid = parse_id(chat_id, "chat id"), parse_id(message_id, "message id")
    async with AsyncSessionLocal() as session:
        message = await ConversationService(session).edit_message(cid, user_id, mid, req.content)
        return {"success": True, "data": _full_message(message)}


@router.delete("/{chat_id}/messages/{message_id}")
async def delete_message(chat_id: str, message_id: str, user_id: uuid.UUID = Depends(require_user_id)):
    cid, mid = parse_id(chat_id, "chat id"), parse_id(message_id, "message id")
    async with AsyncSessionLocal() as session:
        await ConversationService(session).delete_message(cid, user_id, mid)
    return {"success": True, "message": "Message deleted"}


@router.post("/{chat_id}/messages/{message_id}/reactions")
async def add_reaction(chat_id: str, message_id: str, req: ReactionRequest, user_id: uuid.UUID = Depends(require_user_id)):
    cid, mid = parse_id(chat_id, "chat id"), parse_id(message_id, "message id")
    async with AsyncSessionLocal() as session:
        message = await ConversationService(session).add_reaction(cid, user_id, mid, req.emoji)
        return {"success": True, "data": list(message.reactions or [])}


@router.delete("/{chat_id}/messages/{message_id}/reactions")
async def remove_reaction(chat_id: str, message_id: str, user_id: uuid.UUID = Depends(require_user_id)):
    cid, mid = parse_id(chat_id, "chat id"), parse_id(message_id, "message id")
    async with AsyncSessionLocal() as session:
        message = await ConversationService(session).remove_reaction(cid, user_id, mid)
        return {"success": True, "data": list(message.reactions or [])}


@router.post("/{chat_id}/reset-pin")
async def reset_pin(chat_id: str, user_id: uuid.UUID = Depends(require_user_id)):
    cid = parse_id(chat_id, "chat id")
    async with AsyncSessionLocal() as session:
        new_pin = await ConversationService(session).reset_pin(cid, user_id)
    return {"success": True, "message": "PIN reset successfully", "data": {"new_pin": new_pin}}
