"""Arcade API: swipes, matches, blocks and follows."""
import logging
import uuid
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from app.db.session import AsyncSessionLocal
from app.api.deps import require_user_id
from app.models import Interaction, Match, User
from app.schemas.arcade import SwipeRequest, BlockRequest
from app.services.arcade_service import ArcadeService
from app.utils.identifiers import parse_id
from app.config.constants import (
    DEFAULT_POTENTIAL_MATCHES_LIMIT, MAX_POTENTIAL_MATCHES_LIMIT,
    DEFAULT_INTERACTIONS_PAGE_SIZE, MAX_INTERACTIONS_PAGE_SIZE, DEFAULT_ANALYTICS_PERIOD,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/arcade", tags=["arcade"])


def _iso(value):
    return value.isoformat() if value else None


def serialize_interaction(i: Interaction) -> dict:
    return {
        "id": str(i.id),
        "actor_id": str(i.actor_id),
        "target_id": str(i.target_id),
        "type": i.interaction_type,
        "context": i.context,
        "metadata": i.metadata_ or {},
        "is_active": i.is_active,
        "is_mutual": i.is_mutual,
        "mutual_at": _iso(i.mutual_at),
        "weight": i.weight,
        "created_at": _iso(i.created_at),
    }


def serialize_match(m: Match) -> dict:
    return {
        "id": str(m.id),
        "user": {
            "id": str(m.partner_id),
            "name": m.partner_name,
            "avatar": m.partner_avatar,
        },
        "matched_at": _iso(m.match_date),
        "match_score": m.match_score,
        "interaction_type": m.interaction_type,
        "unread_count": m.unread_count or 0,
        "chat_id": str(m.chat_id) if m.chat_id else None,
        "last_message": m.last_message,
        "last_message_date": _iso(m.last_message_date),
        "message_request_pending": m.message_request_pending,
        "message_request_from": str(m.message_request_from) if m.message_request_from else None,
        "messaging_approved": m.messaging_approved,
    }


def serialize_user(u: User) -> dict:
    return {"id": str(u.id), "username": u.username, "name": u.display_name, "avatar": u.avatar}


def _swipe_response(result: dict) -> dict:
    return {
        "success": True,
        "data": {
            "interaction": serialize_interaction(result["interaction"]),
            "is_match": result["is_match"],
        },
    }


# ========================
# Discovery & swipes
# ========================

@router.get("/matches/potential")
async def potential_matches(
    limit: int = Query(DEFAULT_POTENTIAL_MATCHES_LIMIT, ge=1, le=MAX_POTENTIAL_MATCHES_LIMIT),
    user_id: uuid.UUID = Depends(require_user_id),
):
    async with AsyncSessionLocal() as session:
        candidates = await ArcadeService(session).get_potential_matches(user_id, limit)
    return {"success": True, "data": candidates}


@router.post("/like/{target_id}")
async def like_user(target_id: str, req: Optional[SwipeRequest] = None, user_id: uuid.UUID = Depends(require_user_id)):
    target = parse_id(target_id, "user id")
    async with AsyncSessionLocal() as session:
        result = await ArcadeService(session).like(user_id, target, req.metadata if req else None)
        return _swipe_response(result)


@router.post("/super-like/{target_id}")
async def superlike_user(target_id: str, req: Optional[SwipeRequest] = None, user_id: uuid.UUID = Depends(require_user_id)):
    target = parse_id(target_id, "user id")
    async with AsyncSessionLocal() as session:
        result = await ArcadeService(session).superlike(user_id, target, req.metadata if req else None)
        return _swipe_response(result)


@router.post("/dislike/{target_id}")
async def dislike_user(target_id: str, req: Optional[SwipeRequest] = None, user_id: uuid.UUID = Depends(require_user_id)):
    target = parse_id(target_id, "user id")
    async with AsyncSessionLocal() as session:
        result = await ArcadeService(session).dislike(user_id, target, req.metadata if req else None)
        return _swipe_response(result)


@router.post("/pass/{target_id}")
async def pass_user(target_id: str, req: Optional[SwipeRequest] = None, user_id: uuid.UUID = Depends(require_user_id)):
    target = parse_id(target_id, "user id")
    async with AsyncSessionLocal() as session:
        result = await ArcadeService(session).pass_user(user_id, target, req.metadata if req else None)
        return _swipe_response(result)


@router.post("/swipes/reset")
async def reset_swipes(user_id: uuid.UUID = Depends(require_user_id)):
    async with AsyncSessionLocal() as session:
        modified = await ArcadeService(session).reset_swipe_history(user_id)
    return {"success": True, "message": "Swipe history reset", "data": {"modified": modified}}


# ========================
# Matches
# ========================

@router.get("/matches")
async def get_matches(user_id: uuid.UUID = Depends(require_user_id)):
    async with AsyncSessionLocal() as session:
        matches = await ArcadeService(session).get_matches(user_id)
        return {"success": True, "data": [serialize_match(m) for m in matches]}


@router.post("/matches/remove/{target_id}")
async def remove_match(target_id: str, user_id: uuid.UUID = Depends(require_user_id)):
    target = parse_id(target_id, "user id")
    async with AsyncSessionLocal() as session:
        await ArcadeService(session).remove_match(user_id, target)
    return {
        "success": True,
        "message": "Unfriended successfully. Chat history cleared and future messages will require a new request.",
    }


# ========================
# History & stats
# ========================

@router.get("/interactions")
async def interaction_history(
    direction: str = Query("both", pattern="^(both|incoming|outgoing)$"),
    type: Optional[List[str]] = Query(None),
    context: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_INTERACTIONS_PAGE_SIZE, ge=1, le=MAX_INTERACTIONS_PAGE_SIZE),
    include_inactive: bool = False,
    user_id: uuid.UUID = Depends(require_user_id),
):
    async with AsyncSessionLocal() as session:
        result = await ArcadeService(session).get_interaction_history(
            user_id,
            direction=direction,
            types=type,
            context=context,
            page=page,
            limit=limit,
            include_inactive=include_inactive,
        )
        return {
            "success": True,
            "data": {
                "interactions": [serialize_interaction(i) for i in result["interactions"]],
                "pagination": result["pagination"],
            },
        }


@router.get("/stats")
async def get_stats(user_id: uuid.UUID = Depends(require_user_id)):
    async with AsyncSessionLocal() as session:
        stats = await ArcadeService(session).get_stats(user_id)
    return {"success": True, "data": stats}


@router.get("/analytics")
async def get_analytics(period: str = DEFAULT_ANALYTICS_PERIOD, user_id: uuid.UUID = Depends(require_user_id)):
    async with AsyncSessionLocal() as session:
        analytics = await ArcadeService(session).get_analytics(user_id, period)
    return {"success": True, "data": analytics}


# ========================
# Block / follow
# ========================

@router.post("/block/{target_id}")
async def block_user(target_id: str, req: Optional[BlockRequest] = None, user_id: uuid.UUID = Depends(require_user_id)):
    target = parse_id(target_id, "user id")
    async with AsyncSessionLocal() as session:
        await ArcadeService(session).block(user_id, target, req.reason if req else None)
    return {"success": True, "message": "User blocked successfully"}


@router.post("/unblock/{target_id}")
async def unblock_user(target_id: str, user_id: uuid.UUID = Depends(require_user_id)):
    target = parse_id(target_id, "user id")
    async with AsyncSessionLocal() as session:
        await ArcadeService(session).unblock(user_id, target)
    return {"success": True, "message": "User unblocked successfully"}


@router.get("/blocked")
async def blocked_users(user_id: uuid.UUID = Depends(require_user_id)):
    async with AsyncSessionLocal() as session:
        users = await ArcadeService(session).get_blocked_users(user_id)
        return {"success": True, "data": [serialize_user(u) for u in users]}


@router.post("/follow/{target_id}")
async def follow_user(target_id: str, user_id: uuid.UUID = Depends(require_user_id)):
    target = parse_id(target_id, "user id")
    async with AsyncSessionLocal() as session:
        record = await ArcadeService(session).follow(user_id, target)
        return {"success": True, "data": serialize_interaction(record)}


@router.post("/unfollow/{target_id}")
async def unfollow_user(target_id: str, user_id: uuid.UUID = Depends(require_user_id)):
    target = parse_id(target_id, "user id")
    async with AsyncSessionLocal() as session:
        await ArcadeService(session).unfollow(user_id, target)
    return {"success": True, "message": "User unfollowed successfully"}


@router.get("/relationship/{target_id}")
async def relationship(target_id: str, user_id: uuid.UUID = Depends(require_user_id)):
    target = parse_id(target_id, "user id")
    async with AsyncSessionLocal() as session:
        data = await ArcadeService(session).relationship(user_id, target)
    return {"success": True, "data": data}
