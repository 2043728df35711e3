"""Admin API endpoints for monitoring and repair."""
import hmac
import logging
from fastapi import APIRouter, Depends, HTTPException, Header
from sqlalchemy import select, func
from app.db.session import AsyncSessionLocal
from app.models import User, Interaction, Match, Conversation, Message
from app.models.conversation import ConsentState
from app.services.match_service import MatchService
from app.services.user_service import UserService
from app.utils.identifiers import parse_id
from app.core.config import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def verify_admin_token(x_admin_token: str = Header(None)):
    """Timing-safe token-based admin auth."""
    expected = settings.ADMIN_TOKEN
    if not expected or not x_admin_token:
        raise HTTPException(status_code=403, detail="Forbidden")
    if not hmac.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=403, detail="Forbidden")
    return True


@router.get("/stats")
async def admin_stats(auth: bool = Depends(verify_admin_token)):
    """Get overall matching and messaging statistics."""
    async with AsyncSessionLocal() as session:
        users_count = (await session.execute(select(func.count(User.id)))).scalar()
        active_interactions = (await session.execute(
            select(func.count(Interaction.id)).where(Interaction.is_active == True)
        )).scalar()
        active_matches = (await session.execute(
            select(func.count(Match.id)).where(Match.is_active == True)
        )).scalar()
        pending_requests = (await session.execute(
            select(func.count(Match.id)).where(Match.message_request_pending == True)
        )).scalar()
        conversations = (await session.execute(select(func.count(Conversation.id)))).scalar()
        approved = (await session.execute(
            select(func.count(Conversation.id)).where(
                Conversation.consent_state == ConsentState.APPROVED.value
            )
        )).scalar()
        messages = (await session.execute(
            select(func.count(Message.id)).where(Message.is_deleted == False)
        )).scalar()

    return {
        "users": users_count,
        "active_interactions": active_interactions,
        # Directed rows, two per matched pair
        "active_match_rows": active_matches,
        "pending_message_requests": pending_requests,
        "conversations": conversations,
        "approved_conversations": approved,
        "messages": messages,
    }


@router.post("/reconcile/{user_id}")
async def reconcile_user(user_id: str, auth: bool = Depends(verify_admin_token)):
    """Repair missing match rows for one user."""
    uid = parse_id(user_id, "user id")
    async with AsyncSessionLocal() as session:
        await UserService(session).require_user(uid)
        repaired = await MatchService(session).reconciliation_sweep(uid)
    logger.info(f"Admin reconciliation for {uid}: {repaired} pairs repaired")
    return {"user_id": str(uid), "repaired": repaired}
