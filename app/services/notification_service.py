from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select, func
from app.models.notification import Notification, NotificationType
from typing import Any, Dict, List, Optional
import uuid
import logging

logger = logging.getLogger(__name__)


class NotificationService:
    """
    Durable notification sink. Writes in its own session so a failed
    notification never rolls back the operation that triggered it.
    """
    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        if session_factory is None:
            from app.db.session import AsyncSessionLocal
            session_factory = AsyncSessionLocal
        self.session_factory = session_factory

    async def notify(
        self,
        recipient_id: uuid.UUID,
        type: NotificationType,
        title: str,
        message: str,
        sender_id: Optional[uuid.UUID] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Optional[Notification]:
        try:
            async with self.session_factory() as session:
                notification = Notification(
                    recipient_id=recipient_id,
                    sender_id=sender_id,
                    type=NotificationType(type).value,
                    title=title,
                    message=message,
                    data={k: str(v) for k, v in (data or {}).items()},
                    is_read=False,
                )
                session.add(notification)
                await session.commit()
                return notification
        except Exception as e:
            logger.exception(f"Failed to create {type} notification for {recipient_id}: {e}")
            return None


async def list_notifications(session: AsyncSession, user_id: uuid.UUID, unread_only: bool = False) -> List[Notification]:
    stmt = select(Notification).where(Notification.recipient_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    stmt = stmt.order_by(Notification.created_at.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def count_unread(session: AsyncSession, user_id: uuid.UUID) -> int:
    stmt = select(func.count(Notification.id)).where(
        Notification.recipient_id == user_id, Notification.is_read.is_(False)
    )
    result = await session.execute(stmt)
    return result.scalar() or 0
