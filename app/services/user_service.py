from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from app.models.user import User, UserStatus
from app.core.exceptions import NotFoundError
from app.utils.identifiers import id_in
from typing import Dict, List, Optional
import uuid
import logging

logger = logging.getLogger(__name__)


class UserService:
    """
    Directory adapter. Reads profiles and maintains only the follow/block lists;
    callers own the transaction.
    """
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user(self, user_id: uuid.UUID) -> Optional[User]:
        stmt = select(User).where(User.id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def require_user(self, user_id: uuid.UUID, active_only: bool = False) -> User:
        user = await self.get_user(user_id)
        if not user:
            raise NotFoundError("User not found")
        if active_only and not self.is_available(user):
            raise NotFoundError("User not found")
        return user

    async def get_users(self, user_ids: List[uuid.UUID]) -> Dict[str, User]:
        if not user_ids:
            return {}
        stmt = select(User).where(User.id.in_(user_ids))
        result = await self.session.execute(stmt)
        return {str(u.id): u for u in result.scalars().all()}

    async def get_active_user_ids(self) -> List[uuid.UUID]:
        stmt = select(User.id).where(
            User.is_active.is_(True),
            User.status == UserStatus.ACTIVE.value,
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    def is_available(user: User) -> bool:
        return bool(user.is_active) and user.status == UserStatus.ACTIVE.value

    # JSON columns are reassigned, never mutated in place, so the change is tracked

    @staticmethod
    def _add_id(values, user_id: uuid.UUID) -> List[str]:
        current = [str(v) for v in (values or [])]
        if str(user_id) not in current:
            current.append(str(user_id))
        return current

    @staticmethod
    def _remove_id(values, user_id: uuid.UUID) -> List[str]:
        return [str(v) for v in (values or []) if str(v) != str(user_id)]

    def add_block(self, user: User, target_id: uuid.UUID) -> bool:
        if id_in(target_id, user.blocked_users):
            return False
        user.blocked_users = self._add_id(user.blocked_users, target_id)
        return True

    def remove_block(self, user: User, target_id: uuid.UUID) -> bool:
        if not id_in(target_id, user.blocked_users):
            return False
        user.blocked_users = self._remove_id(user.blocked_users, target_id)
        return True

    def add_follow(self, follower: User, followee: User) -> bool:
        changed = not id_in(followee.id, follower.following)
        follower.following = self._add_id(follower.following, followee.id)
        followee.followers = self._add_id(followee.followers, follower.id)
        return changed

    def remove_follow(self, follower: User, followee: User) -> bool:
        changed = id_in(followee.id, follower.following)
        follower.following = self._remove_id(follower.following, followee.id)
        followee.followers = self._remove_id(followee.followers, follower.id)
        return changed

    @staticmethod
    def relationship(actor: User, target: User) -> Dict[str, bool]:
        return {
            "i_blocked": id_in(target.id, actor.blocked_users),
            "blocked_by_peer": id_in(actor.id, target.blocked_users),
        }
