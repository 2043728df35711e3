"""
Real-time fan-out over Redis pub/sub.

Delivery is at-most-once: publish failures are logged and swallowed, clients
that were offline catch up from the notifications table.
"""
import json
import logging
from typing import Any, Dict, Optional
import redis.asyncio as redis
from app.core.config import settings
from app.config.constants import CONVERSATION_CHANNEL_PREFIX, USER_CHANNEL_PREFIX

logger = logging.getLogger(__name__)


def conversation_channel(conversation_id) -> str:
    return f"{CONVERSATION_CHANNEL_PREFIX}:{conversation_id}"


def user_channel(user_id) -> str:
    return f"{USER_CHANNEL_PREFIX}:{user_id}"


class RealtimePublisher:
    def __init__(self, client: Optional[redis.Redis] = None, enabled: Optional[bool] = None):
        self.enabled = settings.REALTIME_ENABLED if enabled is None else enabled
        self._client = client

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(str(settings.REDIS_URL), decode_responses=True)
        return self._client

    async def publish(self, channel: str, event: str, payload: Dict[str, Any]) -> bool:
        if not self.enabled:
            return False
        try:
            body = json.dumps({"event": event, "data": payload}, default=str)
            await self.client.publish(channel, body)
            return True
        except Exception as e:
            logger.exception(f"Failed to publish {event} to {channel}: {e}")
            return False

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
