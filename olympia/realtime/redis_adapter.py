"""
Redis Broadcast Adapter

Redis Pub/Sub delivery for multi-worker deployments (gunicorn with several
Uvicorn workers). Redis is a transport only, never a source of truth.
"""
import json
import logging
from typing import Dict, Any, Optional

import redis.asyncio as aioredis

from olympia.config.settings import settings
from .broadcast_adapter import BroadcastAdapter

logger = logging.getLogger(__name__)


class RedisAdapter(BroadcastAdapter):

    def __init__(self, redis_url: str = "redis://localhost:6379/0"):
        self.redis_url = redis_url
        self._redis: Optional[aioredis.Redis] = None

    async def connect(self) -> None:
        """Establish Redis connection."""
        self._redis = aioredis.from_url(
            self.redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_keepalive=True,
            retry_on_timeout=True
        )
        await self._redis.ping()
        logger.info(f"Connected to Redis broadcast backend at {self.redis_url}")

    async def publish(self, channel: str, message: Dict[str, Any]) -> None:
        if not self._redis:
            await self.connect()

        self.validate_message(message)
        await self._redis.publish(channel, self._serialize_message(message))

    async def subscribe(self, channel: str):
        if not self._redis:
            await self.connect()

        # One pubsub per subscriber so websocket viewers do not share cursors.
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)

        try:
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    yield json.loads(message["data"])
                except json.JSONDecodeError:
                    logger.warning(f"Skipping corrupted message on {channel}")
                    continue
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None


async def create_broadcast_adapter(
    backend: Optional[str] = None,
    redis_url: Optional[str] = None,
) -> BroadcastAdapter:
    """
    Factory for the configured broadcast adapter.

    Args:
        backend: "redis" or "memory" (defaults to REALTIME_BACKEND)
        redis_url: Redis connection URL (defaults to REDIS_URL)
    Returns:
        Connected BroadcastAdapter instance
    """
    backend = (backend or settings.REALTIME_BACKEND).lower()
    if backend == "redis":
        adapter = RedisAdapter(redis_url or settings.REDIS_URL)
        await adapter.connect()
        return adapter

    from .in_memory_adapter import InMemoryAdapter
    return InMemoryAdapter()
