"""
In-Memory Broadcast Adapter

Single-process delivery over asyncio queues. Used in development, in tests
and whenever REALTIME_BACKEND=memory.
"""
import asyncio
import json
import logging
from typing import Dict, Any, Set

from .broadcast_adapter import BroadcastAdapter

logger = logging.getLogger(__name__)


class InMemoryAdapter(BroadcastAdapter):
    """Fan out each published message to every local subscriber queue."""

    def __init__(self, queue_size: int = 100):
        self._channels: Dict[str, Set[asyncio.Queue]] = {}
        self._lock = asyncio.Lock()
        self._queue_size = queue_size

    async def publish(self, channel: str, message: Dict[str, Any]) -> None:
        self.validate_message(message)
        serialized = self._serialize_message(message)

        async with self._lock:
            queues = list(self._channels.get(channel, ()))
        for queue in queues:
            try:
                queue.put_nowait(serialized)
            except asyncio.QueueFull:
                # Slow viewer: it recovers through the delta replay on reconnect.
                logger.warning(f"Dropping event {message['event_sequence']} for slow subscriber on {channel}")

    async def subscribe(self, channel: str):
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        async with self._lock:
            self._channels.setdefault(channel, set()).add(queue)

        try:
            while True:
                serialized = await queue.get()
                if serialized is None:
                    return
                yield json.loads(serialized)
        finally:
            async with self._lock:
                if channel in self._channels:
                    self._channels[channel].discard(queue)

    def subscriber_count(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    async def close(self) -> None:
        """Wake every subscriber with the shutdown sentinel."""
        async with self._lock:
            for queues in self._channels.values():
                for queue in queues:
                    try:
                        queue.put_nowait(None)
                    except asyncio.QueueFull:
                        logger.warning("Subscriber queue full during shutdown")
            self._channels.clear()
