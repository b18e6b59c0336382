"""
Broadcast Adapter Interface

Abstract base class for change-notification transports.
The database event log is the source of truth; adapters only deliver.
"""
import abc
import json
import hashlib
from typing import Dict, Any


REQUIRED_MESSAGE_FIELDS = ("event_sequence", "event_hash", "match_id")


def serialize_message(message: Dict[str, Any]) -> str:
    """Compact, key-sorted JSON so identical events serialize identically."""
    return json.dumps(message, sort_keys=True, separators=(',', ':'), default=str)


def compute_message_hash(message: Dict[str, Any]) -> str:
    """SHA256 hex digest of the serialized message."""
    return hashlib.sha256(serialize_message(message).encode()).hexdigest()


def match_channel(match_id: int) -> str:
    return f"match:{match_id}"


class BroadcastAdapter(abc.ABC):
    """
    Abstract base class for broadcast adapters.

    Guarantees:
    - Deterministic message serialization (sort_keys=True)
    - Idempotent delivery (event_sequence + event_hash)
    - Delivery-only (the event log in the database is authoritative)
    """

    @abc.abstractmethod
    async def publish(self, channel: str, message: Dict[str, Any]) -> None:
        """
        Publish message to channel.

        Args:
            channel: Channel name (e.g., "match:42")
            message: Message payload (must contain event_sequence and event_hash)
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def subscribe(self, channel: str):
        """
        Subscribe to channel and yield messages.

        Args:
            channel: Channel name to subscribe to
        Yields:
            Parsed message dict
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def close(self) -> None:
        """Close adapter connections."""
        raise NotImplementedError

    def _serialize_message(self, message: Dict[str, Any]) -> str:
        return serialize_message(message)

    def validate_message(self, message: Dict[str, Any]) -> bool:
        """
        Validate message has required fields for idempotency.

        Raises:
            ValueError: If required fields missing
        """
        missing = [f for f in REQUIRED_MESSAGE_FIELDS if f not in message]
        if missing:
            raise ValueError(f"Message missing required fields: {missing}")
        return True
