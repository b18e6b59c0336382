"""
Change-notification bus.

Services record one RealtimeEvent per committed transition, inside the same
transaction as the mutation. After the commit succeeds the pending events
are published to ``match:{match_id}``. A rollback discards them, so viewers
never hear about changes that did not persist.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy import event, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from olympia.orm.live_session import LiveSession
from olympia.orm.realtime_event import RealtimeEvent
from olympia.realtime.broadcast_adapter import BroadcastAdapter, compute_message_hash, match_channel
from olympia.realtime.in_memory_adapter import InMemoryAdapter

logger = logging.getLogger(__name__)

PENDING_EVENTS_KEY = "olympia_pending_events"

_adapter: Optional[BroadcastAdapter] = None


def get_broadcast_adapter() -> BroadcastAdapter:
    global _adapter
    if _adapter is None:
        _adapter = InMemoryAdapter()
    return _adapter


def set_broadcast_adapter(adapter: Optional[BroadcastAdapter]) -> None:
    global _adapter
    _adapter = adapter


@event.listens_for(Session, "after_soft_rollback")
def _discard_pending_events(session: Session, previous_transaction) -> None:
    # Savepoint rollbacks keep the outer transaction and its events alive.
    if previous_transaction.parent is None:
        session.info.pop(PENDING_EVENTS_KEY, None)


async def next_sequence(db: AsyncSession, match_id: int) -> int:
    """Allocate the next event number while holding the match's session lock."""
    await db.execute(
        select(LiveSession.id).where(LiveSession.match_id == match_id).with_for_update()
    )
    result = await db.execute(
        select(func.max(RealtimeEvent.event_sequence)).where(RealtimeEvent.match_id == match_id)
    )
    return (result.scalar() or 0) + 1


async def record_event(
    db: AsyncSession,
    match_id: int,
    entity: str,
    event_type: str,
    entity_id: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None,
    session_id: Optional[int] = None,
    sequence: Optional[int] = None,
) -> RealtimeEvent:
    """
    Append a change event to the match's event log.

    Args:
        db: Session holding the mutation being announced
        match_id: Match scope of the event
        entity: Table name of the changed entity (e.g. "live_sessions")
        event_type: Change kind ("update", "insert", "buzz", ...)
        entity_id: Primary key of the changed row, if any
        payload: Flat JSON-safe payload
        session_id: Live session id, if any
        sequence: Explicit sequence, used when the log was just truncated
    Returns:
        The flushed RealtimeEvent
    """
    if sequence is None:
        sequence = await next_sequence(db, match_id)
    body = {
        "match_id": match_id,
        "session_id": session_id,
        "event_sequence": sequence,
        "entity": entity,
        "entity_id": entity_id,
        "event_type": event_type,
        "payload": payload or {},
    }
    realtime_event = RealtimeEvent(
        match_id=match_id,
        session_id=session_id,
        event_sequence=sequence,
        entity=entity,
        entity_id=entity_id,
        event_type=event_type,
        payload=payload or {},
        event_hash=compute_message_hash(body),
    )
    db.add(realtime_event)
    await db.flush()
    db.info.setdefault(PENDING_EVENTS_KEY, []).append(realtime_event.to_message())
    return realtime_event


async def publish_pending(db: AsyncSession) -> int:
    """Publish events recorded in the committed transaction. Returns how many were sent."""
    messages = db.info.pop(PENDING_EVENTS_KEY, [])
    adapter = get_broadcast_adapter()
    sent = 0
    for message in messages:
        try:
            await adapter.publish(match_channel(message["match_id"]), message)
            sent += 1
        except Exception as exc:
            # Viewers catch up from the event log on their next reconnect.
            logger.warning(
                f"Publish failed for match {message['match_id']} "
                f"event {message['event_sequence']}: {type(exc).__name__}: {exc}"
            )
    return sent


async def commit_and_publish(db: AsyncSession) -> None:
    await db.commit()
    await publish_pending(db)
