"""
Olympia — WebSocket Viewer Endpoint

Read-only, server-authoritative feed of a match's change events.

URL: /api/olympia/ws/{match_id}?last_sequence={n}

A new viewer (last_sequence=0) gets a SNAPSHOT; a reconnecting viewer gets
every EVENT after the sequence it last saw. Live events follow. Events are
never sent twice to the same socket.
"""
import asyncio
import json
import logging
from typing import Any, Dict, Optional

from fastapi import Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession

from olympia.core import clock
from olympia.database import get_db
from olympia.exceptions import NotFoundError
from olympia.realtime.broadcast_adapter import match_channel, serialize_message
from olympia.realtime.event_bus import get_broadcast_adapter
from olympia.services import live_context, snapshot_service

logger = logging.getLogger(__name__)

ALLOWED_CLIENT_MESSAGES = {"PING", "REQUEST_STATE"}


class ViewerConnection:
    """One socket plus the highest event sequence it has been sent."""

    def __init__(self, websocket: WebSocket, db: AsyncSession, match_id: int, last_sequence: int = 0):
        self.websocket = websocket
        self.db = db
        self.match_id = match_id
        self.last_sequence = last_sequence
        self._send_lock = asyncio.Lock()

    async def send(self, message: Dict[str, Any]) -> None:
        async with self._send_lock:
            await self.websocket.send_text(serialize_message(message))

    async def send_event(self, event: Dict[str, Any]) -> None:
        sequence = event.get("event_sequence", 0)
        if sequence <= self.last_sequence:
            return
        self.last_sequence = sequence
        await self.send({"type": "EVENT", **event})

    async def _fresh_db(self) -> AsyncSession:
        # Drop the identity map so reads see other requests' commits.
        await self.db.rollback()
        self.db.expire_all()
        return self.db

    async def send_snapshot(self) -> None:
        db = await self._fresh_db()
        snapshot = await snapshot_service.build_snapshot(db, self.match_id)
        self.last_sequence = max(self.last_sequence, snapshot["last_sequence"])
        await self.send({"type": "SNAPSHOT", "data": snapshot})

    async def send_delta(self) -> None:
        db = await self._fresh_db()
        latest = await snapshot_service.last_sequence(db, self.match_id)
        events = await snapshot_service.events_after(db, self.match_id, self.last_sequence)
        if latest < self.last_sequence:
            # The viewer is ahead of the log; start it over from a snapshot.
            self.last_sequence = 0
            await self.send_snapshot()
            return
        for event in events:
            await self.send_event(event.to_message())


async def _pump(connection: ViewerConnection, ready: asyncio.Event) -> None:
    """Forward live events from the broadcast adapter to one viewer."""
    subscription = get_broadcast_adapter().subscribe(match_channel(connection.match_id))
    ready.set()
    try:
        async for message in subscription:
            await connection.send_event(message)
    finally:
        await subscription.aclose()


async def websocket_endpoint(
    websocket: WebSocket,
    match_id: int,
    last_sequence: int = Query(0),
    db: AsyncSession = Depends(get_db),
) -> None:
    """
    Allowed client messages:
    - {"type": "PING"}
    - {"type": "REQUEST_STATE"}

    Server messages:
    - {"type": "SNAPSHOT", "data": {...}}
    - {"type": "EVENT", "event_sequence": n, "event_hash": "...", ...}
    - {"type": "PONG", "timestamp": "..."}
    - {"type": "ERROR", "message": "..."}
    """
    try:
        await live_context.get_match(db, match_id)
    except NotFoundError:
        await websocket.close(code=1008, reason="Match not found")
        return

    await websocket.accept()
    connection = ViewerConnection(websocket, db, match_id, max(0, last_sequence))
    ready = asyncio.Event()
    pump: Optional[asyncio.Task] = asyncio.create_task(_pump(connection, ready))
    await ready.wait()

    try:
        if connection.last_sequence > 0:
            await connection.send_delta()
        else:
            await connection.send_snapshot()

        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await connection.send({"type": "ERROR", "message": "Invalid JSON"})
                continue

            msg_type = message.get("type") if isinstance(message, dict) else None
            if msg_type not in ALLOWED_CLIENT_MESSAGES:
                await connection.send({
                    "type": "ERROR",
                    "message": f"Invalid message type. Allowed: {sorted(ALLOWED_CLIENT_MESSAGES)}",
                })
                continue

            if msg_type == "PING":
                await connection.send({"type": "PONG", "timestamp": clock.utcnow().isoformat()})
            elif msg_type == "REQUEST_STATE":
                await connection.send_snapshot()
    except WebSocketDisconnect:
        logger.debug(f"Viewer left match {match_id}")
    finally:
        pump.cancel()
        try:
            await pump
        except asyncio.CancelledError:
            pass


__all__ = ["websocket_endpoint", "ViewerConnection"]
