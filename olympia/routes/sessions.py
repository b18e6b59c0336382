"""
Olympia — Live session routes

Room lifecycle for moderators, join checks for contestants and observers,
and the public read side (snapshot and event delta) for displays.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from olympia.database import get_db
from olympia.errors import NotFoundError, respond
from olympia.exceptions import NotFoundError as MissingError
from olympia.rbac import Actor, require_moderator
from olympia.services import snapshot_service
from olympia.services.session_service import SessionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/olympia", tags=["Olympia — Sessions"])


class JoinRequest(BaseModel):
    join_code: str = Field(..., min_length=1, max_length=20)
    password: Optional[str] = Field(None, max_length=64)


@router.post("/matches/{match_id}/session/open")
async def open_session(
    match_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    """Open or reopen the room. The plain passwords appear only in this response."""
    logger.info(f"Match {match_id}: room opened by {actor.user_id}")
    return respond(await SessionService.open_session(db, match_id))


@router.post("/matches/{match_id}/session/end")
async def end_session(
    match_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(await SessionService.end_session(db, match_id))


@router.post("/matches/{match_id}/session/passwords")
async def regenerate_passwords(
    match_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(await SessionService.regenerate_passwords(db, match_id))


@router.post("/join")
async def join_room(request: JoinRequest, db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    return respond(await SessionService.lookup_join_code(db, request.join_code, request.password))


@router.post("/observe")
async def observe_room(request: JoinRequest, db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    return respond(await SessionService.verify_observer_password(db, request.join_code, request.password or ""))


@router.get("/matches/{match_id}/state")
async def get_state(match_id: int, db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    """Viewer snapshot. Answers stay hidden until they are revealed on stage."""
    try:
        snapshot = await snapshot_service.build_snapshot(db, match_id)
    except MissingError as exc:
        raise NotFoundError(exc.message)
    return {"success": True, "data": snapshot}


@router.get("/matches/{match_id}/state/full")
async def get_full_state(
    match_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    """Moderator snapshot, including the expected answer and every submission."""
    try:
        snapshot = await snapshot_service.build_snapshot(db, match_id, include_answers=True)
    except MissingError as exc:
        raise NotFoundError(exc.message)
    return {"success": True, "data": snapshot}


@router.get("/matches/{match_id}/events")
async def get_events(
    match_id: int,
    after: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """Events with a sequence greater than ``after``, oldest first."""
    events = await snapshot_service.events_after(db, match_id, after)
    return {
        "success": True,
        "data": {
            "events": [event.to_message() for event in events],
            "last_sequence": await snapshot_service.last_sequence(db, match_id),
        },
    }
