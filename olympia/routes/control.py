"""
Olympia — Host control routes

Round and question navigation, display state, timers, buzzer and overlay
toggles, guest media commands. Moderator only.
"""
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from olympia.database import get_db
from olympia.errors import respond
from olympia.rbac import Actor, require_moderator
from olympia.services.control_service import ControlService
from olympia.services.navigation_service import NavigationService

router = APIRouter(prefix="/olympia/matches/{match_id}/control", tags=["Olympia — Control"])


class RoundRequest(BaseModel):
    round_type: str


class QuestionStateRequest(BaseModel):
    state: str


class ToggleRequest(BaseModel):
    enabled: bool


class TimerRequest(BaseModel):
    duration_seconds: Optional[int] = Field(None, ge=1, le=120)


class SelectQuestionRequest(BaseModel):
    round_question_id: int


class AdvanceRequest(BaseModel):
    direction: Literal["next", "prev"] = "next"
    auto_show: bool = False


class TargetRequest(BaseModel):
    round_question_id: Optional[int] = None
    player_id: Optional[int] = None


class OverlayRequest(BaseModel):
    kind: Literal["scoreboard", "answers"]
    enabled: bool


class MediaRequest(BaseModel):
    media_type: Literal["audio", "video"]
    action: Literal["play", "pause", "restart", "stop"]
    src: Optional[str] = Field(None, max_length=1024)


class MediaClearRequest(BaseModel):
    media_type: Literal["audio", "video"]
    command_id: int


@router.post("/round")
async def set_round(
    match_id: int, request: RoundRequest,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(await ControlService.set_round(db, match_id, request.round_type))


@router.post("/question/select")
async def select_question(
    match_id: int, request: SelectQuestionRequest,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(await NavigationService.select_question(db, match_id, request.round_question_id))


@router.post("/question/advance")
async def advance_question(
    match_id: int, request: AdvanceRequest,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(await NavigationService.advance_question(db, match_id, request.direction, request.auto_show))


@router.post("/question/target")
async def set_target(
    match_id: int, request: TargetRequest,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(await NavigationService.set_target(db, match_id, request.round_question_id, request.player_id))


@router.post("/question/state")
async def set_question_state(
    match_id: int, request: QuestionStateRequest,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(await ControlService.set_question_state(db, match_id, request.state))


@router.post("/waiting-screen")
async def set_waiting_screen(
    match_id: int, request: ToggleRequest,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(await ControlService.set_waiting_screen(db, match_id, request.enabled))


@router.post("/turn/end")
async def end_opening_turn(
    match_id: int,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(await ControlService.end_opening_turn(db, match_id))


@router.post("/timer/start")
async def start_timer(
    match_id: int, request: TimerRequest,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(await ControlService.start_timer(db, match_id, request.duration_seconds))


@router.post("/timer/expire")
async def expire_timer(
    match_id: int,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(await ControlService.expire_timer(db, match_id))


@router.post("/steal-window")
async def open_steal_window(
    match_id: int, request: TimerRequest,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(await ControlService.open_steal_window(db, match_id, request.duration_seconds))


@router.post("/buzzer")
async def set_buzzer_enabled(
    match_id: int, request: ToggleRequest,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(await ControlService.set_buzzer_enabled(db, match_id, request.enabled))


@router.post("/overlay")
async def set_overlay(
    match_id: int, request: OverlayRequest,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(await ControlService.set_overlay(db, match_id, request.kind, request.enabled))


@router.post("/media")
async def send_media_command(
    match_id: int, request: MediaRequest,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(await ControlService.send_media_command(db, match_id, request.media_type, request.action, request.src))


@router.post("/media/clear")
async def clear_media_command(
    match_id: int, request: MediaClearRequest,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(await ControlService.clear_media_command(db, match_id, request.media_type, request.command_id))
