"""
Olympia — Scoring routes

Decisions, automatic speed grading, keyword confirmation, manual edits,
undo and resets. Moderator only, except the public scoreboard.
"""
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from olympia.database import get_db
from olympia.errors import respond
from olympia.rbac import Actor, require_moderator
from olympia.services.answer_service import AnswerService
from olympia.services.scoring_service import ScoringService

router = APIRouter(prefix="/olympia/matches/{match_id}/scoring", tags=["Olympia — Scoring"])

DecisionValue = Literal["correct", "wrong", "timeout"]


class DecisionRequest(BaseModel):
    player_id: int
    decision: DecisionValue


class BatchRequest(BaseModel):
    items: List[DecisionRequest] = Field(..., min_length=1, max_length=10)


class GuessDecisionRequest(BaseModel):
    decision: DecisionValue


class StarRequest(BaseModel):
    round_question_id: int
    player_id: int
    enabled: bool


class FinishValueRequest(BaseModel):
    round_question_id: int
    value: Literal[20, 30]
    player_id: Optional[int] = None


class AdjustRequest(BaseModel):
    player_id: int
    round_type: Literal["opening", "obstacle", "speed", "finish", "manual"]
    delta: int = Field(..., ge=-500, le=500)
    reason: str = Field(..., max_length=500)


class SetTotalRequest(BaseModel):
    player_id: int
    new_total: int = Field(..., ge=0)
    reason: str = Field(..., max_length=500)


@router.get("/scoreboard")
async def scoreboard(match_id: int, db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    return {"success": True, "data": {"players": await ScoringService.scoreboard(db, match_id)}}


@router.post("/decision")
async def record_decision(
    match_id: int, request: DecisionRequest,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(
        await ScoringService.record_decision(db, match_id, request.player_id, request.decision, actor.user_id)
    )


@router.post("/decisions")
async def record_decisions_batch(
    match_id: int, request: BatchRequest,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    items = [item.model_dump() for item in request.items]
    return respond(await ScoringService.record_decisions_batch(db, match_id, items, actor.user_id))


@router.post("/speed/auto")
async def auto_score_speed(
    match_id: int,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(await ScoringService.auto_score_speed(db, match_id, actor.user_id))


@router.post("/obstacle-guess/{answer_id}")
async def confirm_obstacle_guess(
    match_id: int, answer_id: int, request: GuessDecisionRequest,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(
        await ScoringService.confirm_obstacle_guess(db, match_id, answer_id, request.decision, actor.user_id)
    )


@router.post("/answers/{answer_id}/mark")
async def mark_answer(
    match_id: int, answer_id: int, request: GuessDecisionRequest,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(await AnswerService.mark_answer_correctness(db, match_id, answer_id, request.decision))


@router.post("/star")
async def toggle_star(
    match_id: int, request: StarRequest,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(
        await ScoringService.toggle_star(db, match_id, request.round_question_id, request.player_id, request.enabled)
    )


@router.post("/finish-value")
async def set_finish_value(
    match_id: int, request: FinishValueRequest,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(
        await ScoringService.set_finish_value(db, match_id, request.round_question_id, request.value, request.player_id)
    )


@router.post("/adjust")
async def manual_adjust(
    match_id: int, request: AdjustRequest,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(await ScoringService.manual_adjust(
        db, match_id, request.player_id, request.round_type, request.delta, request.reason, actor.user_id
    ))


@router.post("/total")
async def set_total(
    match_id: int, request: SetTotalRequest,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(await ScoringService.set_total(
        db, match_id, request.player_id, request.new_total, request.reason, actor.user_id
    ))


@router.post("/undo")
async def undo_last(
    match_id: int,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(await ScoringService.undo_last(db, match_id, actor.user_id))


@router.post("/reset")
async def reset_scores(
    match_id: int,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(await ScoringService.reset_scores(db, match_id))


@router.post("/reset-state")
async def reset_session_state(
    match_id: int,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(await ScoringService.reset_session_state(db, match_id))
