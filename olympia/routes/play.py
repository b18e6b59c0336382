"""
Olympia — Contestant routes

Buzzing, answering, keyword guesses, package picks and the star. The caller
is resolved to their seat from the bearer token; a contestant can only act
as themselves.
"""
from typing import Any, Dict, List, Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from olympia.config.settings import settings
from olympia.database import get_db
from olympia.errors import respond
from olympia.orm.match import MatchPlayer
from olympia.rbac import get_contestant
from olympia.services.answer_service import AnswerService
from olympia.services.buzzer_service import BuzzerService
from olympia.services.package_service import PackageService
from olympia.services.scoring_service import ScoringService

limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)

router = APIRouter(prefix="/olympia/matches/{match_id}/play", tags=["Olympia — Contestant"])


class BuzzRequest(BaseModel):
    kind: Literal["buzz", "trial"] = "buzz"


class AnswerRequest(BaseModel):
    text: str = Field(..., max_length=2000)


class PackageRequest(BaseModel):
    values: List[int] = Field(..., min_length=3, max_length=3)


class StarRequest(BaseModel):
    round_question_id: int
    enabled: bool


@router.post("/buzz")
@limiter.limit(settings.BUZZ_RATE_LIMIT)
async def buzz(
    request: Request,
    match_id: int,
    payload: BuzzRequest,
    db: AsyncSession = Depends(get_db),
    player: MatchPlayer = Depends(get_contestant),
) -> Dict[str, Any]:
    return respond(await BuzzerService.trigger_buzzer(db, match_id, player.id, payload.kind))


@router.post("/answer")
@limiter.limit(settings.ANSWER_RATE_LIMIT)
async def submit_answer(
    request: Request,
    match_id: int,
    payload: AnswerRequest,
    db: AsyncSession = Depends(get_db),
    player: MatchPlayer = Depends(get_contestant),
) -> Dict[str, Any]:
    return respond(await AnswerService.submit_answer(db, match_id, player.id, payload.text))


@router.post("/obstacle-guess")
@limiter.limit(settings.ANSWER_RATE_LIMIT)
async def submit_obstacle_guess(
    request: Request,
    match_id: int,
    payload: AnswerRequest,
    db: AsyncSession = Depends(get_db),
    player: MatchPlayer = Depends(get_contestant),
) -> Dict[str, Any]:
    return respond(await AnswerService.submit_obstacle_guess(db, match_id, player.id, payload.text))


@router.post("/package")
async def select_package(
    match_id: int,
    payload: PackageRequest,
    db: AsyncSession = Depends(get_db),
    player: MatchPlayer = Depends(get_contestant),
) -> Dict[str, Any]:
    return respond(await PackageService.select_package(db, match_id, player.id, payload.values))


@router.post("/star")
async def toggle_star(
    match_id: int,
    payload: StarRequest,
    db: AsyncSession = Depends(get_db),
    player: MatchPlayer = Depends(get_contestant),
) -> Dict[str, Any]:
    return respond(
        await ScoringService.toggle_star(db, match_id, payload.round_question_id, player.id, payload.enabled)
    )
