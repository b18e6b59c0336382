"""
Olympia — Catalog and finish package routes (moderator)
"""
from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from olympia.database import get_db
from olympia.errors import respond
from olympia.rbac import Actor, require_moderator
from olympia.services.catalog_service import CatalogService
from olympia.services.package_service import PackageService

router = APIRouter(prefix="/olympia/matches/{match_id}", tags=["Olympia — Catalog"])


class QuestionSetsRequest(BaseModel):
    question_set_ids: List[int] = Field(..., min_length=1)


class PackageRequest(BaseModel):
    player_id: int
    values: List[int] = Field(..., min_length=3, max_length=3)


@router.post("/question-sets")
async def assign_question_sets(
    match_id: int, request: QuestionSetsRequest,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    """Link question sets and rebuild the match's round questions."""
    return respond(await CatalogService.assign_question_sets(db, match_id, request.question_set_ids))


@router.post("/packages")
async def select_package(
    match_id: int, request: PackageRequest,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    """Pick a finish package on behalf of a contestant."""
    return respond(await PackageService.select_package(db, match_id, request.player_id, request.values))


@router.post("/packages/reset")
async def reset_all_packages(
    match_id: int,
    db: AsyncSession = Depends(get_db), actor: Actor = Depends(require_moderator),
) -> Dict[str, Any]:
    return respond(await PackageService.reset_all_packages(db, match_id))
