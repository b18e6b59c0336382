"""
Score ledger primitives.

``apply_round_delta`` is the only code path that mutates MatchScore. It is a
locked read-modify-write that clamps totals at zero and reports both the
requested and the applied delta. ``insert_score_change`` writes the audit row
inside a savepoint; a failed audit write is logged and never undoes the
ledger change.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from olympia.orm.scoring import LEDGER_ROUND_TYPES, MatchScore, ScoreChange
from olympia.services.scoring_rules import clamp_delta

logger = logging.getLogger(__name__)

MANUAL_ROUND = "manual"


@dataclass(frozen=True)
class LedgerResult:
    points_before: int
    points_after: int
    requested_delta: int
    applied_delta: int


async def _load_score_row(
    db: AsyncSession, match_id: int, player_id: int, round_type: str
) -> Optional[MatchScore]:
    result = await db.execute(
        select(MatchScore)
        .where(
            MatchScore.match_id == match_id,
            MatchScore.player_id == player_id,
            MatchScore.round_type == round_type,
        )
        .with_for_update()
    )
    return result.scalar_one_or_none()


async def apply_round_delta(
    db: AsyncSession, match_id: int, player_id: int, round_type: str, delta: int
) -> LedgerResult:
    """
    Apply ``delta`` to the (match, player, round_type) total.

    Returns:
        LedgerResult with the totals before and after and the applied delta,
        which differs from the requested one when the floor kicks in. Every
        row, the manual one included, floors at 0.
    """
    if round_type not in LEDGER_ROUND_TYPES:
        raise ValueError(f"Unknown ledger round type: {round_type}")

    row = await _load_score_row(db, match_id, player_id, round_type)
    if row is None:
        row = MatchScore(match_id=match_id, player_id=player_id, round_type=round_type, points=0)
        try:
            async with db.begin_nested():
                db.add(row)
        except IntegrityError:
            # Another writer created the row first.
            row = await _load_score_row(db, match_id, player_id, round_type)

    current = row.points or 0
    next_total, applied = clamp_delta(current, delta)
    row.points = next_total
    await db.flush()
    return LedgerResult(
        points_before=current,
        points_after=next_total,
        requested_delta=delta,
        applied_delta=applied,
    )


async def insert_score_change(
    db: AsyncSession,
    match_id: int,
    player_id: int,
    round_type: str,
    ledger: LedgerResult,
    source: str,
    reason: Optional[str] = None,
    created_by: Optional[str] = None,
    round_question_id: Optional[int] = None,
    answer_id: Optional[int] = None,
    revert_of: Optional[int] = None,
) -> Optional[ScoreChange]:
    """Best-effort audit insert. Returns None when the write fails."""
    change = ScoreChange(
        match_id=match_id,
        player_id=player_id,
        round_type=round_type,
        requested_delta=ledger.requested_delta,
        applied_delta=ledger.applied_delta,
        points_before=ledger.points_before,
        points_after=ledger.points_after,
        source=source,
        reason=reason,
        created_by=created_by,
        round_question_id=round_question_id,
        answer_id=answer_id,
        revert_of=revert_of,
    )
    try:
        async with db.begin_nested():
            db.add(change)
    except SQLAlchemyError as exc:
        logger.warning(
            f"Score audit insert failed for match {match_id} player {player_id} "
            f"({source}): {type(exc).__name__}: {exc}"
        )
        return None
    return change


async def player_total(db: AsyncSession, match_id: int, player_id: int) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(MatchScore.points), 0)).where(
            MatchScore.match_id == match_id, MatchScore.player_id == player_id
        )
    )
    return int(result.scalar() or 0)


async def match_totals(db: AsyncSession, match_id: int) -> Dict[int, int]:
    result = await db.execute(
        select(MatchScore.player_id, func.sum(MatchScore.points))
        .where(MatchScore.match_id == match_id)
        .group_by(MatchScore.player_id)
    )
    return {player_id: int(total or 0) for player_id, total in result.all()}


async def score_rows(db: AsyncSession, match_id: int) -> List[MatchScore]:
    result = await db.execute(
        select(MatchScore)
        .where(MatchScore.match_id == match_id)
        .order_by(MatchScore.player_id, MatchScore.round_type)
    )
    return list(result.scalars().all())


async def take_from_total(
    db: AsyncSession, match_id: int, player_id: int, amount: int
) -> List[Tuple[str, LedgerResult]]:
    """
    Remove ``amount`` points from a player's total without taking any row
    below zero.

    The manual row is drawn down first, then the rounds from the latest to
    the earliest. Rows already at zero are left alone.

    Returns:
        (round_type, LedgerResult) for every row that changed
    """
    result = await db.execute(
        select(MatchScore.round_type, MatchScore.points).where(
            MatchScore.match_id == match_id, MatchScore.player_id == player_id
        )
    )
    balances = {round_type: points for round_type, points in result.all()}
    applied: List[Tuple[str, LedgerResult]] = []
    remaining = amount
    for round_type in reversed(LEDGER_ROUND_TYPES):
        if remaining <= 0:
            break
        if balances.get(round_type, 0) <= 0:
            continue
        row_result = await apply_round_delta(
            db, match_id, player_id, round_type, -min(remaining, balances[round_type])
        )
        remaining += row_result.applied_delta
        applied.append((round_type, row_result))
    return applied
