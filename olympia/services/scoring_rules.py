"""
Per-round scoring rules.

Pure functions, one per round variant, selected through RULES. They never
touch the database: the scoring service resolves the context (decision,
value, star, buzz winner) and applies whatever delta the rule returns.
"""
import math
from dataclasses import dataclass
from enum import Enum as PyEnum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from olympia.orm.scoring import StarOutcome


class Decision(str, PyEnum):
    CORRECT = "correct"
    WRONG = "wrong"
    TIMEOUT = "timeout"


class ScoringVariant(str, PyEnum):
    OPENING_PERSONAL = "opening_personal"
    OPENING_COMMON = "opening_common"
    OBSTACLE_ROW = "obstacle_row"
    FINISH_PRIMARY = "finish_primary"
    FINISH_STEAL = "finish_steal"


@dataclass(frozen=True)
class RuleContext:
    decision: Decision
    value: int = 20
    star_active: bool = False
    is_buzz_winner: bool = False

    @property
    def correct(self) -> bool:
        return self.decision == Decision.CORRECT


@dataclass(frozen=True)
class RuleOutcome:
    delta: int
    disqualify: bool = False
    star_outcome: Optional[StarOutcome] = None


def opening_personal_rule(ctx: RuleContext) -> RuleOutcome:
    return RuleOutcome(delta=10 if ctx.correct else 0)


def opening_common_rule(ctx: RuleContext) -> RuleOutcome:
    return RuleOutcome(delta=10 if ctx.correct else -5)


def obstacle_row_rule(ctx: RuleContext) -> RuleOutcome:
    if ctx.correct:
        return RuleOutcome(delta=10)
    # A buzz winner who misses loses the right to play the rest of the round.
    return RuleOutcome(delta=0, disqualify=ctx.is_buzz_winner)


def finish_primary_rule(ctx: RuleContext) -> RuleOutcome:
    if ctx.star_active:
        if ctx.correct:
            return RuleOutcome(delta=ctx.value * 2, star_outcome=StarOutcome.APPLIED)
        return RuleOutcome(delta=-ctx.value, star_outcome=StarOutcome.WASTED)
    return RuleOutcome(delta=ctx.value if ctx.correct else 0)


def finish_steal_rule(ctx: RuleContext) -> RuleOutcome:
    if ctx.correct:
        return RuleOutcome(delta=ctx.value)
    return RuleOutcome(delta=-steal_penalty(ctx.value))


RULES: Dict[ScoringVariant, Callable[[RuleContext], RuleOutcome]] = {
    ScoringVariant.OPENING_PERSONAL: opening_personal_rule,
    ScoringVariant.OPENING_COMMON: opening_common_rule,
    ScoringVariant.OBSTACLE_ROW: obstacle_row_rule,
    ScoringVariant.FINISH_PRIMARY: finish_primary_rule,
    ScoringVariant.FINISH_STEAL: finish_steal_rule,
}


def apply_rule(variant: ScoringVariant, ctx: RuleContext) -> RuleOutcome:
    return RULES[variant](ctx)


def steal_penalty(value: int) -> int:
    """Half the question value, rounded up (20 -> 10, 30 -> 15)."""
    return int(math.ceil(value / 2))


def steal_transfer(value: int, primary_used_star: bool) -> int:
    """Points taken from the primary player when a steal succeeds."""
    return 0 if primary_used_star else -value


def final_guess_points(resolved_rows: float) -> int:
    """Obstacle keyword award: 60 minus 10 per row already resolved, never negative."""
    rows = math.floor(max(0, resolved_rows))
    return max(0, 60 - 10 * rows)


def clamp_delta(current: int, requested: int) -> Tuple[int, int]:
    """Return (next_total, applied_delta) keeping the total at or above zero."""
    next_total = max(0, current + requested)
    return next_total, next_total - current


def speed_awards(
    submissions: Sequence[Tuple[int, float]],
    awards: Sequence[int],
    threshold_ms: int,
) -> Dict[int, int]:
    """
    Rank speed-round submissions by time.

    Args:
        submissions: (player_id, submitted_at_ms) pairs, one per player
        awards: points by rank, e.g. [40, 30, 20, 10]
        threshold_ms: a submission within this many ms of the previous one
            shares that submission's award
    Returns:
        Mapping player_id -> points. Tied players still consume a rank slot.
    """
    ordered = sorted(enumerate(submissions), key=lambda item: (item[1][1], item[0]))
    result: Dict[int, int] = {}
    previous_ms: Optional[float] = None
    previous_award = 0
    for rank, (_, (player_id, submitted_ms)) in enumerate(ordered):
        if previous_ms is not None and submitted_ms - previous_ms <= threshold_ms:
            award = previous_award
        else:
            award = awards[rank] if rank < len(awards) else 0
        result[player_id] = award
        previous_ms = submitted_ms
        previous_award = award
    return result


def speed_batch_awards(decisions: Sequence[Tuple[int, Decision]], awards: Sequence[int]) -> List[Tuple[int, int]]:
    """
    Award speed-round points in the moderator-supplied order.

    Correct items take the next rank's award; wrong or timed-out items get 0
    and do not consume a rank.
    """
    rank = 0
    result: List[Tuple[int, int]] = []
    for player_id, decision in decisions:
        if decision == Decision.CORRECT:
            result.append((player_id, awards[rank] if rank < len(awards) else 0))
            rank += 1
        else:
            result.append((player_id, 0))
    return result
