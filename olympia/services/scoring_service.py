"""
Olympia — Scoring Service

Moderator decisions, speed-round grading, the obstacle keyword, the finish
round star and steal, manual corrections and undo.

Every score mutation goes through ``ledger.apply_round_delta`` (floored) and
leaves one ScoreChange audit row whose ``source`` names the code path:

- decision_confirmed       opening round decisions
- vcnv_row_confirm         obstacle row decisions
- vcnv_final_confirm       obstacle keyword award
- tang_toc_auto            speed round, graded by submission time
- tang_toc_batch           speed round, graded in moderator order
- ve_dich_main_confirm     finish round, primary contestant
- ve_dich_steal_confirm    finish round, stealer
- ve_dich_steal_transfer   finish round, points lost to a steal
- manual_adjust / manual   operator corrections
- undo                     reversal of an earlier change
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, distinct, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from olympia.config.settings import settings
from olympia.core import clock
from olympia.core.results import ActionResult, service_action
from olympia.exceptions import NotFoundError, PreconditionError, ValidationError
from olympia.orm.answer import Answer, AnswerKind
from olympia.orm.buzzer import BuzzerEvent, BuzzerEventType
from olympia.orm.catalog import RoundQuestion
from olympia.orm.live_session import LiveSession, QuestionState
from olympia.orm.match import MatchPlayer, RoundType
from olympia.orm.realtime_event import RealtimeEvent
from olympia.orm.scoring import LEDGER_ROUND_TYPES, MatchScore, ScoreChange, StarUse
from olympia.realtime.event_bus import commit_and_publish, next_sequence, record_event
from olympia.services import ledger, live_context
from olympia.services.package_service import clear_finish_slot
from olympia.services.question_codes import CodeVariant, parse_code
from olympia.services.scoring_rules import (
    Decision,
    RuleContext,
    ScoringVariant,
    apply_rule,
    final_guess_points,
    speed_awards,
    speed_batch_awards,
    steal_transfer,
)
from olympia.state_machines import question_state

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1)
FINISH_VALUES = (20, 30)


def parse_decision(decision: Any) -> Decision:
    try:
        return Decision(decision)
    except ValueError:
        raise ValidationError(f"Unknown decision '{decision}'.")


def validate_reason(reason: Optional[str]) -> str:
    cleaned = (reason or "").strip()
    if len(cleaned) < settings.REASON_MIN_LENGTH:
        raise ValidationError(f"Give a reason of at least {settings.REASON_MIN_LENGTH} characters.")
    return cleaned


async def _latest_answer(db: AsyncSession, round_question_id: int, player_id: int) -> Optional[Answer]:
    result = await db.execute(
        select(Answer)
        .where(
            Answer.round_question_id == round_question_id,
            Answer.player_id == player_id,
            Answer.kind == AnswerKind.ANSWER.value,
        )
        .order_by(Answer.submitted_at.desc(), Answer.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _latest_graded(db: AsyncSession, round_question_id: int, player_id: int) -> Optional[Answer]:
    answer = await _latest_answer(db, round_question_id, player_id)
    if answer is None or answer.is_correct is None:
        return None
    return answer


async def _record_outcome(
    db: AsyncSession, match_id: int, round_question_id: int, player_id: int, is_correct: bool, points: int
) -> Answer:
    """Grade the player's latest answer, or store an empty one for a spoken answer."""
    answer = await _latest_answer(db, round_question_id, player_id)
    if answer is None:
        answer = Answer(
            match_id=match_id,
            round_question_id=round_question_id,
            player_id=player_id,
            kind=AnswerKind.ANSWER.value,
            answer_text=None,
            submitted_at=clock.utcnow(),
        )
        db.add(answer)
    answer.is_correct = is_correct
    answer.points_awarded = points
    await db.flush()
    return answer


async def _score(
    db: AsyncSession,
    match_id: int,
    player_id: int,
    round_type: str,
    delta: int,
    source: str,
    created_by: Optional[str] = None,
    round_question_id: Optional[int] = None,
    answer_id: Optional[int] = None,
    reason: Optional[str] = None,
    revert_of: Optional[int] = None,
) -> ledger.LedgerResult:
    result = await ledger.apply_round_delta(db, match_id, player_id, round_type, delta)
    await ledger.insert_score_change(
        db, match_id, player_id, round_type, result, source,
        reason=reason, created_by=created_by,
        round_question_id=round_question_id, answer_id=answer_id, revert_of=revert_of,
    )
    return result


def _finish_value(question: RoundQuestion) -> int:
    if question.value not in FINISH_VALUES:
        raise PreconditionError("This finish question has no value yet.")
    return question.value


async def _star_for(db: AsyncSession, round_question_id: int, player_id: int) -> Optional[StarUse]:
    result = await db.execute(
        select(StarUse).where(StarUse.round_question_id == round_question_id, StarUse.player_id == player_id)
    )
    return result.scalar_one_or_none()


async def _announce_scores(
    db: AsyncSession, match_id: int, event_type: str, payload: Dict[str, Any], session_id: Optional[int] = None
) -> None:
    payload = dict(payload)
    payload["totals"] = {str(k): v for k, v in (await ledger.match_totals(db, match_id)).items()}
    await record_event(db, match_id, "match_scores", event_type, payload=payload, session_id=session_id)
    await commit_and_publish(db)


def _decision_result(result: ledger.LedgerResult, new_total: int, **extra: Any) -> ActionResult:
    return ActionResult.success(
        delta=result.applied_delta,
        requested_delta=result.requested_delta,
        round_total=result.points_after,
        new_total=new_total,
        **extra,
    )


async def _finish_primary(
    db: AsyncSession,
    live_session: LiveSession,
    question: RoundQuestion,
    player: MatchPlayer,
    decision: Decision,
    created_by: Optional[str],
) -> ActionResult:
    if question.target_player_id != player.id:
        raise PreconditionError("Only the contestant who owns this question can be scored.")
    if live_session.question_state == QuestionState.COMPLETED.value:
        raise PreconditionError("This question is already closed.")
    question_state.ensure_transition(
        live_session, QuestionState.COMPLETED if decision == Decision.CORRECT else QuestionState.ANSWER_REVEALED
    )

    value = _finish_value(question)
    star = await _star_for(db, question.id, player.id)
    star_active = star is not None and star.outcome is None
    outcome = apply_rule(
        ScoringVariant.FINISH_PRIMARY, RuleContext(decision=decision, value=value, star_active=star_active)
    )

    result = await ledger.apply_round_delta(db, live_session.match_id, player.id, RoundType.FINISH.value, outcome.delta)
    answer = await _record_outcome(
        db, live_session.match_id, question.id, player.id, decision == Decision.CORRECT, result.applied_delta
    )
    await ledger.insert_score_change(
        db, live_session.match_id, player.id, RoundType.FINISH.value, result, "ve_dich_main_confirm",
        created_by=created_by, round_question_id=question.id, answer_id=answer.id,
    )
    if star_active:
        star.outcome = outcome.star_outcome.value

    if decision == Decision.CORRECT:
        question_state.complete(live_session)
    else:
        question_state.open_steal_window(live_session, settings.STEAL_BUZZ_SECONDS)

    new_total = await ledger.player_total(db, live_session.match_id, player.id)
    await _announce_scores(
        db, live_session.match_id, "decision",
        {
            "player_id": player.id,
            "round_question_id": question.id,
            "delta": result.applied_delta,
            "star_outcome": star.outcome if star_active else None,
            "question_state": live_session.question_state,
            "timer_deadline": live_session.timer_deadline.isoformat() if live_session.timer_deadline else None,
        },
        session_id=live_session.id,
    )
    return _decision_result(
        result, new_total,
        star_outcome=star.outcome if star_active else None,
        steal_window=live_session.question_state == QuestionState.ANSWER_REVEALED.value,
    )


async def _finish_steal(
    db: AsyncSession,
    live_session: LiveSession,
    question: RoundQuestion,
    player: MatchPlayer,
    decision: Decision,
    created_by: Optional[str],
) -> ActionResult:
    match_id = live_session.match_id
    winner = await live_context.epoch_winner(db, question.id, BuzzerEventType.STEAL)
    if winner is None or winner.player_id != player.id:
        raise PreconditionError("Only the contestant who won the steal can be scored.")

    value = _finish_value(question)
    outcome = apply_rule(ScoringVariant.FINISH_STEAL, RuleContext(decision=decision, value=value))
    result = await ledger.apply_round_delta(db, match_id, player.id, RoundType.FINISH.value, outcome.delta)
    answer = await _record_outcome(
        db, match_id, question.id, player.id, decision == Decision.CORRECT, result.applied_delta
    )
    await ledger.insert_score_change(
        db, match_id, player.id, RoundType.FINISH.value, result, "ve_dich_steal_confirm",
        created_by=created_by, round_question_id=question.id, answer_id=answer.id,
    )

    transferred = 0
    if decision == Decision.CORRECT and question.target_player_id is not None:
        primary_star = await _star_for(db, question.id, question.target_player_id)
        # Only a star that was in play when the owner was scored shields them.
        transfer = steal_transfer(value, primary_star is not None and primary_star.outcome is not None)
        if transfer:
            primary = await _score(
                db, match_id, question.target_player_id, RoundType.FINISH.value, transfer,
                "ve_dich_steal_transfer", created_by=created_by, round_question_id=question.id,
            )
            transferred = primary.applied_delta

    question_state.complete(live_session)
    new_total = await ledger.player_total(db, match_id, player.id)
    await _announce_scores(
        db, match_id, "steal_decision",
        {
            "player_id": player.id,
            "round_question_id": question.id,
            "delta": result.applied_delta,
            "transferred": transferred,
            "question_state": live_session.question_state,
        },
        session_id=live_session.id,
    )
    return _decision_result(result, new_total, transferred=transferred)


class ScoringService:

    @staticmethod
    @service_action
    async def record_decision(
        db: AsyncSession, match_id: int, player_id: int, decision: str, created_by: Optional[str] = None
    ) -> ActionResult:
        """
        Score the current question for one contestant.

        Opening personal questions score only their seat's player; opening
        common questions only the buzz winner. Obstacle rows score anyone
        still in the round, and a wrong buzz winner is disqualified. Finish
        questions score their owner, and during the steal window the steal
        winner. Speed questions are graded with ``auto_score_speed`` or
        ``record_decisions_batch`` instead.

        Returns:
            ActionResult with delta (applied), requested_delta and new_total
        """
        decision = parse_decision(decision)
        live_session = await live_context.get_running_session(db, match_id)
        question = await live_context.require_current_question(db, live_session)
        round_type = live_session.current_round_type
        if round_type == RoundType.SPEED.value:
            raise PreconditionError("Speed questions are scored automatically or in a batch.")
        player = await live_context.get_player(db, match_id, player_id)

        if round_type == RoundType.FINISH.value:
            if live_context.is_steal_window(live_session):
                return await _finish_steal(db, live_session, question, player, decision, created_by)
            return await _finish_primary(db, live_session, question, player, decision, created_by)

        buzz_winner = await live_context.epoch_winner(db, question.id, BuzzerEventType.BUZZ)
        is_buzz_winner = buzz_winner is not None and buzz_winner.player_id == player.id

        if round_type == RoundType.OBSTACLE.value:
            if player.is_disqualified_obstacle:
                raise PreconditionError("This contestant is out of the obstacle round.")
            variant = ScoringVariant.OBSTACLE_ROW
            source = "vcnv_row_confirm"
        else:
            seat = live_context.opening_personal_seat(question)
            if seat is not None:
                seat_player = await live_context.get_player_by_seat(db, match_id, seat)
                if seat_player is None or seat_player.id != player.id:
                    raise PreconditionError("Only the contestant on this personal turn can be scored.")
                variant = ScoringVariant.OPENING_PERSONAL
            elif live_context.is_opening_common(question):
                if not is_buzz_winner:
                    raise PreconditionError("Only the contestant who won the buzz can be scored.")
                variant = ScoringVariant.OPENING_COMMON
            else:
                variant = ScoringVariant.OPENING_PERSONAL
            if question.target_player_id is not None and question.target_player_id != player.id:
                raise PreconditionError("This question is locked to another contestant.")
            source = "decision_confirmed"

        outcome = apply_rule(variant, RuleContext(decision=decision, is_buzz_winner=is_buzz_winner))
        result = await ledger.apply_round_delta(db, match_id, player.id, round_type, outcome.delta)
        answer = await _record_outcome(
            db, match_id, question.id, player.id, decision == Decision.CORRECT, result.applied_delta
        )
        await ledger.insert_score_change(
            db, match_id, player.id, round_type, result, source,
            created_by=created_by, round_question_id=question.id, answer_id=answer.id,
        )
        if outcome.disqualify:
            player.is_disqualified_obstacle = True
            logger.info(f"Match {match_id}: player {player.id} disqualified from the obstacle round")

        new_total = await ledger.player_total(db, match_id, player.id)
        await _announce_scores(
            db, match_id, "decision",
            {
                "player_id": player.id,
                "round_question_id": question.id,
                "delta": result.applied_delta,
                "disqualified": outcome.disqualify,
            },
            session_id=live_session.id,
        )
        return _decision_result(result, new_total, disqualified=outcome.disqualify)

    @staticmethod
    @service_action
    async def record_decisions_batch(
        db: AsyncSession, match_id: int, items: Sequence[Dict[str, Any]], created_by: Optional[str] = None
    ) -> ActionResult:
        """
        Score several contestants on the current question.

        In the speed round correct items take the awards in list order.
        Elsewhere each item is a normal decision; the batch stops at the
        first rejected item and earlier items stay applied.
        """
        if not items:
            raise ValidationError("The batch is empty.")
        if len(items) > settings.BATCH_MAX_ITEMS:
            raise ValidationError(f"A batch holds at most {settings.BATCH_MAX_ITEMS} decisions.")
        parsed = []
        for item in items:
            if not item or item.get("player_id") is None:
                raise ValidationError("Every batch item needs a player and a decision.")
            parsed.append((int(item["player_id"]), parse_decision(item.get("decision"))))

        live_session = await live_context.get_running_session(db, match_id)
        question = await live_context.require_current_question(db, live_session)

        if not live_context.in_round(live_session, RoundType.SPEED):
            applied = []
            for index, (player_id, decision) in enumerate(parsed):
                outcome = await ScoringService.record_decision(db, match_id, player_id, decision.value, created_by)
                if not outcome.ok:
                    return ActionResult.failure(
                        outcome.error_kind, f"Item {index + 1}: {outcome.message} ({len(applied)} applied)"
                    )
                applied.append({"player_id": player_id, **outcome.data})
            return ActionResult.success(results=applied)

        if len({player_id for player_id, _ in parsed}) != len(parsed):
            raise ValidationError("Each contestant may appear only once in a batch.")
        for player_id, _ in parsed:
            await live_context.get_player(db, match_id, player_id)

        results = []
        awards = speed_batch_awards(parsed, settings.SPEED_AWARDS)
        for (player_id, decision), (_, points) in zip(parsed, awards):
            result = await ledger.apply_round_delta(db, match_id, player_id, RoundType.SPEED.value, points)
            answer = await _record_outcome(
                db, match_id, question.id, player_id, decision == Decision.CORRECT, result.applied_delta
            )
            if points:
                await ledger.insert_score_change(
                    db, match_id, player_id, RoundType.SPEED.value, result, "tang_toc_batch",
                    created_by=created_by, round_question_id=question.id, answer_id=answer.id,
                )
            results.append({"player_id": player_id, "delta": result.applied_delta})

        await _announce_scores(
            db, match_id, "speed_batch",
            {"round_question_id": question.id, "results": results},
            session_id=live_session.id,
        )
        return ActionResult.success(results=results)

    @staticmethod
    @service_action
    async def auto_score_speed(db: AsyncSession, match_id: int, created_by: Optional[str] = None) -> ActionResult:
        """
        Award the speed round's current question by submission time.

        Each contestant's earliest correct answer competes; answers within
        the tie threshold of the previous one share its award.
        """
        live_session = await live_context.get_running_session(db, match_id)
        if not live_context.in_round(live_session, RoundType.SPEED):
            raise PreconditionError("Automatic grading only applies to the speed round.")
        question = await live_context.require_current_question(db, live_session)

        result = await db.execute(
            select(Answer)
            .where(
                Answer.round_question_id == question.id,
                Answer.kind == AnswerKind.ANSWER.value,
                Answer.is_correct.is_(True),
                Answer.player_id.isnot(None),
            )
            .order_by(Answer.submitted_at, Answer.id)
        )
        first_correct: Dict[int, Answer] = {}
        for answer in result.scalars().all():
            first_correct.setdefault(answer.player_id, answer)
        if any(answer.points_awarded is not None for answer in first_correct.values()):
            raise PreconditionError("This question has already been scored.")

        awards = speed_awards(
            [
                (player_id, (answer.submitted_at - EPOCH).total_seconds() * 1000)
                for player_id, answer in first_correct.items()
            ],
            settings.SPEED_AWARDS,
            settings.SPEED_TIE_THRESHOLD_MS,
        )

        results = []
        for player_id, answer in first_correct.items():
            applied = await _score(
                db, match_id, player_id, RoundType.SPEED.value, awards[player_id], "tang_toc_auto",
                created_by=created_by, round_question_id=question.id, answer_id=answer.id,
            )
            answer.points_awarded = applied.applied_delta
            results.append({"player_id": player_id, "delta": applied.applied_delta})

        await db.flush()
        await _announce_scores(
            db, match_id, "speed_auto",
            {"round_question_id": question.id, "results": results},
            session_id=live_session.id,
        )
        return ActionResult.success(results=results)

    @staticmethod
    @service_action
    async def confirm_obstacle_guess(
        db: AsyncSession, match_id: int, answer_id: int, decision: str, created_by: Optional[str] = None
    ) -> ActionResult:
        """
        Rule on an obstacle keyword guess.

        A wrong guess disqualifies the guesser. A correct guess is worth
        60 points minus 10 per row resolved before the guess, and reveals
        every tile nobody solved.
        """
        decision = parse_decision(decision)
        await live_context.lock_match_writes(db, match_id)
        result = await db.execute(
            select(Answer).where(
                Answer.id == answer_id,
                Answer.match_id == match_id,
                Answer.kind == AnswerKind.OBSTACLE_GUESS.value,
            )
        )
        guess = result.scalar_one_or_none()
        if guess is None:
            raise NotFoundError("Keyword guess", answer_id)
        if guess.is_correct is True:
            return ActionResult.success("This guess was already confirmed.", delta=0, revealed=[])

        player = await live_context.get_player(db, match_id, guess.player_id)
        if decision != Decision.CORRECT:
            guess.is_correct = False
            guess.points_awarded = 0
            player.is_disqualified_obstacle = True
            await db.flush()
            await _announce_scores(
                db, match_id, "obstacle_guess_rejected",
                {"player_id": player.id, "answer_id": guess.id, "disqualified": True},
            )
            return ActionResult.success(delta=0, disqualified=True, revealed=[])

        obstacle_round = await live_context.get_round(db, match_id, RoundType.OBSTACLE)
        questions = await live_context.list_round_questions(db, obstacle_round.id)
        codes = {q.id: parse_code(q.code) for q in questions}
        row_ids = [q.id for q in questions if codes[q.id] and codes[q.id].variant == CodeVariant.OBSTACLE_ROW]

        resolved_rows = 0
        if row_ids:
            result = await db.execute(
                select(func.count(distinct(Answer.round_question_id))).where(
                    Answer.round_question_id.in_(row_ids),
                    Answer.is_correct.isnot(None),
                    Answer.submitted_at <= guess.submitted_at,
                    Answer.id != guess.id,
                )
            )
            resolved_rows = int(result.scalar() or 0)

        points = final_guess_points(resolved_rows)
        applied = await _score(
            db, match_id, player.id, RoundType.OBSTACLE.value, points, "vcnv_final_confirm",
            created_by=created_by, round_question_id=guess.round_question_id, answer_id=guess.id,
        )
        guess.is_correct = True
        guess.points_awarded = applied.applied_delta

        tile_ids = [q.id for q in questions if codes[q.id] and codes[q.id].is_obstacle_tile]
        decided = set()
        if tile_ids:
            result = await db.execute(
                select(distinct(Answer.round_question_id)).where(
                    Answer.round_question_id.in_(tile_ids),
                    Answer.is_correct.isnot(None),
                    Answer.kind != AnswerKind.OBSTACLE_GUESS.value,
                )
            )
            decided = set(result.scalars().all())
        now = clock.utcnow()
        revealed = []
        for question in questions:
            if question.id in tile_ids and question.id not in decided:
                db.add(Answer(
                    match_id=match_id,
                    round_question_id=question.id,
                    player_id=None,
                    kind=AnswerKind.REVEAL.value,
                    answer_text=question.answer_text,
                    is_correct=True,
                    submitted_at=now,
                ))
                revealed.append(question.id)

        await db.flush()
        new_total = await ledger.player_total(db, match_id, player.id)
        await _announce_scores(
            db, match_id, "obstacle_solved",
            {"player_id": player.id, "answer_id": guess.id, "delta": applied.applied_delta, "revealed": revealed},
        )
        return ActionResult.success(
            delta=applied.applied_delta,
            resolved_rows=resolved_rows,
            revealed=revealed,
            new_total=new_total,
        )

    @staticmethod
    @service_action
    async def toggle_star(
        db: AsyncSession, match_id: int, round_question_id: int, player_id: int, enabled: bool
    ) -> ActionResult:
        """
        Declare or withdraw the finish-round star on one question.

        A player holds at most one star, on one of their own questions;
        declaring a new one moves it. The star is set while the question is
        still off screen. Once a star has been scored it can no longer move.
        """
        live_session = await live_context.get_session(db, match_id)
        question = await live_context.get_round_question(db, match_id, round_question_id)
        if await live_context.round_type_of(db, question) != RoundType.FINISH:
            raise PreconditionError("Stars can only be placed on finish-round questions.")
        player = await live_context.get_player(db, match_id, player_id)
        if question.target_player_id != player.id:
            raise PreconditionError("Stars can only be placed on your own questions.")

        result = await db.execute(
            select(StarUse).where(StarUse.match_id == match_id, StarUse.player_id == player.id)
        )
        stars = list(result.scalars().all())
        if any(star.outcome is not None for star in stars):
            raise PreconditionError("The star has already been used.")

        on_screen = (
            live_session.current_round_question_id == question.id
            and live_session.question_state != QuestionState.HIDDEN.value
        )
        if on_screen or await _latest_graded(db, question.id, player.id) is not None:
            raise PreconditionError("The star must be set before the question is shown.")

        current = next((star for star in stars if star.round_question_id == question.id), None)
        if enabled:
            if current is not None:
                return ActionResult.success(round_question_id=question.id, enabled=True)
            for star in stars:
                await db.delete(star)
            await db.flush()
            db.add(StarUse(
                match_id=match_id,
                round_question_id=question.id,
                player_id=player.id,
                declared_at=clock.utcnow(),
            ))
        elif current is not None:
            await db.delete(current)

        await db.flush()
        await record_event(
            db, match_id, "star_uses", "toggle",
            payload={"round_question_id": question.id, "player_id": player.id, "enabled": bool(enabled)},
        )
        await commit_and_publish(db)
        return ActionResult.success(round_question_id=question.id, enabled=bool(enabled))

    @staticmethod
    @service_action
    async def set_finish_value(
        db: AsyncSession, match_id: int, round_question_id: int, value: int, player_id: Optional[int] = None
    ) -> ActionResult:
        if value not in FINISH_VALUES:
            raise ValidationError("Finish questions are worth 20 or 30 points.")
        await live_context.lock_match_writes(db, match_id)
        question = await live_context.get_round_question(db, match_id, round_question_id, lock=True)
        if await live_context.round_type_of(db, question) != RoundType.FINISH:
            raise PreconditionError("Only finish-round questions carry a value.")
        if player_id is not None:
            player = await live_context.get_player(db, match_id, player_id)
            question.target_player_id = player.id
        question.value = value

        await db.flush()
        await record_event(
            db, match_id, "round_questions", "value_set",
            entity_id=question.id,
            payload={"value": value, "target_player_id": question.target_player_id},
        )
        await commit_and_publish(db)
        return ActionResult.success(round_question_id=question.id, value=value)

    @staticmethod
    @service_action
    async def manual_adjust(
        db: AsyncSession,
        match_id: int,
        player_id: int,
        round_type: str,
        delta: int,
        reason: str,
        created_by: Optional[str] = None,
    ) -> ActionResult:
        """Add or remove points on one round total (never below zero)."""
        if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
            raise ValidationError("The adjustment must be a non-zero whole number.")
        if abs(delta) > settings.MANUAL_ADJUST_LIMIT:
            raise ValidationError(f"Adjustments are limited to ±{settings.MANUAL_ADJUST_LIMIT} points.")
        if round_type not in LEDGER_ROUND_TYPES:
            raise ValidationError(f"Unknown round '{round_type}'.")
        reason = validate_reason(reason)
        await live_context.lock_match_writes(db, match_id)
        player = await live_context.get_player(db, match_id, player_id)

        result = await _score(
            db, match_id, player.id, round_type, delta, "manual_adjust",
            created_by=created_by, reason=reason,
        )
        new_total = await ledger.player_total(db, match_id, player.id)
        await _announce_scores(
            db, match_id, "manual_adjust",
            {"player_id": player.id, "round_type": round_type, "delta": result.applied_delta},
        )
        return _decision_result(result, new_total)

    @staticmethod
    @service_action
    async def set_total(
        db: AsyncSession,
        match_id: int,
        player_id: int,
        new_total: int,
        reason: str,
        created_by: Optional[str] = None,
    ) -> ActionResult:
        """
        Force a contestant's match total.

        A raise is booked on the ``manual`` row. A cut draws the manual row
        down first and then the round rows, latest round first, so no row
        drops below zero.
        """
        if isinstance(new_total, bool) or not isinstance(new_total, int) or new_total < 0:
            raise ValidationError("The total must be a whole number of at least 0.")
        reason = validate_reason(reason)
        await live_context.lock_match_writes(db, match_id)
        player = await live_context.get_player(db, match_id, player_id)

        current = await ledger.player_total(db, match_id, player.id)
        delta = new_total - current
        if delta == 0:
            return ActionResult.success("The total is unchanged.", delta=0, new_total=current)

        if delta > 0:
            changes = [(
                ledger.MANUAL_ROUND,
                await ledger.apply_round_delta(db, match_id, player.id, ledger.MANUAL_ROUND, delta),
            )]
        else:
            changes = await ledger.take_from_total(db, match_id, player.id, -delta)
        for round_type, result in changes:
            await ledger.insert_score_change(
                db, match_id, player.id, round_type, result, "manual",
                reason=reason, created_by=created_by,
            )

        applied = sum(result.applied_delta for _, result in changes)
        total = await ledger.player_total(db, match_id, player.id)
        await _announce_scores(
            db, match_id, "set_total", {"player_id": player.id, "delta": applied, "new_total": total}
        )
        return ActionResult.success(
            delta=applied,
            requested_delta=delta,
            new_total=total,
            rounds={round_type: result.points_after for round_type, result in changes},
        )

    @staticmethod
    @service_action
    async def undo_last(db: AsyncSession, match_id: int, created_by: Optional[str] = None) -> ActionResult:
        """Reverse the most recent score change that has not been reversed yet."""
        await live_context.lock_match_writes(db, match_id)
        result = await db.execute(
            select(ScoreChange)
            .where(
                ScoreChange.match_id == match_id,
                ScoreChange.reverted_at.is_(None),
                ScoreChange.revert_of.is_(None),
            )
            .order_by(ScoreChange.created_at.desc(), ScoreChange.id.desc())
            .limit(1)
            .with_for_update()
        )
        change = result.scalar_one_or_none()
        if change is None:
            raise PreconditionError("Nothing to undo.")

        reversal = await ledger.apply_round_delta(
            db, match_id, change.player_id, change.round_type, -change.applied_delta
        )
        change.reverted_at = clock.utcnow()
        change.reverted_by = created_by
        await ledger.insert_score_change(
            db, match_id, change.player_id, change.round_type, reversal, "undo",
            reason=f"undo #{change.id}", created_by=created_by,
            round_question_id=change.round_question_id, answer_id=change.answer_id, revert_of=change.id,
        )

        if change.answer_id is not None:
            try:
                async with db.begin_nested():
                    await db.execute(
                        update(Answer).where(Answer.id == change.answer_id).values(points_awarded=0)
                    )
            except SQLAlchemyError as exc:
                logger.warning(f"Undo of change {change.id} could not reset answer {change.answer_id}: {exc}")

        new_total = await ledger.player_total(db, match_id, change.player_id)
        await _announce_scores(
            db, match_id, "undo",
            {"player_id": change.player_id, "reverted_change_id": change.id, "delta": reversal.applied_delta},
        )
        return ActionResult.success(
            reverted_change_id=change.id,
            player_id=change.player_id,
            delta=reversal.applied_delta,
            new_total=new_total,
        )

    @staticmethod
    @service_action
    async def reset_scores(db: AsyncSession, match_id: int) -> ActionResult:
        await live_context.get_match(db, match_id)
        await live_context.lock_match_writes(db, match_id)
        await db.execute(update(MatchScore).where(MatchScore.match_id == match_id).values(points=0))
        await _announce_scores(db, match_id, "reset", {})
        return ActionResult.success("Scores reset.")

    @staticmethod
    @service_action
    async def reset_session_state(db: AsyncSession, match_id: int) -> ActionResult:
        """
        Wipe everything a rehearsal leaves behind: scores, audit, stars,
        buzzes, answers, the event log, finish packages and the display.
        """
        live_session = await live_context.get_session(db, match_id)
        question_state.reset_display(live_session)

        await db.execute(update(MatchScore).where(MatchScore.match_id == match_id).values(points=0))
        await db.execute(
            update(MatchPlayer).where(MatchPlayer.match_id == match_id).values(is_disqualified_obstacle=False)
        )
        # Viewers must keep seeing increasing sequences after the log is emptied.
        resume_sequence = await next_sequence(db, match_id)
        for model in (ScoreChange, StarUse, BuzzerEvent, Answer, RealtimeEvent):
            await db.execute(delete(model).where(model.match_id == match_id))

        finish_round = await live_context.get_round(db, match_id, RoundType.FINISH)
        for slot in await live_context.list_round_questions(db, finish_round.id):
            clear_finish_slot(slot)

        await db.flush()
        await record_event(
            db, match_id, "live_sessions", "reset",
            entity_id=live_session.id, payload=live_session.snapshot(), session_id=live_session.id,
            sequence=resume_sequence,
        )
        await commit_and_publish(db)
        logger.info(f"Match {match_id}: live state reset")
        return ActionResult.success("Live state reset.")

    @staticmethod
    async def scoreboard(db: AsyncSession, match_id: int) -> List[Dict[str, Any]]:
        """Per-player totals with their round breakdown, in seat order."""
        players = await live_context.list_players(db, match_id)
        rows = await ledger.score_rows(db, match_id)
        board = []
        for player in players:
            rounds = {row.round_type: row.points for row in rows if row.player_id == player.id}
            board.append({
                "player_id": player.id,
                "display_name": player.display_name,
                "seat_index": player.seat_index,
                "rounds": rounds,
                "total": sum(rounds.values()),
                "is_disqualified_obstacle": player.is_disqualified_obstacle,
            })
        return board
