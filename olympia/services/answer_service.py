"""
Olympia — Answer Submission

Contestants submit free-text answers against the current question. Who may
answer depends on the round: personal opening questions belong to one seat,
locked questions to their target, and the finish-round steal window to the
steal winner (once). Speed-round answers are graded on arrival.
"""
import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from olympia.config.settings import settings
from olympia.core import clock
from olympia.core.results import ActionResult, service_action
from olympia.exceptions import NotFoundError, PreconditionError, ValidationError
from olympia.orm.answer import Answer, AnswerKind
from olympia.orm.buzzer import BuzzerEventType
from olympia.orm.live_session import QuestionState
from olympia.orm.match import RoundType
from olympia.realtime.event_bus import commit_and_publish, record_event
from olympia.services import live_context
from olympia.services.answer_matching import is_loose_match
from olympia.services.scoring_rules import Decision
from olympia.state_machines import question_state

logger = logging.getLogger(__name__)


def clean_answer_text(text: Optional[str]) -> str:
    cleaned = (text or "").strip()
    if not cleaned:
        raise ValidationError("The answer is empty.")
    if len(cleaned) > settings.ANSWER_MAX_LENGTH:
        raise ValidationError(f"Answers are limited to {settings.ANSWER_MAX_LENGTH} characters.")
    return cleaned


def answer_payload(answer: Answer) -> dict:
    return answer.as_payload(exclude={"created_at", "updated_at"})


class AnswerService:

    @staticmethod
    @service_action
    async def submit_answer(db: AsyncSession, match_id: int, player_id: int, text: str) -> ActionResult:
        """
        Store a contestant's answer to the current question.

        Returns:
            ActionResult with answer_id and response_time_ms (milliseconds
            since the question's buzzer epoch opened)
        """
        text = clean_answer_text(text)
        live_session = await live_context.get_running_session(db, match_id)
        question = await live_context.require_current_question(db, live_session)

        steal = live_context.is_steal_window(live_session)
        if not steal and live_session.question_state != QuestionState.SHOWING.value:
            raise PreconditionError("Answers are not being accepted right now.")
        now = clock.utcnow()
        if question_state.deadline_passed(live_session, now):
            raise PreconditionError("Time is up.")

        player = await live_context.get_player(db, match_id, player_id)
        obstacle = live_context.in_round(live_session, RoundType.OBSTACLE)
        if obstacle and player.is_disqualified_obstacle:
            raise PreconditionError("You are out of the obstacle round.")

        if live_context.in_round(live_session, RoundType.OPENING):
            seat = live_context.opening_personal_seat(question)
            if seat is not None and player.seat_index != seat:
                raise PreconditionError("This is another contestant's personal question.")

        if not obstacle and question.target_player_id is not None and question.target_player_id != player.id:
            if not steal:
                raise PreconditionError("This question is locked to another contestant.")
            steal_winner = await live_context.epoch_winner(db, question.id, BuzzerEventType.STEAL)
            if steal_winner is None or steal_winner.player_id != player.id:
                raise PreconditionError("Only the contestant who won the steal may answer.")
            result = await db.execute(
                select(func.count(Answer.id)).where(
                    Answer.round_question_id == question.id,
                    Answer.player_id == player.id,
                    Answer.kind == AnswerKind.ANSWER.value,
                )
            )
            if result.scalar():
                raise PreconditionError("Only one steal answer is accepted.")

        reset = await live_context.latest_reset(db, question.id)
        response_time_ms = clock.elapsed_ms(reset.occurred_at, now) if reset else None

        is_correct = None
        if live_context.in_round(live_session, RoundType.SPEED):
            is_correct = is_loose_match(text, question.answer_text)

        answer = Answer(
            match_id=match_id,
            round_question_id=question.id,
            player_id=player.id,
            kind=AnswerKind.ANSWER.value,
            answer_text=text,
            is_correct=is_correct,
            response_time_ms=response_time_ms,
            submitted_at=now,
        )
        db.add(answer)
        await db.flush()
        await record_event(
            db, match_id, "answers", "insert",
            entity_id=answer.id, payload=answer_payload(answer), session_id=live_session.id,
        )
        await commit_and_publish(db)
        return ActionResult.success(answer_id=answer.id, response_time_ms=response_time_ms)

    @staticmethod
    @service_action
    async def submit_obstacle_guess(db: AsyncSession, match_id: int, player_id: int, text: str) -> ActionResult:
        """
        Store a guess of the obstacle keyword.

        The guess hangs off the last question of the obstacle round and stays
        ungraded until the moderator confirms it.
        """
        text = clean_answer_text(text)
        live_session = await live_context.get_running_session(db, match_id)
        if not live_context.in_round(live_session, RoundType.OBSTACLE):
            raise PreconditionError("Keyword guesses are only accepted during the obstacle round.")

        player = await live_context.get_player(db, match_id, player_id)
        if player.is_disqualified_obstacle:
            raise PreconditionError("You are out of the obstacle round.")

        obstacle_round = await live_context.get_round(db, match_id, RoundType.OBSTACLE)
        questions = await live_context.list_round_questions(db, obstacle_round.id)
        if not questions:
            raise PreconditionError("The obstacle round has no questions.")

        guess = Answer(
            match_id=match_id,
            round_question_id=questions[-1].id,
            player_id=player.id,
            kind=AnswerKind.OBSTACLE_GUESS.value,
            answer_text=text,
            is_correct=None,
            submitted_at=clock.utcnow(),
        )
        db.add(guess)
        await db.flush()
        await record_event(
            db, match_id, "answers", "obstacle_guess",
            entity_id=guess.id, payload=answer_payload(guess), session_id=live_session.id,
        )
        await commit_and_publish(db)
        logger.info(f"Match {match_id}: player {player.id} guessed the obstacle keyword")
        return ActionResult.success(answer_id=guess.id)

    @staticmethod
    @service_action
    async def mark_answer_correctness(db: AsyncSession, match_id: int, answer_id: int, decision: str) -> ActionResult:
        """Flag an answer right or wrong without touching any score."""
        try:
            decision = Decision(decision)
        except ValueError:
            raise ValidationError(f"Unknown decision '{decision}'.")

        await live_context.lock_match_writes(db, match_id)
        result = await db.execute(
            select(Answer).where(Answer.id == answer_id, Answer.match_id == match_id)
        )
        answer = result.scalar_one_or_none()
        if answer is None:
            raise NotFoundError("Answer", answer_id)

        answer.is_correct = decision == Decision.CORRECT
        await db.flush()
        await record_event(db, match_id, "answers", "graded", entity_id=answer.id, payload=answer_payload(answer))
        await commit_and_publish(db)
        return ActionResult.success(answer_id=answer.id, is_correct=answer.is_correct)
