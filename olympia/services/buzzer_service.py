"""
Olympia — Buzzer Arbitration

Exactly one winner per question epoch and signal type. The winner is the
earliest ``win`` row after the latest reset, ordered by (occurred_at, id);
a row that finds a winner already in place is stored as ``lose`` and never
overwrites it.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from olympia.config.settings import settings
from olympia.core import clock
from olympia.core.results import ActionResult, service_action
from olympia.exceptions import PreconditionError, ValidationError
from olympia.orm.buzzer import BuzzerEvent, BuzzerEventType, BuzzerResult
from olympia.orm.live_session import QuestionState
from olympia.orm.match import RoundType
from olympia.realtime.event_bus import commit_and_publish, record_event
from olympia.services import live_context
from olympia.state_machines import question_state

logger = logging.getLogger(__name__)

BUZZ_KINDS = ("buzz", "trial")


class BuzzerService:

    @staticmethod
    @service_action
    async def trigger_buzzer(db: AsyncSession, match_id: int, player_id: int, kind: str = "buzz") -> ActionResult:
        """
        Record a contestant's buzz.

        ``trial`` presses only test the hardware: they are broadcast but never
        stored and never compete. In the finish-round steal window a press
        is a ``steal``.

        Returns:
            ActionResult with event_type and won
        """
        if kind not in BUZZ_KINDS:
            raise ValidationError(f"Unknown buzzer kind '{kind}'.")

        live_session = await live_context.get_running_session(db, match_id)
        if not live_session.buzzer_enabled:
            raise PreconditionError("The buzzer is disabled.")
        player = await live_context.get_player(db, match_id, player_id)

        if kind == "trial":
            await record_event(
                db, match_id, "buzzer_events", BuzzerEventType.TRIAL.value,
                payload={"player_id": player.id, "seat_index": player.seat_index},
                session_id=live_session.id,
            )
            await commit_and_publish(db)
            return ActionResult.success(event_type=BuzzerEventType.TRIAL.value, won=False)

        question = await live_context.require_current_question(db, live_session)
        steal = live_context.is_steal_window(live_session)
        if not steal and live_session.question_state != QuestionState.SHOWING.value:
            raise PreconditionError("The question is not open for buzzing.")
        now = clock.utcnow()
        if steal and question_state.deadline_passed(live_session, now):
            raise PreconditionError("The steal window has closed.")

        obstacle = live_context.in_round(live_session, RoundType.OBSTACLE)
        if obstacle and player.is_disqualified_obstacle:
            raise PreconditionError("You are out of the obstacle round.")

        event_type = BuzzerEventType.STEAL if steal else BuzzerEventType.BUZZ
        reset = await live_context.latest_reset(db, question.id)
        winner = await live_context.epoch_winner(db, question.id, event_type, reset=reset, resolve_reset=False)

        personal_seat = None
        if live_context.in_round(live_session, RoundType.OPENING):
            personal_seat = live_context.opening_personal_seat(question)
        # A lock taken by this epoch's own winner still lets late presses in as losers.
        locked_by_winner = winner is not None and question.target_player_id == winner.player_id
        if (question.target_player_id is not None and not locked_by_winner) or personal_seat is not None:
            if not steal:
                raise PreconditionError("This question belongs to another contestant.")
            target_id = question.target_player_id
            if target_id is None:
                seat_player = await live_context.get_player_by_seat(db, match_id, personal_seat)
                target_id = seat_player.id if seat_player else None
            if target_id == player.id:
                raise PreconditionError("You cannot steal your own question.")

        if winner is not None and winner.player_id == player.id:
            return ActionResult.success("You already have the buzzer.", event_type=event_type.value, won=True)

        buzz = BuzzerEvent(
            match_id=match_id,
            round_question_id=question.id,
            player_id=player.id,
            event_type=event_type.value,
            result=(BuzzerResult.WIN if winner is None else BuzzerResult.LOSE).value,
            occurred_at=now,
        )
        db.add(buzz)
        await db.flush()

        first = await live_context.epoch_winner(db, question.id, event_type, reset=reset, resolve_reset=False)
        won = first is not None and first.id == buzz.id
        if not won:
            if buzz.result == BuzzerResult.WIN.value:
                buzz.result = BuzzerResult.LOSE.value
                logger.info(f"Match {match_id}: buzz by player {player.id} lost a race on question {question.id}")
        elif event_type == BuzzerEventType.STEAL:
            live_session.timer_deadline = clock.seconds_from_now(settings.STEAL_ANSWER_SECONDS)
            live_session.buzzer_enabled = False
        elif not obstacle:
            question.target_player_id = player.id

        await db.flush()
        await record_event(
            db, match_id, "buzzer_events", event_type.value,
            entity_id=buzz.id,
            payload={
                "player_id": player.id,
                "seat_index": player.seat_index,
                "round_question_id": question.id,
                "result": buzz.result,
                "occurred_at": buzz.occurred_at.isoformat(),
                "timer_deadline": live_session.timer_deadline.isoformat() if live_session.timer_deadline else None,
            },
            session_id=live_session.id,
        )
        await commit_and_publish(db)
        if not won:
            return ActionResult.success("Someone buzzed first.", event_type=event_type.value, won=False)
        return ActionResult.success(event_type=event_type.value, won=True, buzzer_event_id=buzz.id)
