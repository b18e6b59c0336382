"""
Olympia — Question Navigation & Targeting

Moves the current-question pointer and decides who must answer. Every move
opens a fresh buzzer epoch (a ``reset`` marker) and clears any stale target
lock on common questions.
"""
import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from olympia.core.results import ActionResult, service_action
from olympia.exceptions import PreconditionError, ValidationError
from olympia.orm.catalog import RoundQuestion
from olympia.orm.live_session import LiveSession
from olympia.orm.match import RoundType
from olympia.realtime.event_bus import commit_and_publish, record_event
from olympia.services import live_context
from olympia.services.question_codes import finish_slot_range
from olympia.state_machines import question_state

logger = logging.getLogger(__name__)

DIRECTIONS = ("next", "prev")


def _buzzer_round_question(round_type: str, question: RoundQuestion) -> bool:
    """Questions everyone may buzz on: opening common and any obstacle question."""
    if round_type == RoundType.OBSTACLE.value:
        return True
    return round_type == RoundType.OPENING.value and live_context.is_opening_common(question)


def _seat_boundary(current: Optional[RoundQuestion], candidate: RoundQuestion) -> bool:
    """
    True when moving from a personal opening question would hand the turn to
    someone else: another seat, a different target, or the common pool.
    """
    current_seat = live_context.opening_personal_seat(current)
    if current_seat is None:
        return False
    candidate_seat = live_context.opening_personal_seat(candidate)
    if candidate_seat is None:
        return True
    if candidate_seat != current_seat:
        return True
    return (
        current.target_player_id is not None
        and candidate.target_player_id is not None
        and current.target_player_id != candidate.target_player_id
    )


async def _announce(db: AsyncSession, live_session: LiveSession, event_type: str) -> None:
    await db.flush()
    await record_event(
        db, live_session.match_id, "live_sessions", event_type,
        entity_id=live_session.id, payload=live_session.snapshot(), session_id=live_session.id,
    )
    await commit_and_publish(db)


class NavigationService:

    @staticmethod
    @service_action
    async def select_question(db: AsyncSession, match_id: int, round_question_id: int) -> ActionResult:
        """Jump straight to a question and show it."""
        live_session = await live_context.get_running_session(db, match_id)
        question = await live_context.get_round_question(db, match_id, round_question_id, lock=True)
        round_type = (await live_context.round_type_of(db, question)).value

        buzz_question = _buzzer_round_question(round_type, question)
        if buzz_question:
            question.target_player_id = None

        question_state.point_at(
            live_session, question.match_round_id, round_type, question.id,
            show=True, buzzer_enabled=buzz_question,
        )
        await live_context.insert_reset(db, match_id, question.id)
        await _announce(db, live_session, "question_selected")
        return ActionResult.success(round_question_id=question.id, question_state=live_session.question_state)

    @staticmethod
    @service_action
    async def advance_question(
        db: AsyncSession, match_id: int, direction: str = "next", auto_show: bool = False
    ) -> ActionResult:
        """
        Step to the next or previous question of the current round.

        Opening-round rules:
        - stepping past a seat's last personal question, or onto another
          contestant's question, parks the display on the waiting screen and
          leaves the pointer where it is; the host selects who goes next
        - stepping past the end of the round stops on the waiting screen
        These stops win over ``auto_show``. Other rounds clamp at either end.

        Returns:
            ActionResult with round_question_id, auto_shown and boundary flags
        """
        if direction not in DIRECTIONS:
            raise ValidationError("Direction must be 'next' or 'prev'.")

        live_session = await live_context.get_running_session(db, match_id)
        if live_session.current_round_id is None:
            raise PreconditionError("Select a round first.")

        questions: List[RoundQuestion] = await live_context.list_round_questions(
            db, live_session.current_round_id
        )
        if not questions:
            raise PreconditionError("This round has no questions.")

        round_type = live_session.current_round_type
        is_opening = round_type == RoundType.OPENING.value
        current = await live_context.get_current_question(db, live_session)
        index = next((i for i, q in enumerate(questions) if current and q.id == current.id), None)

        if index is None:
            candidate = questions[0]
        elif direction == "next":
            if index + 1 < len(questions):
                candidate = questions[index + 1]
            elif is_opening and live_context.opening_personal_seat(current) is not None:
                question_state.wait(live_session)
                await _announce(db, live_session, "turn_finished")
                return ActionResult.success(
                    "This contestant has no more questions.",
                    round_question_id=current.id, auto_shown=False, seat_boundary=True, end_of_round=True,
                )
            else:
                candidate = questions[-1]
        else:
            candidate = questions[index - 1] if index > 0 else questions[0]

        if is_opening and direction == "next" and _seat_boundary(current, candidate):
            # The pointer stays put; the host picks the next contestant's question.
            question_state.wait(live_session)
            await _announce(db, live_session, "turn_finished")
            return ActionResult.success(
                "This contestant has no more questions.",
                round_question_id=current.id, auto_shown=False, seat_boundary=True, end_of_round=False,
            )

        changed = current is None or candidate.id != current.id
        end_of_round = is_opening and direction == "next" and not changed
        show = False if end_of_round else bool(auto_show)

        buzz_question = _buzzer_round_question(round_type, candidate)
        if buzz_question:
            candidate.target_player_id = None

        question_state.point_at(
            live_session, live_session.current_round_id, round_type, candidate.id,
            show=show, buzzer_enabled=show and buzz_question,
        )
        if changed:
            await live_context.insert_reset(db, match_id, candidate.id)

        await _announce(db, live_session, "question_advanced")
        return ActionResult.success(
            round_question_id=candidate.id,
            auto_shown=show,
            seat_boundary=False,
            end_of_round=end_of_round,
        )

    @staticmethod
    @service_action
    async def set_target(
        db: AsyncSession,
        match_id: int,
        round_question_id: Optional[int] = None,
        player_id: Optional[int] = None,
    ) -> ActionResult:
        """
        Lock a question to a player, or unlock it with ``player_id=None``.

        In the finish round, passing only a player targets all three of that
        player's package slots.
        """
        live_session = await live_context.lock_match_writes(db, match_id)
        player = await live_context.get_player(db, match_id, player_id) if player_id is not None else None

        if round_question_id is not None:
            question = await live_context.get_round_question(db, match_id, round_question_id, lock=True)
            question.target_player_id = player.id if player else None
            targeted = [question.id]
        else:
            if live_session is None or not live_context.in_round(live_session, RoundType.FINISH) or player is None:
                raise ValidationError("Choose a question to target.")
            finish_round = await live_context.get_round(db, match_id, RoundType.FINISH)
            slots = [
                q for q in await live_context.list_round_questions(db, finish_round.id)
                if q.order_index in finish_slot_range(player.seat_index)
            ]
            if len(slots) < 3:
                raise PreconditionError("This seat does not have three finish-round slots.")
            for slot in slots:
                slot.target_player_id = player.id
            targeted = [slot.id for slot in slots]

        await db.flush()
        await record_event(
            db, match_id, "round_questions", "target_set",
            payload={"round_question_ids": targeted, "target_player_id": player.id if player else None},
            session_id=live_session.id if live_session else None,
        )
        await commit_and_publish(db)
        return ActionResult.success(round_question_ids=targeted, target_player_id=player.id if player else None)
