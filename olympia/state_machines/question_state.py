"""
Question display state machine.

    hidden -> showing -> {answer_revealed | completed} -> hidden

``answer_revealed`` doubles as the finish-round steal window. Every change to
the display fields of a LiveSession goes through one of the named
transitions below, which enforce:

- only the moves listed in ALLOWED_TRANSITIONS are accepted
- leaving ``showing`` for ``hidden`` always drops the timer
- revealing or completing requires a selected question
- showing a question turns both overlays off
"""
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from olympia.core import clock
from olympia.exceptions import PreconditionError
from olympia.orm.live_session import LiveSession, QuestionState


# Valid display transitions: {current_state: [allowed_next_states]}
ALLOWED_TRANSITIONS: Dict[QuestionState, List[QuestionState]] = {
    QuestionState.HIDDEN: [
        QuestionState.HIDDEN,
        QuestionState.SHOWING,
    ],
    QuestionState.SHOWING: [
        QuestionState.SHOWING,
        QuestionState.HIDDEN,
        QuestionState.ANSWER_REVEALED,
        QuestionState.COMPLETED,
    ],
    QuestionState.ANSWER_REVEALED: [
        QuestionState.ANSWER_REVEALED,
        QuestionState.SHOWING,
        QuestionState.HIDDEN,
        QuestionState.COMPLETED,
    ],
    QuestionState.COMPLETED: [
        QuestionState.COMPLETED,
        QuestionState.SHOWING,
        QuestionState.HIDDEN,
    ],
}

NEEDS_QUESTION = {QuestionState.SHOWING, QuestionState.ANSWER_REVEALED, QuestionState.COMPLETED}
TIMER_STATES = {QuestionState.SHOWING, QuestionState.ANSWER_REVEALED}


def can_transition(live_session: LiveSession, to_state: QuestionState) -> Tuple[bool, str]:
    """
    Check whether the display may move to ``to_state``.

    Returns:
        Tuple of (is_allowed, reason_message)
    """
    to_state = QuestionState(to_state)
    if to_state in NEEDS_QUESTION and live_session.current_round_question_id is None:
        return False, "No question is currently selected."
    current = QuestionState(live_session.question_state)
    if to_state not in ALLOWED_TRANSITIONS[current]:
        return False, f"The display cannot go from {current.value} to {to_state.value}."
    return True, "ok"


def ensure_transition(live_session: LiveSession, to_state: QuestionState) -> None:
    allowed, reason = can_transition(live_session, to_state)
    if not allowed:
        raise PreconditionError(reason)


def _move(live_session: LiveSession, to_state: QuestionState) -> None:
    ensure_transition(live_session, to_state)
    live_session.question_state = to_state.value


def set_state(live_session: LiveSession, to_state: QuestionState) -> None:
    """Moderator override of the display state. Always stops the timer."""
    _move(live_session, QuestionState(to_state))
    live_session.timer_deadline = None
    if to_state == QuestionState.SHOWING:
        hide_overlays(live_session)


def enter_round(live_session: LiveSession, round_id: int, round_type: str, buzzer_enabled: bool) -> None:
    live_session.current_round_id = round_id
    live_session.current_round_type = round_type
    live_session.current_round_question_id = None
    live_session.question_state = QuestionState.HIDDEN.value
    live_session.timer_deadline = None
    live_session.buzzer_enabled = buzzer_enabled


def point_at(
    live_session: LiveSession,
    round_id: int,
    round_type: str,
    question_id: int,
    show: bool,
    buzzer_enabled: bool,
) -> None:
    """Move the question pointer. The timer is never started here."""
    live_session.current_round_id = round_id
    live_session.current_round_type = round_type
    live_session.current_round_question_id = question_id
    live_session.question_state = (QuestionState.SHOWING if show else QuestionState.HIDDEN).value
    live_session.timer_deadline = None
    live_session.buzzer_enabled = buzzer_enabled
    if show:
        hide_overlays(live_session)


def wait(live_session: LiveSession, clear_question: bool = False) -> None:
    """Waiting screen: nothing on display, no timer, buzzer off."""
    if clear_question:
        live_session.current_round_question_id = None
    live_session.question_state = QuestionState.HIDDEN.value
    live_session.timer_deadline = None
    live_session.buzzer_enabled = False


def start_timer(live_session: LiveSession, seconds: int) -> datetime:
    state = QuestionState(live_session.question_state)
    if state not in TIMER_STATES:
        raise PreconditionError("The timer can only run while a question is showing.")
    now = clock.utcnow()
    if live_session.timer_deadline is not None and live_session.timer_deadline > now:
        raise PreconditionError("The timer is already running.")
    deadline = clock.seconds_from_now(seconds)
    live_session.timer_deadline = deadline
    return deadline


def expire_timer(live_session: LiveSession) -> None:
    live_session.timer_deadline = clock.seconds_from_now(-1)


def open_steal_window(live_session: LiveSession, seconds: int) -> datetime:
    _move(live_session, QuestionState.ANSWER_REVEALED)
    deadline = clock.seconds_from_now(seconds)
    live_session.timer_deadline = deadline
    live_session.buzzer_enabled = True
    return deadline


def complete(live_session: LiveSession) -> None:
    _move(live_session, QuestionState.COMPLETED)
    live_session.timer_deadline = None
    live_session.buzzer_enabled = False


def deadline_passed(live_session: LiveSession, now: Optional[datetime] = None) -> bool:
    if live_session.timer_deadline is None:
        return False
    return (now or clock.utcnow()) > live_session.timer_deadline


def hide_overlays(live_session: LiveSession) -> None:
    live_session.show_scoreboard_overlay = False
    live_session.show_answers_overlay = False


def reset_display(live_session: LiveSession) -> None:
    live_session.current_round_id = None
    live_session.current_round_type = None
    live_session.current_round_question_id = None
    live_session.question_state = QuestionState.HIDDEN.value
    live_session.timer_deadline = None
    live_session.buzzer_enabled = True
    hide_overlays(live_session)
    live_session.guest_media_control = {}
