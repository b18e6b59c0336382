"""
Olympia — Host Control Service

Round selection, display state, timers, presentation toggles and guest
media commands. Each operation is one named transition on the live session
and emits exactly one change notification.
"""
import logging
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from olympia.config.settings import settings
from olympia.core import clock
from olympia.core.results import ActionResult, service_action
from olympia.exceptions import PreconditionError, ValidationError
from olympia.orm.catalog import RoundQuestion
from olympia.orm.live_session import LiveSession, QuestionState
from olympia.orm.match import MatchPlayer, RoundType
from olympia.realtime.event_bus import commit_and_publish, record_event
from olympia.services import live_context
from olympia.state_machines import question_state

logger = logging.getLogger(__name__)

MEDIA_TYPES = ("audio", "video")
MEDIA_ACTIONS = ("play", "pause", "restart", "stop")
OVERLAY_FIELDS = {
    "scoreboard": "show_scoreboard_overlay",
    "answers": "show_answers_overlay",
}


async def _announce(db: AsyncSession, live_session: LiveSession, event_type: str) -> None:
    await db.flush()
    await record_event(
        db, live_session.match_id, "live_sessions", event_type,
        entity_id=live_session.id, payload=live_session.snapshot(), session_id=live_session.id,
    )
    await commit_and_publish(db)


def validate_duration(seconds: Optional[int]) -> Optional[int]:
    if seconds is None:
        return None
    if not settings.TIMER_MIN_SECONDS <= seconds <= settings.TIMER_MAX_SECONDS:
        raise ValidationError(
            f"Timer must be between {settings.TIMER_MIN_SECONDS} and {settings.TIMER_MAX_SECONDS} seconds."
        )
    return seconds


async def resolve_timer_seconds(db: AsyncSession, live_session: LiveSession, question: RoundQuestion) -> int:
    """
    Default countdown for the current question.

    - opening: fixed per round
    - obstacle: fixed per round
    - speed: by the question's position in the round
    - finish: by the question value (20 or 30)
    """
    round_type = live_session.current_round_type
    if round_type == RoundType.OPENING.value:
        return settings.OPENING_TIMER_SECONDS
    if round_type == RoundType.OBSTACLE.value:
        return settings.OBSTACLE_TIMER_SECONDS
    if round_type == RoundType.SPEED.value:
        questions = await live_context.list_round_questions(db, question.match_round_id)
        position = next((i for i, q in enumerate(questions) if q.id == question.id), None)
        if position is not None and position < len(settings.SPEED_TIMER_SECONDS):
            return settings.SPEED_TIMER_SECONDS[position]
        return settings.SPEED_DEFAULT_TIMER_SECONDS
    if round_type == RoundType.FINISH.value:
        if question.value == 30:
            return settings.FINISH_TIMER_SECONDS_30
        return settings.FINISH_TIMER_SECONDS_20
    return settings.OPENING_TIMER_SECONDS


class ControlService:

    @staticmethod
    @service_action
    async def set_round(db: AsyncSession, match_id: int, round_type: str) -> ActionResult:
        """
        Enter a round. Clears the question and timer, arms the buzzer for the
        opening and obstacle rounds and lifts every obstacle disqualification.
        """
        try:
            round_type = RoundType(round_type)
        except ValueError:
            raise ValidationError(f"Unknown round '{round_type}'.")

        live_session = await live_context.get_running_session(db, match_id)
        match_round = await live_context.get_round(db, match_id, round_type)
        question_state.enter_round(
            live_session, match_round.id, round_type.value,
            buzzer_enabled=round_type in (RoundType.OPENING, RoundType.OBSTACLE),
        )
        await db.execute(
            update(MatchPlayer)
            .where(MatchPlayer.match_id == match_id)
            .values(is_disqualified_obstacle=False)
        )
        await _announce(db, live_session, "round_changed")
        return ActionResult.success(round_type=round_type.value, round_id=match_round.id)

    @staticmethod
    @service_action
    async def set_question_state(db: AsyncSession, match_id: int, state: str) -> ActionResult:
        try:
            state = QuestionState(state)
        except ValueError:
            raise ValidationError(f"Unknown display state '{state}'.")

        live_session = await live_context.get_running_session(db, match_id)
        question_state.set_state(live_session, state)

        if state == QuestionState.SHOWING:
            question = await live_context.require_current_question(db, live_session)
            opening_common = (
                live_context.in_round(live_session, RoundType.OPENING)
                and live_context.is_opening_common(question)
            )
            if opening_common:
                question.target_player_id = None
            if opening_common or live_context.in_round(live_session, RoundType.OBSTACLE):
                live_session.buzzer_enabled = True
                await live_context.insert_reset(db, match_id, question.id)

        await _announce(db, live_session, "question_state")
        return ActionResult.success(question_state=live_session.question_state)

    @staticmethod
    @service_action
    async def set_waiting_screen(db: AsyncSession, match_id: int, enabled: bool) -> ActionResult:
        live_session = await live_context.get_running_session(db, match_id)
        if enabled:
            question_state.set_state(live_session, QuestionState.HIDDEN)
        else:
            question_state.set_state(live_session, QuestionState.SHOWING)
        await _announce(db, live_session, "waiting_screen")
        return ActionResult.success(question_state=live_session.question_state)

    @staticmethod
    @service_action
    async def end_opening_turn(db: AsyncSession, match_id: int) -> ActionResult:
        """Close a contestant's opening turn and park the display on the waiting screen."""
        live_session = await live_context.get_running_session(db, match_id)
        if not live_context.in_round(live_session, RoundType.OPENING):
            raise PreconditionError("Turns can only be ended in the opening round.")
        question_state.wait(live_session, clear_question=True)
        await _announce(db, live_session, "turn_ended")
        return ActionResult.success()

    @staticmethod
    @service_action
    async def start_timer(db: AsyncSession, match_id: int, duration_seconds: Optional[int] = None) -> ActionResult:
        """
        Start the countdown for the current question.

        Args:
            duration_seconds: Explicit duration (1-120 s); None picks the
                round default
        """
        duration_seconds = validate_duration(duration_seconds)
        live_session = await live_context.get_running_session(db, match_id)
        question = await live_context.require_current_question(db, live_session)
        if duration_seconds is None:
            duration_seconds = await resolve_timer_seconds(db, live_session, question)
        deadline = question_state.start_timer(live_session, duration_seconds)
        await _announce(db, live_session, "timer_started")
        return ActionResult.success(timer_deadline=deadline.isoformat(), duration_seconds=duration_seconds)

    @staticmethod
    @service_action
    async def expire_timer(db: AsyncSession, match_id: int) -> ActionResult:
        """
        Expire the countdown now.

        In the finish round the first expiry opens the steal window and the
        second one closes the question.
        """
        live_session = await live_context.get_running_session(db, match_id)
        await live_context.require_current_question(db, live_session)
        state = QuestionState(live_session.question_state)
        if state not in question_state.TIMER_STATES:
            raise PreconditionError("There is no running question to expire.")

        if live_context.in_round(live_session, RoundType.FINISH):
            if state == QuestionState.ANSWER_REVEALED:
                question_state.complete(live_session)
                event_type = "steal_window_closed"
            else:
                question_state.open_steal_window(live_session, settings.STEAL_BUZZ_SECONDS)
                event_type = "steal_window_opened"
        else:
            question_state.expire_timer(live_session)
            event_type = "timer_expired"

        await _announce(db, live_session, event_type)
        return ActionResult.success(question_state=live_session.question_state)

    @staticmethod
    @service_action
    async def open_steal_window(
        db: AsyncSession, match_id: int, duration_seconds: Optional[int] = None
    ) -> ActionResult:
        duration_seconds = validate_duration(duration_seconds) or settings.STEAL_BUZZ_SECONDS
        live_session = await live_context.get_running_session(db, match_id)
        if not live_context.in_round(live_session, RoundType.FINISH):
            raise PreconditionError("Stealing only exists in the finish round.")
        await live_context.require_current_question(db, live_session)
        deadline = question_state.open_steal_window(live_session, duration_seconds)
        await _announce(db, live_session, "steal_window_opened")
        return ActionResult.success(timer_deadline=deadline.isoformat())

    @staticmethod
    @service_action
    async def set_buzzer_enabled(db: AsyncSession, match_id: int, enabled: bool) -> ActionResult:
        live_session = await live_context.get_running_session(db, match_id)
        live_session.buzzer_enabled = bool(enabled)
        await _announce(db, live_session, "buzzer_toggled")
        return ActionResult.success(buzzer_enabled=live_session.buzzer_enabled)

    @staticmethod
    @service_action
    async def set_overlay(db: AsyncSession, match_id: int, kind: str, enabled: bool) -> ActionResult:
        field_name = OVERLAY_FIELDS.get(kind)
        if field_name is None:
            raise ValidationError(f"Unknown overlay '{kind}'.")
        live_session = await live_context.get_session(db, match_id)
        setattr(live_session, field_name, bool(enabled))
        await _announce(db, live_session, "overlay_toggled")
        return ActionResult.success(**{field_name: bool(enabled)})

    @staticmethod
    @service_action
    async def send_media_command(
        db: AsyncSession, match_id: int, media_type: str, action: str, src: Optional[str] = None
    ) -> ActionResult:
        """
        Issue a play/pause/restart/stop command to the guest display.

        Command ids increase by one per media channel so a display that sees
        the same envelope twice never replays it.
        """
        if media_type not in MEDIA_TYPES:
            raise ValidationError(f"Unknown media type '{media_type}'.")
        if action not in MEDIA_ACTIONS:
            raise ValidationError(f"Unknown media action '{action}'.")

        live_session = await live_context.get_running_session(db, match_id)
        control = dict(live_session.guest_media_control or {})
        previous = control.get(media_type) or {}
        command = {
            "commandId": int(previous.get("commandId") or 0) + 1,
            "action": action,
            "issuedAt": clock.utcnow().isoformat(),
        }
        if src:
            command["src"] = src
        control[media_type] = command
        control["version"] = 1
        live_session.guest_media_control = control
        await _announce(db, live_session, "media_command")
        return ActionResult.success(**command)

    @staticmethod
    @service_action
    async def clear_media_command(db: AsyncSession, match_id: int, media_type: str, command_id: int) -> ActionResult:
        """Acknowledge a handled command, leaving a tombstone that keeps its id."""
        if media_type not in MEDIA_TYPES:
            raise ValidationError(f"Unknown media type '{media_type}'.")
        live_session = await live_context.get_session(db, match_id)
        control = dict(live_session.guest_media_control or {})
        current = control.get(media_type) or {}
        if current.get("commandId") != command_id or set(current) == {"commandId"}:
            return ActionResult.success("Nothing to clear.", cleared=False)
        control[media_type] = {"commandId": command_id}
        live_session.guest_media_control = control
        await _announce(db, live_session, "media_cleared")
        return ActionResult.success(cleared=True)
