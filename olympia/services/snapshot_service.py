"""
Read models for displays: the full state of a match in one document.

Viewers load a snapshot once, then apply change events whose
``event_sequence`` is greater than the snapshot's ``last_sequence``.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from olympia.orm.answer import Answer
from olympia.orm.buzzer import BuzzerEventType
from olympia.orm.catalog import RoundQuestion
from olympia.orm.live_session import LiveSession, QuestionState
from olympia.orm.realtime_event import RealtimeEvent
from olympia.orm.scoring import StarUse
from olympia.services import live_context
from olympia.services.scoring_service import ScoringService

REVEALED_STATES = (QuestionState.ANSWER_REVEALED.value, QuestionState.COMPLETED.value)


async def last_sequence(db: AsyncSession, match_id: int) -> int:
    result = await db.execute(
        select(func.max(RealtimeEvent.event_sequence)).where(RealtimeEvent.match_id == match_id)
    )
    return int(result.scalar() or 0)


async def events_after(db: AsyncSession, match_id: int, sequence: int) -> List[RealtimeEvent]:
    result = await db.execute(
        select(RealtimeEvent)
        .where(RealtimeEvent.match_id == match_id, RealtimeEvent.event_sequence > sequence)
        .order_by(RealtimeEvent.event_sequence)
    )
    return list(result.scalars().all())


def question_view(question: RoundQuestion, reveal_answer: bool) -> Dict[str, Any]:
    view = {
        "id": question.id,
        "match_round_id": question.match_round_id,
        "order_index": question.order_index,
        "code": question.code,
        "question_text": question.question_text,
        "media_url": question.media_url,
        "target_player_id": question.target_player_id,
        "value": question.value,
    }
    if reveal_answer:
        view["answer_text"] = question.answer_text
        view["note"] = question.note
    return view


async def _buzzer_view(db: AsyncSession, question: RoundQuestion) -> Dict[str, Any]:
    reset = await live_context.latest_reset(db, question.id)
    winners = {}
    for event_type in (BuzzerEventType.BUZZ, BuzzerEventType.STEAL):
        winner = await live_context.epoch_winner(db, question.id, event_type, reset=reset, resolve_reset=False)
        winners[event_type.value] = winner.player_id if winner else None
    return {
        "epoch_started_at": reset.occurred_at.isoformat() if reset else None,
        "epoch_reset_id": reset.id if reset else None,
        "winner": winners[BuzzerEventType.BUZZ.value],
        "steal_winner": winners[BuzzerEventType.STEAL.value],
    }


async def build_snapshot(db: AsyncSession, match_id: int, include_answers: bool = False) -> Dict[str, Any]:
    """
    Full display state of a match.

    The current question's answer is included once it has been revealed,
    or always when ``include_answers`` is set (moderator views).
    """
    match = await live_context.get_match(db, match_id)
    result = await db.execute(select(LiveSession).where(LiveSession.match_id == match_id))
    live_session: Optional[LiveSession] = result.scalar_one_or_none()

    snapshot: Dict[str, Any] = {
        "match": match.as_payload(exclude={"created_at", "updated_at"}),
        "session": live_session.snapshot() if live_session else None,
        "scoreboard": await ScoringService.scoreboard(db, match_id),
        "current_question": None,
        "buzzer": None,
        "answers": [],
        "stars": [],
        "last_sequence": await last_sequence(db, match_id),
    }

    question = await live_context.get_current_question(db, live_session) if live_session else None
    if question is not None:
        reveal = include_answers or live_session.question_state in REVEALED_STATES
        snapshot["current_question"] = question_view(question, reveal)
        snapshot["buzzer"] = await _buzzer_view(db, question)
        if include_answers or live_session.show_answers_overlay:
            result = await db.execute(
                select(Answer)
                .where(Answer.round_question_id == question.id)
                .order_by(Answer.submitted_at, Answer.id)
            )
            snapshot["answers"] = [a.as_payload(exclude={"created_at", "updated_at"}) for a in result.scalars()]

    result = await db.execute(select(StarUse).where(StarUse.match_id == match_id))
    snapshot["stars"] = [
        {"round_question_id": s.round_question_id, "player_id": s.player_id, "outcome": s.outcome}
        for s in result.scalars()
    ]
    return snapshot
