"""
Shared loaders and guards for the live engine services.

Every mutation path loads the session row with ``with_for_update`` so that
on PostgreSQL at most one mutation per match runs at a time. On SQLite the
lock is a no-op and the session's version column catches lost updates.
"""
from typing import List, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from olympia.core import clock
from olympia.exceptions import NotFoundError, PreconditionError
from olympia.orm.buzzer import BuzzerEvent, BuzzerEventType, BuzzerResult
from olympia.orm.catalog import RoundQuestion
from olympia.orm.live_session import LiveSession, QuestionState
from olympia.orm.match import Match, MatchPlayer, MatchRound, RoundType
from olympia.services.question_codes import QuestionCode, parse_code


async def get_match(db: AsyncSession, match_id: int) -> Match:
    result = await db.execute(select(Match).where(Match.id == match_id))
    match = result.scalar_one_or_none()
    if not match:
        raise NotFoundError("Match", match_id)
    return match


async def get_session(db: AsyncSession, match_id: int, lock: bool = True) -> LiveSession:
    query = select(LiveSession).where(LiveSession.match_id == match_id)
    if lock:
        query = query.with_for_update()
    result = await db.execute(query)
    live_session = result.scalar_one_or_none()
    if not live_session:
        raise NotFoundError("Live session", match_id)
    return live_session


async def get_running_session(db: AsyncSession, match_id: int) -> LiveSession:
    live_session = await get_session(db, match_id)
    if not live_session.is_running:
        raise PreconditionError("The live session is not running.")
    return live_session


async def lock_match_writes(db: AsyncSession, match_id: int) -> Optional[LiveSession]:
    """
    Take the session row lock that orders every writer of a match.

    Writers that do not need the session itself still take it first, so
    all of them lock in the same order. Returns None before the room opens.
    """
    result = await db.execute(
        select(LiveSession).where(LiveSession.match_id == match_id).with_for_update()
    )
    return result.scalar_one_or_none()


async def get_round(db: AsyncSession, match_id: int, round_type: RoundType) -> MatchRound:
    result = await db.execute(
        select(MatchRound).where(
            MatchRound.match_id == match_id,
            MatchRound.round_type == RoundType(round_type).value,
        )
    )
    match_round = result.scalar_one_or_none()
    if not match_round:
        raise NotFoundError("Round", f"{RoundType(round_type).value} of match {match_id}")
    return match_round


async def get_round_by_id(db: AsyncSession, match_id: int, round_id: int) -> MatchRound:
    result = await db.execute(
        select(MatchRound).where(MatchRound.id == round_id, MatchRound.match_id == match_id)
    )
    match_round = result.scalar_one_or_none()
    if not match_round:
        raise NotFoundError("Round", round_id)
    return match_round


async def get_round_question(
    db: AsyncSession, match_id: int, round_question_id: int, lock: bool = False
) -> RoundQuestion:
    """Load a round question and check it belongs to the match."""
    query = (
        select(RoundQuestion)
        .join(MatchRound, MatchRound.id == RoundQuestion.match_round_id)
        .where(RoundQuestion.id == round_question_id, MatchRound.match_id == match_id)
    )
    if lock:
        query = query.with_for_update()
    result = await db.execute(query)
    question = result.scalar_one_or_none()
    if not question:
        raise NotFoundError("Question", round_question_id)
    return question


async def round_type_of(db: AsyncSession, question: RoundQuestion) -> RoundType:
    result = await db.execute(
        select(MatchRound.round_type).where(MatchRound.id == question.match_round_id)
    )
    return RoundType(result.scalar_one())


async def list_round_questions(db: AsyncSession, match_round_id: int) -> List[RoundQuestion]:
    result = await db.execute(
        select(RoundQuestion)
        .where(RoundQuestion.match_round_id == match_round_id)
        .order_by(RoundQuestion.order_index, RoundQuestion.id)
    )
    return list(result.scalars().all())


async def get_current_question(db: AsyncSession, live_session: LiveSession) -> Optional[RoundQuestion]:
    if live_session.current_round_question_id is None:
        return None
    result = await db.execute(
        select(RoundQuestion).where(RoundQuestion.id == live_session.current_round_question_id)
    )
    return result.scalar_one_or_none()


async def require_current_question(db: AsyncSession, live_session: LiveSession) -> RoundQuestion:
    question = await get_current_question(db, live_session)
    if not question:
        raise PreconditionError("No question is currently selected.")
    return question


async def get_player(db: AsyncSession, match_id: int, player_id: int) -> MatchPlayer:
    result = await db.execute(
        select(MatchPlayer).where(MatchPlayer.id == player_id, MatchPlayer.match_id == match_id)
    )
    player = result.scalar_one_or_none()
    if not player:
        raise NotFoundError("Player", player_id)
    return player


async def get_player_by_seat(db: AsyncSession, match_id: int, seat: int) -> Optional[MatchPlayer]:
    result = await db.execute(
        select(MatchPlayer).where(MatchPlayer.match_id == match_id, MatchPlayer.seat_index == seat)
    )
    return result.scalar_one_or_none()


async def list_players(db: AsyncSession, match_id: int) -> List[MatchPlayer]:
    result = await db.execute(
        select(MatchPlayer).where(MatchPlayer.match_id == match_id).order_by(MatchPlayer.seat_index)
    )
    return list(result.scalars().all())


def question_code(question: Optional[RoundQuestion]) -> Optional[QuestionCode]:
    if question is None:
        return None
    return parse_code(question.code)


def is_opening_common(question: Optional[RoundQuestion]) -> bool:
    code = question_code(question)
    return bool(code and code.is_opening_common)


def opening_personal_seat(question: Optional[RoundQuestion]) -> Optional[int]:
    code = question_code(question)
    return code.seat if code and code.is_personal else None


def in_round(live_session: LiveSession, round_type: RoundType) -> bool:
    return live_session.current_round_type == round_type.value


def is_steal_window(live_session: LiveSession) -> bool:
    return (
        in_round(live_session, RoundType.FINISH)
        and live_session.question_state == QuestionState.ANSWER_REVEALED.value
    )


# -- Buzzer epochs ----------------------------------------------------------

async def latest_reset(db: AsyncSession, round_question_id: int) -> Optional[BuzzerEvent]:
    result = await db.execute(
        select(BuzzerEvent)
        .where(
            BuzzerEvent.round_question_id == round_question_id,
            BuzzerEvent.event_type == BuzzerEventType.RESET.value,
        )
        .order_by(BuzzerEvent.occurred_at.desc(), BuzzerEvent.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


def in_epoch(reset: Optional[BuzzerEvent]):
    """
    SQL clause selecting buzzer rows that belong to the epoch opened by ``reset``.

    Rows stamped in the same instant as the reset count only if they were
    inserted after it.
    """
    if reset is None:
        return BuzzerEvent.id.isnot(None)
    return or_(
        BuzzerEvent.occurred_at > reset.occurred_at,
        and_(BuzzerEvent.occurred_at == reset.occurred_at, BuzzerEvent.id > reset.id),
    )


async def epoch_winner(
    db: AsyncSession,
    round_question_id: int,
    event_type: BuzzerEventType,
    reset: Optional[BuzzerEvent] = None,
    resolve_reset: bool = True,
) -> Optional[BuzzerEvent]:
    """First winning event of the given type in the current epoch."""
    if reset is None and resolve_reset:
        reset = await latest_reset(db, round_question_id)
    result = await db.execute(
        select(BuzzerEvent)
        .where(
            BuzzerEvent.round_question_id == round_question_id,
            BuzzerEvent.event_type == event_type.value,
            BuzzerEvent.result == BuzzerResult.WIN.value,
            in_epoch(reset),
        )
        .order_by(BuzzerEvent.occurred_at, BuzzerEvent.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def insert_reset(db: AsyncSession, match_id: int, round_question_id: int) -> BuzzerEvent:
    reset = BuzzerEvent(
        match_id=match_id,
        round_question_id=round_question_id,
        player_id=None,
        event_type=BuzzerEventType.RESET.value,
        result=None,
        occurred_at=clock.utcnow(),
    )
    db.add(reset)
    await db.flush()
    return reset
