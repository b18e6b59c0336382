"""
Olympia — Finish Round Packages

Each contestant picks three values (20 or 30) and gets three questions
drawn at random from the match's VD pool. A question is never handed out
twice in the same match, whether by item id or by identical question and
answer text.
"""
import logging
import random
from typing import Dict, List, Optional, Sequence, Set

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from olympia.core.results import ActionResult, service_action
from olympia.exceptions import PoolExhaustedError, PreconditionError, ValidationError
from olympia.orm.answer import Answer
from olympia.orm.catalog import MatchQuestionSet, QuestionSetItem, RoundQuestion
from olympia.orm.match import RoundType
from olympia.realtime.event_bus import commit_and_publish, record_event
from olympia.services import live_context
from olympia.services.question_codes import CodeVariant, finish_slot_range, parse_code

logger = logging.getLogger(__name__)

PACKAGE_SIZE = 3
PACKAGE_VALUES = (20, 30)

_rng = random.SystemRandom()


def item_key(question_text: Optional[str], answer_text: Optional[str]) -> str:
    """Content identity of a question: lower-cased, trimmed question||answer."""
    return f"{(question_text or '').strip().lower()}||{(answer_text or '').strip().lower()}"


def clear_finish_slot(slot: RoundQuestion) -> None:
    slot.target_player_id = None
    slot.value = None
    slot.question_set_item_id = None
    slot.question_text = None
    slot.answer_text = None
    slot.note = None
    slot.media_url = None
    slot.code = None
    slot.meta = {}


async def finish_pool(db: AsyncSession, match_id: int) -> Dict[int, List[QuestionSetItem]]:
    """VD items of the match's question sets, grouped by value."""
    result = await db.execute(
        select(QuestionSetItem)
        .join(MatchQuestionSet, MatchQuestionSet.question_set_id == QuestionSetItem.question_set_id)
        .where(MatchQuestionSet.match_id == match_id)
        .order_by(QuestionSetItem.question_set_id, QuestionSetItem.order_index, QuestionSetItem.id)
    )
    pool: Dict[int, List[QuestionSetItem]] = {value: [] for value in PACKAGE_VALUES}
    for item in result.scalars().all():
        code = parse_code(item.code)
        if code and code.variant == CodeVariant.FINISH and code.value in pool:
            pool[code.value].append(item)
    return pool


def draw(
    candidates: Sequence[QuestionSetItem], used_ids: Set[int], used_keys: Set[str], value: int
) -> QuestionSetItem:
    eligible = [
        item for item in candidates
        if item.id not in used_ids and item_key(item.question_text, item.answer_text) not in used_keys
    ]
    if not eligible:
        raise PoolExhaustedError(f"Pool VD-{value} exhausted.")
    picked = _rng.choice(eligible)
    used_ids.add(picked.id)
    used_keys.add(item_key(picked.question_text, picked.answer_text))
    return picked


class PackageService:

    @staticmethod
    @service_action
    async def select_package(db: AsyncSession, match_id: int, player_id: int, values: Sequence[int]) -> ActionResult:
        """
        Fill a contestant's three finish slots.

        Re-selecting with different values releases the contestant's earlier
        questions back to the pool and drops their answers on those slots.
        Re-selecting with the same values draws three fresh questions.

        Returns:
            ActionResult with the filled slots (id, order_index, value)
        """
        values = list(values or [])
        if len(values) != PACKAGE_SIZE or any(v not in PACKAGE_VALUES for v in values):
            raise ValidationError("Pick exactly three values, each 20 or 30.")

        live_session = await live_context.get_running_session(db, match_id)
        if not live_context.in_round(live_session, RoundType.FINISH):
            raise PreconditionError("Packages are chosen during the finish round.")
        player = await live_context.get_player(db, match_id, player_id)

        finish_round = await live_context.get_round(db, match_id, RoundType.FINISH)
        all_slots = await live_context.list_round_questions(db, finish_round.id)
        seat_range = finish_slot_range(player.seat_index)
        slots = [slot for slot in all_slots if slot.order_index in seat_range]
        if len(slots) < PACKAGE_SIZE:
            raise PreconditionError("This seat does not have three finish-round slots.")

        editing = any(slot.question_set_item_id is not None for slot in slots)
        values_changed = editing and any(slot.value != value for slot, value in zip(slots, values))

        pool = await finish_pool(db, match_id)
        for value in PACKAGE_VALUES:
            if not pool[value]:
                raise PoolExhaustedError(f"Pool VD-{value} is empty.")

        own_ids = {slot.id for slot in slots}
        used_ids: Set[int] = set()
        used_keys: Set[str] = set()
        for slot in all_slots:
            if slot.question_set_item_id is None:
                continue
            if values_changed and slot.id in own_ids:
                continue
            used_ids.add(slot.question_set_item_id)
            used_keys.add(item_key(slot.question_text, slot.answer_text))

        picks = [draw(pool[value], used_ids, used_keys, value) for value in values]

        for slot, value, item in zip(slots, values, picks):
            slot.target_player_id = player.id
            slot.value = value
            slot.code = item.code
            slot.question_set_item_id = item.id
            slot.question_text = item.question_text
            slot.answer_text = item.answer_text
            slot.note = item.note
            slot.media_url = item.media_url
            slot.meta = {"code": item.code, "variant": CodeVariant.FINISH.value}

        if values_changed:
            await db.execute(
                delete(Answer).where(
                    Answer.round_question_id.in_(list(own_ids)),
                    Answer.player_id == player.id,
                )
            )

        await db.flush()
        summary = [{"id": slot.id, "order_index": slot.order_index, "value": slot.value} for slot in slots]
        await record_event(
            db, match_id, "round_questions", "package_selected",
            payload={"player_id": player.id, "slots": summary, "values_changed": values_changed},
            session_id=live_session.id,
        )
        await commit_and_publish(db)
        logger.info(f"Match {match_id}: seat {player.seat_index} picked package {values}")
        return ActionResult.success(slots=summary, values_changed=values_changed)

    @staticmethod
    @service_action
    async def reset_all_packages(db: AsyncSession, match_id: int) -> ActionResult:
        await live_context.lock_match_writes(db, match_id)
        finish_round = await live_context.get_round(db, match_id, RoundType.FINISH)
        slots = await live_context.list_round_questions(db, finish_round.id)
        for slot in slots:
            clear_finish_slot(slot)
        await db.flush()
        await record_event(db, match_id, "round_questions", "packages_reset", payload={"cleared": len(slots)})
        await commit_and_publish(db)
        return ActionResult.success(cleared=len(slots))
