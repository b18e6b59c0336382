"""
Olympia — Catalog Service

Materializes a match's round questions from its assigned question sets.
"""
import logging
from collections import Counter
from typing import Dict, List, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from olympia.core.results import ActionResult, service_action
from olympia.exceptions import NotFoundError, ValidationError
from olympia.orm.catalog import MatchQuestionSet, QuestionSet, QuestionSetItem, RoundQuestion
from olympia.orm.match import MatchRound, ROUND_ORDER, RoundType
from olympia.realtime.event_bus import commit_and_publish, record_event
from olympia.services import live_context
from olympia.services.question_codes import parse_code

logger = logging.getLogger(__name__)

FINISH_SLOT_COUNT = 12


async def ensure_rounds(db: AsyncSession, match_id: int) -> Dict[RoundType, MatchRound]:
    """Create any of the four rounds that are missing. Does not commit."""
    result = await db.execute(select(MatchRound).where(MatchRound.match_id == match_id))
    existing = {RoundType(r.round_type): r for r in result.scalars().all()}
    for index, round_type in enumerate(ROUND_ORDER):
        if round_type not in existing:
            match_round = MatchRound(match_id=match_id, round_type=round_type.value, order_index=index)
            db.add(match_round)
            existing[round_type] = match_round
    await db.flush()
    return existing


class CatalogService:

    @staticmethod
    @service_action
    async def assign_question_sets(
        db: AsyncSession, match_id: int, question_set_ids: Sequence[int]
    ) -> ActionResult:
        """
        Link question sets to a match and rebuild its round questions.

        Items are partitioned by code prefix. Opening, obstacle and speed
        items become round questions in import order. The finish round gets
        twelve empty slots (three per seat); VD items stay in the pool for
        package selection. Unrecognized codes are skipped and counted.

        Args:
            db: Database session
            match_id: Target match
            question_set_ids: Sets to assign, in priority order
        Returns:
            ActionResult with per-round counts
        """
        if not question_set_ids:
            raise ValidationError("Select at least one question set.")

        await live_context.get_match(db, match_id)
        await live_context.lock_match_writes(db, match_id)
        unique_ids = list(dict.fromkeys(question_set_ids))

        result = await db.execute(select(QuestionSet.id).where(QuestionSet.id.in_(unique_ids)))
        found = set(result.scalars().all())
        missing = [set_id for set_id in unique_ids if set_id not in found]
        if missing:
            raise NotFoundError("Question set", missing[0])

        await db.execute(delete(MatchQuestionSet).where(MatchQuestionSet.match_id == match_id))
        for set_id in unique_ids:
            db.add(MatchQuestionSet(match_id=match_id, question_set_id=set_id))

        rounds = await ensure_rounds(db, match_id)
        round_ids = [r.id for r in rounds.values()]
        await db.execute(delete(RoundQuestion).where(RoundQuestion.match_round_id.in_(round_ids)))

        items: List[QuestionSetItem] = []
        for set_id in unique_ids:
            result = await db.execute(
                select(QuestionSetItem)
                .where(QuestionSetItem.question_set_id == set_id)
                .order_by(QuestionSetItem.order_index, QuestionSetItem.id)
            )
            items.extend(result.scalars().all())

        counts: Counter = Counter()
        pool_counts: Counter = Counter()
        unrecognized: List[str] = []
        positions: Counter = Counter()
        for item in items:
            code = parse_code(item.code)
            if code is None:
                unrecognized.append(item.code)
                continue
            if code.round_type == RoundType.FINISH:
                pool_counts[code.value or 0] += 1
                continue
            positions[code.round_type] += 1
            db.add(RoundQuestion(
                match_round_id=rounds[code.round_type].id,
                order_index=positions[code.round_type],
                code=code.raw,
                question_set_item_id=item.id,
                question_text=item.question_text,
                answer_text=item.answer_text,
                note=item.note,
                media_url=item.media_url,
                meta={"code": code.raw, "variant": code.variant.value},
            ))
            counts[code.round_type.value] += 1

        for order_index in range(1, FINISH_SLOT_COUNT + 1):
            db.add(RoundQuestion(
                match_round_id=rounds[RoundType.FINISH].id,
                order_index=order_index,
                meta={},
            ))
        counts[RoundType.FINISH.value] = FINISH_SLOT_COUNT

        if unrecognized:
            logger.warning(
                f"Match {match_id}: skipped {len(unrecognized)} items with unrecognized codes: "
                f"{unrecognized[:5]}"
            )

        summary = {
            "items_fetched": len(items),
            "items_recognized": len(items) - len(unrecognized),
            "items_unrecognized": len(unrecognized),
            "unrecognized_codes": unrecognized[:20],
            "round_counts": dict(counts),
            "finish_pool": {"20": pool_counts[20], "30": pool_counts[30], "unvalued": pool_counts[0]},
        }
        await record_event(
            db, match_id, "round_questions", "rebuild", payload={"round_counts": dict(counts)}
        )
        await commit_and_publish(db)
        logger.info(f"Match {match_id}: round questions rebuilt {dict(counts)}")
        return ActionResult.success("Question sets assigned.", **summary)
