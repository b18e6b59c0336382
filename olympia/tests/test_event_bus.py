"""
Change notifications: one event per committed operation, published after the
commit, never for rolled-back work; snapshots and deltas for viewers.
"""
import asyncio
import json

import pytest
from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql

from olympia.orm.match import RoundType
from olympia.orm.realtime_event import RealtimeEvent
from olympia.realtime.broadcast_adapter import match_channel
from olympia.realtime.event_bus import next_sequence, set_broadcast_adapter
from olympia.realtime.in_memory_adapter import InMemoryAdapter
from olympia.realtime.redis_adapter import RedisAdapter, create_broadcast_adapter
from olympia.services import snapshot_service
from olympia.services.answer_service import AnswerService
from olympia.services.buzzer_service import BuzzerService
from olympia.services.control_service import ControlService
from olympia.services.navigation_service import NavigationService
from olympia.services.scoring_service import ScoringService

from conftest import question_ids


class RecordingAdapter(InMemoryAdapter):
    """In-memory adapter that also remembers everything published."""

    def __init__(self):
        super().__init__()
        self.published = []

    async def publish(self, channel, message):
        self.published.append((channel, message))
        await super().publish(channel, message)


@pytest.fixture
def recorder():
    adapter = RecordingAdapter()
    set_broadcast_adapter(adapter)
    return adapter


async def event_count(db, match_id):
    result = await db.execute(select(func.count(RealtimeEvent.id)).where(RealtimeEvent.match_id == match_id))
    return result.scalar()


def capture_statements(db, monkeypatch):
    statements = []
    original = db.execute

    async def execute(statement, *args, **kwargs):
        statements.append(statement)
        return await original(statement, *args, **kwargs)

    monkeypatch.setattr(db, "execute", execute)
    return statements


def locked_statements(statements):
    compiled = [str(statement.compile(dialect=postgresql.dialect())) for statement in statements]
    return [sql for sql in compiled if "FOR UPDATE" in sql]


# =============================================================================
# Publishing
# =============================================================================

@pytest.mark.asyncio
class TestPublishing:

    async def test_one_event_per_operation(self, db_session, live_match, recorder):
        before = await event_count(db_session, live_match.match_id)
        await ControlService.set_round(db_session, live_match.match_id, "opening")

        assert await event_count(db_session, live_match.match_id) == before + 1
        assert len(recorder.published) == 1
        channel, message = recorder.published[0]
        assert channel == match_channel(live_match.match_id)
        assert message["event_type"] == "round_changed"
        assert message["event_sequence"] == before + 1

    async def test_rejected_operation_publishes_nothing(self, db_session, live_match, recorder):
        before = await event_count(db_session, live_match.match_id)
        result = await BuzzerService.trigger_buzzer(db_session, live_match.match_id, live_match.seat(1))

        assert not result.ok
        assert recorder.published == []
        assert await event_count(db_session, live_match.match_id) == before

    async def test_sequences_strictly_increase(self, db_session, live_match, recorder):
        await ControlService.set_round(db_session, live_match.match_id, "opening")
        await ControlService.set_buzzer_enabled(db_session, live_match.match_id, False)
        await ControlService.set_overlay(db_session, live_match.match_id, "answers", True)

        sequences = [message["event_sequence"] for _, message in recorder.published]
        assert sequences == sorted(set(sequences))
        assert len(sequences) == 3

    async def test_reset_keeps_counting(self, db_session, live_match, recorder):
        await ControlService.set_round(db_session, live_match.match_id, "opening")
        last = recorder.published[-1][1]["event_sequence"]

        await ScoringService.reset_session_state(db_session, live_match.match_id)

        assert recorder.published[-1][1]["event_sequence"] == last + 1
        assert await event_count(db_session, live_match.match_id) == 1

    async def test_sequence_allocation_holds_the_session_lock(self, db_session, live_match, monkeypatch):
        statements = capture_statements(db_session, monkeypatch)

        sequence = await next_sequence(db_session, live_match.match_id)

        assert sequence == await event_count(db_session, live_match.match_id) + 1
        assert "live_sessions" in locked_statements(statements)[0]

    async def test_score_writers_lock_the_session_before_the_ledger(self, db_session, live_match, monkeypatch):
        statements = capture_statements(db_session, monkeypatch)

        result = await ScoringService.manual_adjust(
            db_session, live_match.match_id, live_match.seat(1), "opening", 10, "Judge ruling"
        )

        assert result.ok
        locked = locked_statements(statements)
        assert "live_sessions" in locked[0]
        assert any("match_scores" in sql for sql in locked[1:])

    async def test_subscriber_receives_live_events(self, db_session, live_match):
        adapter = InMemoryAdapter()
        set_broadcast_adapter(adapter)
        stream = adapter.subscribe(match_channel(live_match.match_id))
        pending = asyncio.ensure_future(stream.__anext__())
        await asyncio.sleep(0.01)

        await ControlService.set_round(db_session, live_match.match_id, "speed")

        message = await asyncio.wait_for(pending, timeout=1)
        assert message["event_type"] == "round_changed"
        assert message["payload"]["current_round_type"] == RoundType.SPEED.value
        await stream.aclose()
        await adapter.close()

    async def test_factory_defaults_to_memory(self):
        adapter = await create_broadcast_adapter("memory")
        assert isinstance(adapter, InMemoryAdapter)
        await adapter.close()

    async def test_redis_adapter_keeps_its_url(self):
        adapter = RedisAdapter("redis://cache:6379/2")
        assert adapter.redis_url == "redis://cache:6379/2"


# =============================================================================
# Snapshot and delta
# =============================================================================

@pytest.mark.asyncio
class TestSnapshot:

    async def test_snapshot_hides_the_answer_until_revealed(self, db_session, live_match):
        await ControlService.set_round(db_session, live_match.match_id, "opening")
        ids = await question_ids(db_session, live_match.match_id, RoundType.OPENING)
        await NavigationService.select_question(db_session, live_match.match_id, ids["DKA-1"])

        viewer = await snapshot_service.build_snapshot(db_session, live_match.match_id)
        moderator = await snapshot_service.build_snapshot(db_session, live_match.match_id, include_answers=True)

        assert viewer["current_question"]["id"] == ids["DKA-1"]
        assert "answer_text" not in viewer["current_question"]
        assert moderator["current_question"]["answer_text"] == "Mekong"
        assert "player_password_hash" not in viewer["session"]
        assert len(viewer["scoreboard"]) == 4
        json.dumps(viewer)

    async def test_snapshot_reports_the_buzz_winner(self, db_session, live_match):
        await ControlService.set_round(db_session, live_match.match_id, "opening")
        ids = await question_ids(db_session, live_match.match_id, RoundType.OPENING)
        await NavigationService.select_question(db_session, live_match.match_id, ids["DKA-2"])
        await BuzzerService.trigger_buzzer(db_session, live_match.match_id, live_match.seat(2))

        snapshot = await snapshot_service.build_snapshot(db_session, live_match.match_id)
        assert snapshot["buzzer"]["winner"] == live_match.seat(2)

    async def test_delta_after_sequence(self, db_session, live_match):
        start = await snapshot_service.last_sequence(db_session, live_match.match_id)
        await ControlService.set_round(db_session, live_match.match_id, "speed")
        ids = await question_ids(db_session, live_match.match_id, RoundType.SPEED)
        await NavigationService.select_question(db_session, live_match.match_id, ids["TT-1"])
        await AnswerService.submit_answer(db_session, live_match.match_id, live_match.seat(1), "Da Lat")

        events = await snapshot_service.events_after(db_session, live_match.match_id, start)
        assert [e.event_type for e in events] == ["round_changed", "question_selected", "insert"]
        assert [e.event_sequence for e in events] == [start + 1, start + 2, start + 3]
