"""
Shared fixtures for the Olympia engine tests.

Every test gets a fresh in-memory SQLite database and a fresh in-memory
broadcast adapter. ``live_match`` seeds a four-seat match with a full
question set, assigns it and opens the room.
"""
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["REALTIME_BACKEND"] = "memory"

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from olympia.core import clock
from olympia.orm import Base, Match, MatchPlayer, QuestionSet, QuestionSetItem
from olympia.orm.match import RoundType
from olympia.realtime.event_bus import set_broadcast_adapter
from olympia.realtime.in_memory_adapter import InMemoryAdapter
from olympia.services import live_context
from olympia.services.catalog_service import CatalogService
from olympia.services.session_service import SessionService

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

HOST_USER_ID = "host-1"

QUESTION_ITEMS = [
    ("KD1-1", "Seat one, first question", "Ha Noi"),
    ("KD1-2", "Seat one, second question", "Hue"),
    ("KD2-1", "Seat two, first question", "Da Nang"),
    ("DKA-1", "Common question one", "Mekong"),
    ("DKA-2", "Common question two", "Red River"),
    ("VCNV-1", "Row one", "LUA"),
    ("VCNV-2", "Row two", "NUOC"),
    ("VCNV-3", "Row three", "GIO"),
    ("VCNV-4", "Row four", "DAT"),
    ("VCNV-OTT", "Centre tile", "TROI"),
    ("CNV-KEY", "Obstacle keyword", "NGU HANH"),
    ("TT-1", "Speed one", "Đà Lạt|Da Lat"),
    ("TT-2", "Speed two", "Sài Gòn"),
    ("VD-20.1", "Finish 20 one", "A1"),
    ("VD-20.2", "Finish 20 two", "A2"),
    ("VD-20.3", "Finish 20 three", "A3"),
    ("VD-20.4", "Finish 20 four", "A4"),
    ("VD-20.5", "Finish 20 five", "A5"),
    ("VD-20.6", "Finish 20 six", "A6"),
    ("VD-30.1", "Finish 30 one", "B1"),
    ("VD-30.2", "Finish 30 two", "B2"),
    ("VD-30.3", "Finish 30 three", "B3"),
    ("VD-30.4", "Finish 30 four", "B4"),
    ("XX-1", "Unrecognized", "?"),
]


@dataclass
class LiveMatch:
    match_id: int
    players: Dict[int, int] = field(default_factory=dict)
    join_code: str = ""
    player_password: str = ""
    mc_password: str = ""

    def seat(self, seat_index: int) -> int:
        return self.players[seat_index]


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine) -> AsyncSession:
    session_factory = async_sessionmaker(
        db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
async def broadcast_adapter():
    adapter = InMemoryAdapter()
    set_broadcast_adapter(adapter)
    yield adapter
    await adapter.close()
    set_broadcast_adapter(None)


async def seed_match(db: AsyncSession, items: List[tuple] = None, seats: int = 4) -> LiveMatch:
    match = Match(name="Olympia Week 1", host_user_id=HOST_USER_ID)
    db.add(match)
    await db.flush()

    players = {}
    for seat in range(1, seats + 1):
        player = MatchPlayer(
            match_id=match.id,
            participant_id=f"player-{seat}",
            display_name=f"Contestant {seat}",
            seat_index=seat,
        )
        db.add(player)
        players[seat] = player

    question_set = QuestionSet(name="Week 1 set")
    db.add(question_set)
    await db.flush()
    for index, (code, question, answer) in enumerate(items or QUESTION_ITEMS):
        db.add(QuestionSetItem(
            question_set_id=question_set.id,
            code=code,
            question_text=question,
            answer_text=answer,
            order_index=index,
        ))
    await db.commit()

    match_id = match.id
    player_ids = {seat: player.id for seat, player in players.items()}

    result = await CatalogService.assign_question_sets(db, match_id, [question_set.id])
    assert result.ok, result.message
    return LiveMatch(match_id=match_id, players=player_ids)


@pytest.fixture
async def seeded_match(db_session) -> LiveMatch:
    """Seeded match whose room has not been opened yet."""
    return await seed_match(db_session)


@pytest.fixture
async def live_match(db_session, seeded_match) -> LiveMatch:
    result = await SessionService.open_session(db_session, seeded_match.match_id)
    assert result.ok, result.message
    seeded_match.join_code = result.data["join_code"]
    seeded_match.player_password = result.data["player_password"]
    seeded_match.mc_password = result.data["mc_password"]
    return seeded_match


async def question_ids(db: AsyncSession, match_id: int, round_type: RoundType) -> Dict[str, int]:
    """Round question ids keyed by code (finish slots by order index)."""
    match_round = await live_context.get_round(db, match_id, round_type)
    questions = await live_context.list_round_questions(db, match_round.id)
    return {(q.code or str(q.order_index)): q.id for q in questions}


async def reload_player(db: AsyncSession, player_id: int) -> MatchPlayer:
    result = await db.execute(
        select(MatchPlayer).where(MatchPlayer.id == player_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


class FrozenClock:
    """Stand-in for ``clock.utcnow`` that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, milliseconds: float) -> None:
        self.now += timedelta(milliseconds=milliseconds)


@pytest.fixture
def frozen_clock(monkeypatch) -> FrozenClock:
    frozen = FrozenClock(datetime(2024, 5, 1, 9, 0, 0))
    monkeypatch.setattr(clock, "utcnow", frozen)
    return frozen
