"""
Olympia — Match, Player and Round ORM Models

A match owns exactly four rounds (one per round type) and up to four
players seated 1-4.
"""
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Boolean,
    UniqueConstraint, Index, CheckConstraint
)
from sqlalchemy.orm import relationship, validates

from olympia.exceptions import PreconditionError
from olympia.orm.base import BaseModel


class MatchStatus(str, PyEnum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    LIVE = "live"
    FINISHED = "finished"
    CANCELLED = "cancelled"


class RoundType(str, PyEnum):
    OPENING = "opening"
    OBSTACLE = "obstacle"
    SPEED = "speed"
    FINISH = "finish"


ROUND_ORDER = [RoundType.OPENING, RoundType.OBSTACLE, RoundType.SPEED, RoundType.FINISH]

# A finished match can be reopened when its session is opened again.
MATCH_TRANSITIONS = {
    MatchStatus.DRAFT: {MatchStatus.SCHEDULED, MatchStatus.LIVE, MatchStatus.CANCELLED},
    MatchStatus.SCHEDULED: {MatchStatus.LIVE, MatchStatus.CANCELLED},
    MatchStatus.LIVE: {MatchStatus.FINISHED, MatchStatus.CANCELLED},
    MatchStatus.FINISHED: {MatchStatus.LIVE},
    MatchStatus.CANCELLED: set(),
}


class Match(BaseModel):
    """A single Olympia match between up to four contestants."""
    __tablename__ = "matches"

    name = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=MatchStatus.DRAFT.value)
    host_user_id = Column(String(64), nullable=True, index=True)
    scheduled_at = Column(DateTime, nullable=True)

    players = relationship(
        "MatchPlayer", back_populates="match",
        order_by="MatchPlayer.seat_index", cascade="all, delete-orphan"
    )
    rounds = relationship(
        "MatchRound", back_populates="match",
        order_by="MatchRound.order_index", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'scheduled', 'live', 'finished', 'cancelled')",
            name="ck_match_status"
        ),
    )

    @validates('status')
    def validate_status(self, key, status):
        status = MatchStatus(status)
        current = self.status
        if current is None or current == status.value:
            return status.value
        if status not in MATCH_TRANSITIONS[MatchStatus(current)]:
            raise PreconditionError(f"Match cannot move from {current} to {status.value}")
        return status.value


class MatchPlayer(BaseModel):
    """A contestant seated in a match."""
    __tablename__ = "match_players"

    match_id = Column(Integer, ForeignKey('matches.id', ondelete='CASCADE'), nullable=False, index=True)
    participant_id = Column(String(64), nullable=True, index=True)
    display_name = Column(String(255), nullable=False)
    seat_index = Column(Integer, nullable=False)
    is_disqualified_obstacle = Column(Boolean, nullable=False, default=False)

    match = relationship("Match", back_populates="players")

    __table_args__ = (
        UniqueConstraint('match_id', 'seat_index', name='uq_match_player_seat'),
        UniqueConstraint('match_id', 'participant_id', name='uq_match_player_participant'),
        CheckConstraint("seat_index BETWEEN 1 AND 4", name="ck_match_player_seat"),
    )


class MatchRound(BaseModel):
    """One of the four fixed rounds of a match."""
    __tablename__ = "match_rounds"

    match_id = Column(Integer, ForeignKey('matches.id', ondelete='CASCADE'), nullable=False, index=True)
    round_type = Column(String(20), nullable=False)
    order_index = Column(Integer, nullable=False)

    match = relationship("Match", back_populates="rounds")
    questions = relationship(
        "RoundQuestion", back_populates="match_round",
        order_by="RoundQuestion.order_index", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint('match_id', 'round_type', name='uq_match_round_type'),
        Index('idx_match_round_order', 'match_id', 'order_index'),
        CheckConstraint(
            "round_type IN ('opening', 'obstacle', 'speed', 'finish')",
            name="ck_match_round_type"
        ),
    )
