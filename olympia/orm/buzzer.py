"""
Olympia — Buzzer Event ORM Model

Append-only log of buzzer activity. A ``reset`` row opens a new epoch for
its question; only buzz/steal rows at or after the latest reset count when
deciding the winner.
"""
from enum import Enum as PyEnum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, CheckConstraint

from olympia.orm.base import BaseModel


class BuzzerEventType(str, PyEnum):
    BUZZ = "buzz"
    STEAL = "steal"
    RESET = "reset"
    TRIAL = "trial"


class BuzzerResult(str, PyEnum):
    WIN = "win"
    LOSE = "lose"


class BuzzerEvent(BaseModel):
    __tablename__ = "buzzer_events"

    match_id = Column(Integer, ForeignKey('matches.id', ondelete='CASCADE'), nullable=False, index=True)
    round_question_id = Column(
        Integer, ForeignKey('round_questions.id', ondelete='CASCADE'), nullable=True
    )
    player_id = Column(
        Integer, ForeignKey('match_players.id', ondelete='CASCADE'), nullable=True
    )
    event_type = Column(String(10), nullable=False)
    result = Column(String(10), nullable=True)
    occurred_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index('idx_buzzer_question_time', 'round_question_id', 'occurred_at'),
        CheckConstraint(
            "event_type IN ('buzz', 'steal', 'reset', 'trial')",
            name="ck_buzzer_event_type"
        ),
        CheckConstraint(
            "result IS NULL OR result IN ('win', 'lose')",
            name="ck_buzzer_event_result"
        ),
    )
