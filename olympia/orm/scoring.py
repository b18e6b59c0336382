"""
Olympia — Scoring ORM Models

- MatchScore: running total per (match, player, round type), never negative.
  Host corrections live on the "manual" row.
- ScoreChange: append-only audit of every ledger mutation, with single-level undo.
- StarUse: the finish-round double token.
"""
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, ForeignKey,
    UniqueConstraint, Index, CheckConstraint
)

from olympia.orm.base import BaseModel


# Ledger rows accept the four rounds plus "manual" for absolute total edits.
LEDGER_ROUND_TYPES = ("opening", "obstacle", "speed", "finish", "manual")


class StarOutcome(str, PyEnum):
    APPLIED = "applied"
    WASTED = "wasted"


class MatchScore(BaseModel):
    __tablename__ = "match_scores"

    match_id = Column(Integer, ForeignKey('matches.id', ondelete='CASCADE'), nullable=False, index=True)
    player_id = Column(
        Integer, ForeignKey('match_players.id', ondelete='CASCADE'), nullable=False
    )
    round_type = Column(String(20), nullable=False)
    points = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint('match_id', 'player_id', 'round_type', name='uq_match_score_round'),
        CheckConstraint("points >= 0", name="ck_match_score_floor"),
        CheckConstraint(
            "round_type IN ('opening', 'obstacle', 'speed', 'finish', 'manual')",
            name="ck_match_score_round_type"
        ),
    )


class ScoreChange(BaseModel):
    __tablename__ = "score_changes"

    match_id = Column(Integer, ForeignKey('matches.id', ondelete='CASCADE'), nullable=False, index=True)
    player_id = Column(
        Integer, ForeignKey('match_players.id', ondelete='CASCADE'), nullable=False
    )
    round_type = Column(String(20), nullable=False)
    requested_delta = Column(Integer, nullable=False)
    applied_delta = Column(Integer, nullable=False)
    points_before = Column(Integer, nullable=False)
    points_after = Column(Integer, nullable=False)
    source = Column(String(50), nullable=False)
    reason = Column(Text, nullable=True)
    created_by = Column(String(64), nullable=True)
    round_question_id = Column(
        Integer, ForeignKey('round_questions.id', ondelete='SET NULL'), nullable=True
    )
    answer_id = Column(Integer, ForeignKey('answers.id', ondelete='SET NULL'), nullable=True)
    revert_of = Column(Integer, ForeignKey('score_changes.id', ondelete='SET NULL'), nullable=True)
    reverted_at = Column(DateTime, nullable=True)
    reverted_by = Column(String(64), nullable=True)

    __table_args__ = (
        Index('idx_score_change_undo', 'match_id', 'reverted_at', 'revert_of', 'created_at'),
    )


class StarUse(BaseModel):
    __tablename__ = "star_uses"

    match_id = Column(Integer, ForeignKey('matches.id', ondelete='CASCADE'), nullable=False, index=True)
    round_question_id = Column(
        Integer, ForeignKey('round_questions.id', ondelete='CASCADE'), nullable=False
    )
    player_id = Column(
        Integer, ForeignKey('match_players.id', ondelete='CASCADE'), nullable=False
    )
    outcome = Column(String(10), nullable=True)
    declared_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint('round_question_id', 'player_id', name='uq_star_use_question_player'),
        CheckConstraint(
            "outcome IS NULL OR outcome IN ('applied', 'wasted')",
            name="ck_star_use_outcome"
        ),
    )
