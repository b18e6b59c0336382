"""
Olympia — Answer ORM Model

One row per submission. ``is_correct`` stays NULL until graded and
``points_awarded`` stays NULL until scored.
"""
from enum import Enum as PyEnum

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Boolean, Index

from olympia.orm.base import BaseModel


class AnswerKind(str, PyEnum):
    ANSWER = "answer"
    OBSTACLE_GUESS = "obstacle_guess"
    REVEAL = "reveal"


class Answer(BaseModel):
    __tablename__ = "answers"

    match_id = Column(Integer, ForeignKey('matches.id', ondelete='CASCADE'), nullable=False, index=True)
    round_question_id = Column(
        Integer, ForeignKey('round_questions.id', ondelete='CASCADE'), nullable=False
    )
    player_id = Column(
        Integer, ForeignKey('match_players.id', ondelete='CASCADE'), nullable=True
    )
    kind = Column(String(20), nullable=False, default=AnswerKind.ANSWER.value)
    answer_text = Column(Text, nullable=True)
    is_correct = Column(Boolean, nullable=True)
    points_awarded = Column(Integer, nullable=True)
    response_time_ms = Column(Integer, nullable=True)
    submitted_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index('idx_answer_question_player', 'round_question_id', 'player_id', 'submitted_at'),
    )
