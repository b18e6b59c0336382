"""
Olympia — Question Catalog ORM Models

Question sets are imported elsewhere and are read-only here. Assigning sets
to a match materializes RoundQuestion rows, which carry the mutable
per-match fields (target player, finish value, meta).
"""
from sqlalchemy import (
    Column, Integer, String, Text, ForeignKey,
    UniqueConstraint, Index, CheckConstraint
)
from sqlalchemy.orm import relationship

from olympia.core.db_types import MutableJSON
from olympia.orm.base import BaseModel


class QuestionSet(BaseModel):
    __tablename__ = "question_sets"

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    items = relationship(
        "QuestionSetItem", back_populates="question_set",
        order_by="QuestionSetItem.order_index", cascade="all, delete-orphan"
    )


class QuestionSetItem(BaseModel):
    """An imported question. ``code`` decides which round it belongs to."""
    __tablename__ = "question_set_items"

    question_set_id = Column(
        Integer, ForeignKey('question_sets.id', ondelete='CASCADE'), nullable=False, index=True
    )
    code = Column(String(64), nullable=False)
    question_text = Column(Text, nullable=True)
    answer_text = Column(Text, nullable=True)
    note = Column(Text, nullable=True)
    media_url = Column(String(1024), nullable=True)
    order_index = Column(Integer, nullable=False, default=0)

    question_set = relationship("QuestionSet", back_populates="items")

    __table_args__ = (
        Index('idx_question_set_item_order', 'question_set_id', 'order_index'),
    )


class MatchQuestionSet(BaseModel):
    __tablename__ = "match_question_sets"

    match_id = Column(Integer, ForeignKey('matches.id', ondelete='CASCADE'), nullable=False, index=True)
    question_set_id = Column(
        Integer, ForeignKey('question_sets.id', ondelete='CASCADE'), nullable=False
    )

    __table_args__ = (
        UniqueConstraint('match_id', 'question_set_id', name='uq_match_question_set'),
    )


class RoundQuestion(BaseModel):
    """
    A question slot inside a match round.

    Finish-round slots start empty and are filled by package selection;
    seat ``s`` owns slots ``3(s-1)+1 .. 3(s-1)+3``.
    """
    __tablename__ = "round_questions"

    match_round_id = Column(
        Integer, ForeignKey('match_rounds.id', ondelete='CASCADE'), nullable=False, index=True
    )
    order_index = Column(Integer, nullable=False)
    code = Column(String(64), nullable=True)
    question_set_item_id = Column(
        Integer, ForeignKey('question_set_items.id', ondelete='SET NULL'), nullable=True
    )
    question_text = Column(Text, nullable=True)
    answer_text = Column(Text, nullable=True)
    note = Column(Text, nullable=True)
    media_url = Column(String(1024), nullable=True)
    target_player_id = Column(
        Integer, ForeignKey('match_players.id', ondelete='SET NULL'), nullable=True
    )
    value = Column(Integer, nullable=True)
    meta = Column(MutableJSON, nullable=False, default=dict)

    match_round = relationship("MatchRound", back_populates="questions")

    __table_args__ = (
        UniqueConstraint('match_round_id', 'order_index', name='uq_round_question_order'),
        CheckConstraint("value IS NULL OR value IN (20, 30)", name="ck_round_question_value"),
    )
