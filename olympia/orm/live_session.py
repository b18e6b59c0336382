"""
Olympia — Live Session ORM Model

The live session is the single source of truth for what is on screen.
It is a versioned aggregate: every UPDATE checks the ``version`` column, so
two writers racing on the same session cannot silently overwrite each other.
"""
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Boolean, CheckConstraint
)
from sqlalchemy.orm import validates

from olympia.core.db_types import MutableJSON
from olympia.exceptions import PreconditionError
from olympia.orm.base import BaseModel


class SessionStatus(str, PyEnum):
    PENDING = "pending"
    RUNNING = "running"
    ENDED = "ended"


class QuestionState(str, PyEnum):
    HIDDEN = "hidden"
    SHOWING = "showing"
    ANSWER_REVEALED = "answer_revealed"
    COMPLETED = "completed"


SESSION_TRANSITIONS = {
    SessionStatus.PENDING: {SessionStatus.RUNNING, SessionStatus.ENDED},
    SessionStatus.RUNNING: {SessionStatus.ENDED},
    SessionStatus.ENDED: {SessionStatus.RUNNING},
}


class LiveSession(BaseModel):
    __tablename__ = "live_sessions"

    match_id = Column(
        Integer, ForeignKey('matches.id', ondelete='CASCADE'), nullable=False, unique=True
    )
    status = Column(String(20), nullable=False, default=SessionStatus.PENDING.value)
    join_code = Column(String(16), nullable=False, unique=True, index=True)

    player_password_hash = Column(String(255), nullable=True)
    mc_password_hash = Column(String(255), nullable=True)
    requires_player_password = Column(Boolean, nullable=False, default=True)

    current_round_id = Column(
        Integer, ForeignKey('match_rounds.id', ondelete='SET NULL'), nullable=True
    )
    current_round_type = Column(String(20), nullable=True)
    current_round_question_id = Column(
        Integer, ForeignKey('round_questions.id', ondelete='SET NULL'), nullable=True
    )
    question_state = Column(String(20), nullable=False, default=QuestionState.HIDDEN.value)
    timer_deadline = Column(DateTime, nullable=True)
    buzzer_enabled = Column(Boolean, nullable=False, default=True)
    show_scoreboard_overlay = Column(Boolean, nullable=False, default=False)
    show_answers_overlay = Column(Boolean, nullable=False, default=False)
    guest_media_control = Column(MutableJSON, nullable=False, default=dict)

    started_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'running', 'ended')",
            name="ck_live_session_status"
        ),
        CheckConstraint(
            "question_state IN ('hidden', 'showing', 'answer_revealed', 'completed')",
            name="ck_live_session_question_state"
        ),
    )

    @validates('status')
    def validate_status(self, key, status):
        status = SessionStatus(status)
        current = self.status
        if current is None or current == status.value:
            return status.value
        if status not in SESSION_TRANSITIONS[SessionStatus(current)]:
            raise PreconditionError(f"Session cannot move from {current} to {status.value}")
        return status.value

    @validates('question_state')
    def validate_question_state(self, key, state):
        return QuestionState(state).value

    @property
    def is_running(self) -> bool:
        return self.status == SessionStatus.RUNNING.value

    def snapshot(self) -> dict:
        """Viewer-safe view of the session (no password hashes)."""
        return self.as_payload(exclude=("player_password_hash", "mc_password_hash"))
