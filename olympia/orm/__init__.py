"""
ORM models for the Olympia live engine.
Importing this package registers every table on Base.metadata.
"""
from olympia.orm.base import Base, BaseModel
from olympia.orm.match import Match, MatchPlayer, MatchRound, MatchStatus, RoundType, ROUND_ORDER
from olympia.orm.catalog import QuestionSet, QuestionSetItem, MatchQuestionSet, RoundQuestion
from olympia.orm.live_session import LiveSession, SessionStatus, QuestionState
from olympia.orm.buzzer import BuzzerEvent, BuzzerEventType, BuzzerResult
from olympia.orm.answer import Answer, AnswerKind
from olympia.orm.scoring import MatchScore, ScoreChange, StarUse, StarOutcome, LEDGER_ROUND_TYPES
from olympia.orm.realtime_event import RealtimeEvent

__all__ = [
    "Base",
    "BaseModel",
    "Match",
    "MatchPlayer",
    "MatchRound",
    "MatchStatus",
    "RoundType",
    "ROUND_ORDER",
    "QuestionSet",
    "QuestionSetItem",
    "MatchQuestionSet",
    "RoundQuestion",
    "LiveSession",
    "SessionStatus",
    "QuestionState",
    "BuzzerEvent",
    "BuzzerEventType",
    "BuzzerResult",
    "Answer",
    "AnswerKind",
    "MatchScore",
    "ScoreChange",
    "StarUse",
    "StarOutcome",
    "LEDGER_ROUND_TYPES",
    "RealtimeEvent",
]
