"""
Olympia — Realtime Event Log

Every committed mutation leaves one row here. ``event_sequence`` is
strictly increasing per match so reconnecting viewers can request the delta
after the last sequence they saw.
"""
from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint, Index

from olympia.core.db_types import UniversalJSON
from olympia.orm.base import BaseModel


class RealtimeEvent(BaseModel):
    __tablename__ = "realtime_events"

    match_id = Column(Integer, ForeignKey('matches.id', ondelete='CASCADE'), nullable=False)
    session_id = Column(
        Integer, ForeignKey('live_sessions.id', ondelete='SET NULL'), nullable=True
    )
    event_sequence = Column(Integer, nullable=False)
    entity = Column(String(50), nullable=False)
    entity_id = Column(Integer, nullable=True)
    event_type = Column(String(30), nullable=False)
    payload = Column(UniversalJSON, nullable=False, default=dict)
    event_hash = Column(String(64), nullable=False)

    __table_args__ = (
        UniqueConstraint('match_id', 'event_sequence', name='uq_realtime_event_sequence'),
        Index('idx_realtime_event_match_seq', 'match_id', 'event_sequence'),
    )

    def to_message(self) -> dict:
        return {
            "match_id": self.match_id,
            "session_id": self.session_id,
            "event_sequence": self.event_sequence,
            "event_hash": self.event_hash,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "event_type": self.event_type,
            "payload": self.payload,
        }
