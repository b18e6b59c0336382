"""
olympia/orm/base.py
Declarative base and the shared id/timestamp columns.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import Column, Integer, DateTime
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class BaseModel(Base):
    """
    Abstract base model with common fields.
    All Olympia tables inherit from this.
    """
    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)

    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
        comment="Timestamp when record was created"
    )

    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
        comment="Timestamp when record was last updated"
    )

    def as_payload(self, exclude: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """
        Flat, JSON-safe dict of the row's column values.

        Used as the payload of realtime change notifications.
        """
        skipped = set(exclude or ())
        payload: Dict[str, Any] = {}
        for column in self.__table__.columns:
            if column.key in skipped:
                continue
            value = getattr(self, column.key)
            if isinstance(value, datetime):
                value = value.isoformat()
            payload[column.key] = value
        return payload
