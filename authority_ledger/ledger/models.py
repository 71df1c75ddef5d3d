"""
Event Ledger — SQLAlchemy model for the append-only record of emitted events.

Every state change in the authority service emits an event; when an event
ledger is attached, each event becomes one row here. Rows are hash-chained:
each entry stores SHA-256(previous_hash || canonical_json(fields)), so any
retroactive alteration is detectable by recomputing the chain.

Column types are portable so the same model runs on SQLite and PostgreSQL.
"""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Uuid, func
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all ledger models."""
    pass


class EventEntryDB(Base):
    """
    A single emitted event.

    This table is APPEND-ONLY. No rows may be updated or deleted.
    """

    __tablename__ = "event_entries"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)

    # Chain ordering
    sequence_number = Column(
        Integer, nullable=False, unique=True, index=True,
        comment="Monotonically increasing sequence number",
    )

    # Hash chain
    previous_hash = Column(
        String(64), nullable=False,
        comment="SHA-256 hash of the previous entry",
    )
    entry_hash = Column(
        String(64), nullable=False, unique=True,
        comment="SHA-256 hash of this entry",
    )

    timestamp = Column(
        DateTime(timezone=True), nullable=False, default=func.now(),
        comment="When the event was emitted",
    )

    event_type = Column(
        String(50), nullable=False, index=True,
        comment="EventType value",
    )

    actor = Column(
        String(42), nullable=False,
        comment="Address of the caller whose operation emitted the event",
    )

    content = Column(
        JSON, nullable=False,
        comment="Event fields — structure varies by event_type",
    )

    __table_args__ = (
        Index("ix_event_type_timestamp", "event_type", "timestamp"),
        Index("ix_event_actor", "actor"),
    )

    def __repr__(self) -> str:
        return (
            f"<EventEntry seq={self.sequence_number} "
            f"type={self.event_type} hash={self.entry_hash[:12]}...>"
        )
