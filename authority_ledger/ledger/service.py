"""
Event Ledger Service — append-only, hash-chained persistence of emitted events.

The registries stay in memory; this ledger is the durable audit trail of
every accepted operation, including each document acceptance record, and
the history the registries are rebuilt from after a restart. Each
row stores SHA-256(previous_hash || canonical_json(row fields)), so altering,
inserting or dropping any row breaks verification from that point on.

Usage:
    ledger = EventLedgerService("sqlite:///events.db")
    ledger.initialize()

    ledger.append(event, actor=caller_address)
    ledger.append_many([officer_created, position_created], actor=caller_address)
    is_valid, count, message = ledger.verify_chain()
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from authority_ledger.ledger.models import Base, EventEntryDB
from authority_ledger.registry.errors import LedgerIntegrityError
from authority_ledger.registry.schema import EventType, LedgerEvent

logger = logging.getLogger(__name__)


GENESIS_HASH = "0" * 64  # previous_hash of sequence 0
GENESIS_ACTOR = "0x" + "0" * 40

_IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


class EventLedgerService:
    """Durable, verifiable record of authority events."""

    def __init__(self, database_url: str) -> None:
        """
        Args:
            database_url: SQLAlchemy connection string (sync driver).
        """
        engine_kwargs: dict[str, Any] = {"echo": False}
        if database_url in _IN_MEMORY_URLS:
            # One shared connection, otherwise every session sees an empty database
            engine_kwargs.update(poolclass=StaticPool, connect_args={"check_same_thread": False})
        self.engine = create_engine(database_url, **engine_kwargs)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

    # ── Writes ──────────────────────────────────────────────────

    def initialize(self) -> None:
        """Create the schema and seed the genesis entry if it is missing."""
        Base.metadata.create_all(self.engine)

        with self.SessionLocal() as session:
            if self._tip(session) is not None:
                return
            genesis = self._build_entry(
                sequence_number=0,
                previous_hash=GENESIS_HASH,
                timestamp=datetime.now(timezone.utc),
                event_type=EventType.GENESIS.value,
                actor=GENESIS_ACTOR,
                content={"message": "Genesis of the document authority event ledger"},
            )
            session.add(genesis)
            session.commit()
            logger.info("Genesis entry created: hash=%s", genesis.entry_hash[:16])

    def append(self, event: LedgerEvent, actor: str) -> EventEntryDB:
        """
        Chain one emitted event onto the current tip.

        Raises:
            LedgerIntegrityError: If the ledger has not been initialized.
        """
        return self.append_many([event], actor=actor)[0]

    def append_many(self, events: Sequence[LedgerEvent], actor: str) -> list[EventEntryDB]:
        """
        Chain several events emitted by one call in a single commit.

        Either every event is recorded or none is. The only write after genesis.

        Raises:
            LedgerIntegrityError: If the ledger has not been initialized.
        """
        with self.SessionLocal() as session:
            tip = self._tip(session)
            if tip is None:
                raise LedgerIntegrityError(
                    "Cannot append: no genesis entry found. Call initialize() first."
                )

            entries: list[EventEntryDB] = []
            for event in events:
                entry = self._build_entry(
                    sequence_number=tip.sequence_number + 1,
                    previous_hash=tip.entry_hash,
                    timestamp=event.emitted_at,
                    event_type=event.event_type.value,
                    actor=actor,
                    content=event.payload(),
                )
                session.add(entry)
                entries.append(entry)
                tip = entry
            session.commit()

        for entry in entries:
            logger.info(
                "Event appended: seq=%d type=%s actor=%s hash=%s",
                entry.sequence_number, entry.event_type, actor, entry.entry_hash[:16],
            )
        return entries

    # ── Verification ────────────────────────────────────────────

    def verify_chain(self) -> tuple[bool, int, str]:
        """
        Walk every entry from genesis forward, recomputing each hash.

        Returns:
            Tuple of (is_valid, entries_verified, message). On failure the
            count is the position of the first bad entry.
        """
        with self.SessionLocal() as session:
            entries: Sequence[EventEntryDB] = session.execute(
                select(EventEntryDB).order_by(EventEntryDB.sequence_number.asc())
            ).scalars().all()

        if not entries:
            return False, 0, "No entries found in ledger"

        expected_previous = GENESIS_HASH
        for position, entry in enumerate(entries):
            if entry.sequence_number != position:
                return (
                    False, position,
                    f"Sequence gap: found {entry.sequence_number} at position {position}",
                )
            if entry.previous_hash != expected_previous:
                return (
                    False, position,
                    f"Chain break at sequence {entry.sequence_number}: "
                    f"previous_hash does not match the prior entry",
                )
            recomputed = self._hash_entry(entry)
            if entry.entry_hash != recomputed:
                return (
                    False, position,
                    f"Hash mismatch at sequence {entry.sequence_number}: "
                    f"stored={entry.entry_hash[:16]}... computed={recomputed[:16]}...",
                )
            expected_previous = entry.entry_hash

        return True, len(entries), f"Chain verified: {len(entries)} entries, integrity intact"

    # ── Queries ─────────────────────────────────────────────────

    def get_by_sequence(self, sequence_number: int) -> EventEntryDB | None:
        with self.SessionLocal() as session:
            return session.execute(
                select(EventEntryDB).where(EventEntryDB.sequence_number == sequence_number)
            ).scalar_one_or_none()

    def get_entries_by_type(
        self,
        event_type: EventType | str,
        limit: int = 100,
        offset: int = 0,
    ) -> list[EventEntryDB]:
        """Entries of one event type, newest first."""
        value = event_type.value if isinstance(event_type, EventType) else event_type
        return self._query(EventEntryDB.event_type == value, limit=limit, offset=offset)

    def get_entries_by_actor(self, actor: str, limit: int = 100) -> list[EventEntryDB]:
        """Entries emitted by one caller address, newest first."""
        return self.find_entries(actor=actor, limit=limit)

    def get_latest_entries(self, limit: int = 50) -> list[EventEntryDB]:
        """The most recent entries, newest first."""
        return self._query(limit=limit)

    def find_entries(
        self,
        event_type: EventType | str | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[EventEntryDB]:
        """Entries matching every given filter, newest first."""
        criteria = []
        if event_type is not None:
            value = event_type.value if isinstance(event_type, EventType) else event_type
            criteria.append(EventEntryDB.event_type == value)
        if actor is not None:
            criteria.append(EventEntryDB.actor == actor.lower())
        return self._query(*criteria, limit=limit)

    def get_entries_in_order(self) -> list[EventEntryDB]:
        """Every entry after genesis, oldest first. Used to rebuild state on startup."""
        with self.SessionLocal() as session:
            return list(
                session.execute(
                    select(EventEntryDB)
                    .where(EventEntryDB.sequence_number > 0)
                    .order_by(EventEntryDB.sequence_number.asc())
                ).scalars().all()
            )

    def get_entry_count(self) -> int:
        with self.SessionLocal() as session:
            return session.execute(
                select(func.count()).select_from(EventEntryDB)
            ).scalar() or 0

    def count_by_type(self) -> dict[str, int]:
        """Number of entries per event type, genesis included."""
        with self.SessionLocal() as session:
            rows = session.execute(
                select(EventEntryDB.event_type, func.count())
                .group_by(EventEntryDB.event_type)
                .order_by(EventEntryDB.event_type)
            ).all()
        return {event_type: count for event_type, count in rows}

    # ── Internal ────────────────────────────────────────────────

    def _query(self, *criteria: Any, limit: int, offset: int = 0) -> list[EventEntryDB]:
        with self.SessionLocal() as session:
            stmt = select(EventEntryDB).where(*criteria) if criteria else select(EventEntryDB)
            return list(
                session.execute(
                    stmt.order_by(EventEntryDB.sequence_number.desc()).limit(limit).offset(offset)
                ).scalars().all()
            )

    @staticmethod
    def _tip(session: Session) -> EventEntryDB | None:
        return session.execute(
            select(EventEntryDB).order_by(EventEntryDB.sequence_number.desc()).limit(1)
        ).scalar_one_or_none()

    def _build_entry(
        self,
        sequence_number: int,
        previous_hash: str,
        timestamp: datetime,
        event_type: str,
        actor: str,
        content: dict[str, Any],
    ) -> EventEntryDB:
        entry_id = uuid4()
        return EventEntryDB(
            id=entry_id,
            sequence_number=sequence_number,
            previous_hash=previous_hash,
            entry_hash=self._compute_hash(
                entry_id, sequence_number, previous_hash, timestamp, event_type, actor, content
            ),
            timestamp=timestamp,
            event_type=event_type,
            actor=actor,
            content=content,
        )

    def _hash_entry(self, entry: EventEntryDB) -> str:
        return self._compute_hash(
            entry.id,
            entry.sequence_number,
            entry.previous_hash,
            entry.timestamp,
            entry.event_type,
            entry.actor,
            entry.content,
        )

    @staticmethod
    def _compute_hash(
        entry_id: UUID,
        sequence_number: int,
        previous_hash: str,
        timestamp: datetime,
        event_type: str,
        actor: str,
        content: dict[str, Any],
    ) -> str:
        """
        SHA-256(previous_hash || canonical_json(fields)).

        Timestamps are hashed as naive UTC so the value survives backends
        that drop timezone information on read.
        """
        if timestamp.tzinfo is not None:
            timestamp = timestamp.astimezone(timezone.utc).replace(tzinfo=None)
        fields = {
            "id": str(entry_id),
            "seq": sequence_number,
            "prev": previous_hash,
            "ts": timestamp.isoformat(),
            "type": event_type,
            "actor": actor,
            "content": content,
        }
        canonical = json.dumps(fields, sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.sha256(previous_hash.encode("utf-8") + canonical.encode("utf-8")).hexdigest()
