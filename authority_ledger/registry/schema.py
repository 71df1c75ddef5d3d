"""
Registry Schema — Pydantic models for divisions, officers, positions and events.

These models are the canonical data structures shared by the registries, the
authorization resolver, the document submission protocol, the event ledger
and the HTTP API.

Numeric conventions:
    Position indices 0..MAX_POSITION_INDEX are valid slot indices.
    MAX_POSITION_INDEX + 1 is the first out-of-range value.
    ADMIN_POSITION_INDEX is the sentinel meaning "acting as SystemAdmin".
"""

from __future__ import annotations

import enum
import re
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from authority_ledger.registry.errors import InvalidAddress


# ════════════════════════════════════════════════════════════════
# Constants
# ════════════════════════════════════════════════════════════════

ROOT_DIVISION_ID = "ROOT"

MAX_POSITION_INDEX = 999
ADMIN_POSITION_INDEX = 1001

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def normalize_address(address: str) -> str:
    """Return the lowercase ``0x``-prefixed form of a 20-byte hex address."""
    if not isinstance(address, str) or not _ADDRESS_RE.match(address):
        raise InvalidAddress(address)
    return address.lower()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class DivisionStatus(enum.IntEnum):
    """Lifecycle of a division. NOT_CREATED is the zero value of a lookup miss."""

    NOT_CREATED = 0
    ACTIVE = 1
    DEACTIVATED = 2


class OfficerStatus(enum.IntEnum):
    """Lifecycle of an officer identity."""

    NOT_CREATED = 0
    ACTIVE = 1
    DEACTIVATED = 2


class PositionRole(enum.IntEnum):
    """
    Role carried by a position slot.

    REVOKED is the tombstone value. Numeric values follow the wire encoding;
    privilege ordering is given by ``privilege`` instead.
    """

    REVOKED = 0
    DIVISION_ADMIN = 1
    MANAGER = 2
    STAFF = 3

    @property
    def privilege(self) -> int:
        """Higher means more authority. REVOKED carries none."""
        return _ROLE_PRIVILEGE[self]

    def satisfies(self, minimum: PositionRole) -> bool:
        """Whether this role is at or above ``minimum``."""
        return self is not PositionRole.REVOKED and self.privilege >= minimum.privilege


_ROLE_PRIVILEGE = {
    PositionRole.REVOKED: 0,
    PositionRole.STAFF: 1,
    PositionRole.MANAGER: 2,
    PositionRole.DIVISION_ADMIN: 3,
}


class AuthorityLevel(str, enum.Enum):
    """How a caller's authority was established by the resolver."""

    SYSTEM_ADMIN = "system_admin"
    DIVISION_ROLE = "division_role"
    UNAUTHORIZED = "unauthorized"


class EventType(str, enum.Enum):
    """Events emitted by state-changing operations."""

    SYSTEM_ADMIN_UPDATED = "system_admin_updated"
    DIVISION_CREATED = "division_created"
    DIVISION_UPDATED = "division_updated"
    DIVISION_DEACTIVATED = "division_deactivated"
    DIVISION_REACTIVATED = "division_reactivated"
    OFFICER_CREATED = "officer_created"
    OFFICER_INFO_UPDATED = "officer_info_updated"
    OFFICER_DEACTIVATED = "officer_deactivated"
    OFFICER_REACTIVATED = "officer_reactivated"
    POSITION_CREATED = "position_created"
    POSITION_NAME_UPDATED = "position_name_updated"
    POSITION_ROLE_UPDATED = "position_role_updated"
    POSITION_REVOKED = "position_revoked"
    DOCUMENT_SUBMITTED = "document_submitted"

    # System
    GENESIS = "genesis"


# ════════════════════════════════════════════════════════════════
# Registry Records
# ════════════════════════════════════════════════════════════════


class Division(BaseModel):
    """A node in the organizational hierarchy."""

    id: str
    name: str
    supervisory_id: str = Field(description="Parent division id or ROOT_DIVISION_ID")
    status: DivisionStatus = DivisionStatus.ACTIVE


class OfficerInfo(BaseModel):
    """Personal metadata of an officer. Opaque strings to the core."""

    name: str
    date_of_birth: str = ""
    sex: str = ""


class Position(BaseModel):
    """One slot in an officer's per-division position sequence."""

    name: str
    role: PositionRole

    @property
    def is_revoked(self) -> bool:
        return self.role is PositionRole.REVOKED


class Officer(BaseModel):
    """
    An officer identity and its position slots.

    ``positions`` maps a division id to an append-only list of slots; the list
    index is the position index. Slots are never removed.
    """

    address: str
    info: OfficerInfo
    status: OfficerStatus = OfficerStatus.ACTIVE
    positions: dict[str, list[Position]] = Field(default_factory=dict)

    def slots(self, division_id: str) -> list[Position]:
        return self.positions.get(division_id, [])


class OfficerView(BaseModel):
    """Read model returned by ``get_officer_info``."""

    info: OfficerInfo
    status: OfficerStatus


# ════════════════════════════════════════════════════════════════
# Documents
# ════════════════════════════════════════════════════════════════


class LegalDocument(BaseModel):
    """
    A document presented for submission.

    Only ``content`` is fingerprinted into the acceptance record; ``number``,
    ``name`` and ``published_at`` exist solely inside signature payloads.
    """

    number: str
    name: str
    published_at: int = Field(ge=0, description="Unix timestamp, seconds")
    content: bytes


class DocumentSigner(BaseModel):
    """A co-signer and the position it claims to sign under."""

    address: str
    division_id: str
    position_index: int = Field(ge=0)


# ════════════════════════════════════════════════════════════════
# Events
# ════════════════════════════════════════════════════════════════


class LedgerEvent(BaseModel):
    """Base for every emitted event."""

    event_type: EventType
    emitted_at: datetime = Field(default_factory=_utcnow)

    def payload(self) -> dict[str, Any]:
        """Event fields without the envelope, JSON-compatible."""
        return self.model_dump(mode="json", exclude={"event_type", "emitted_at"})


class SystemAdminUpdated(LedgerEvent):
    event_type: EventType = EventType.SYSTEM_ADMIN_UPDATED
    previous_admin: str
    new_admin: str


class DivisionCreated(LedgerEvent):
    event_type: EventType = EventType.DIVISION_CREATED
    division_id: str
    name: str
    supervisory_id: str


class DivisionUpdated(LedgerEvent):
    event_type: EventType = EventType.DIVISION_UPDATED
    division_id: str
    name: str
    supervisory_id: str


class DivisionDeactivated(LedgerEvent):
    event_type: EventType = EventType.DIVISION_DEACTIVATED
    division_id: str


class DivisionReactivated(LedgerEvent):
    event_type: EventType = EventType.DIVISION_REACTIVATED
    division_id: str


class OfficerCreated(LedgerEvent):
    event_type: EventType = EventType.OFFICER_CREATED
    address: str
    info: OfficerInfo


class OfficerInfoUpdated(LedgerEvent):
    event_type: EventType = EventType.OFFICER_INFO_UPDATED
    address: str
    info: OfficerInfo


class OfficerDeactivated(LedgerEvent):
    event_type: EventType = EventType.OFFICER_DEACTIVATED
    address: str


class OfficerReactivated(LedgerEvent):
    event_type: EventType = EventType.OFFICER_REACTIVATED
    address: str


class PositionCreated(LedgerEvent):
    event_type: EventType = EventType.POSITION_CREATED
    address: str
    division_id: str
    position: Position
    position_index: int
    creator_position_index: int


class PositionNameUpdated(LedgerEvent):
    event_type: EventType = EventType.POSITION_NAME_UPDATED
    address: str
    division_id: str
    position_index: int
    name: str
    creator_position_index: int


class PositionRoleUpdated(LedgerEvent):
    event_type: EventType = EventType.POSITION_ROLE_UPDATED
    address: str
    division_id: str
    position_index: int
    role: PositionRole
    creator_position_index: int


class PositionRevoked(LedgerEvent):
    event_type: EventType = EventType.POSITION_REVOKED
    address: str
    division_id: str
    position_index: int
    creator_position_index: int


class DocumentSubmitted(LedgerEvent):
    """The acceptance record of a document submission."""

    event_type: EventType = EventType.DOCUMENT_SUBMITTED
    content_hash: str = Field(description="0x-prefixed keccak-256 of the content")
    division_id: str
    publisher_position_index: int
    signers: list[str] = Field(default_factory=list)


# Recorded event type -> event model, for rebuilding events from ledger rows
EVENT_CLASSES: dict[EventType, type[LedgerEvent]] = {
    cls.model_fields["event_type"].default: cls
    for cls in (
        SystemAdminUpdated,
        DivisionCreated,
        DivisionUpdated,
        DivisionDeactivated,
        DivisionReactivated,
        OfficerCreated,
        OfficerInfoUpdated,
        OfficerDeactivated,
        OfficerReactivated,
        PositionCreated,
        PositionNameUpdated,
        PositionRoleUpdated,
        PositionRevoked,
        DocumentSubmitted,
    )
}
