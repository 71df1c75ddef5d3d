"""
Officer Registry — officer identities, activation state and position slot arenas.

Each officer owns, per division, an append-only list of Position slots. A
slot's index and division binding are permanent once created: revocation is
a terminal value transition (role = REVOKED), never a removal, so every index
any caller has ever held stays valid for audit. A revoked slot cannot be
renamed, re-roled or revoked again.

Addresses passed to this registry are expected to be normalized already
(see ``schema.normalize_address``).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from authority_ledger.registry.errors import (
    OfficerAlreadyCreated,
    OfficerNotActive,
    OfficerNotCreated,
    OfficerNotDeactivated,
    PositionIndexNotAssigned,
    PositionIndexOutOfRange,
)
from authority_ledger.registry.schema import (
    MAX_POSITION_INDEX,
    Officer,
    OfficerCreated,
    OfficerDeactivated,
    OfficerInfo,
    OfficerInfoUpdated,
    OfficerReactivated,
    OfficerStatus,
    Position,
    PositionRole,
)

logger = logging.getLogger(__name__)


class OfficerRegistry:
    """Owns every officer record and its position slots."""

    def __init__(self) -> None:
        self._officers: dict[str, Officer] = {}

    # ── Identity reads ──────────────────────────────────────────

    def get(self, address: str) -> Officer | None:
        return self._officers.get(address)

    def require(self, address: str) -> Officer:
        """Return the officer or raise ``OfficerNotCreated``."""
        officer = self._officers.get(address)
        if officer is None:
            raise OfficerNotCreated(address)
        return officer

    def require_active(self, address: str) -> Officer:
        officer = self.require(address)
        if officer.status is not OfficerStatus.ACTIVE:
            raise OfficerNotActive(address)
        return officer

    def status(self, address: str) -> OfficerStatus:
        officer = self._officers.get(address)
        return officer.status if officer is not None else OfficerStatus.NOT_CREATED

    def exists(self, address: str) -> bool:
        return address in self._officers

    def is_active(self, address: str) -> bool:
        return self.status(address) is OfficerStatus.ACTIVE

    def __len__(self) -> int:
        return len(self._officers)

    # ── Identity mutators ───────────────────────────────────────

    def create(self, address: str, info: OfficerInfo) -> OfficerCreated:
        if address in self._officers:
            raise OfficerAlreadyCreated(address)
        self._officers[address] = Officer(
            address=address, info=info.model_copy(), status=OfficerStatus.ACTIVE
        )
        logger.info("Officer created: %s", address)
        return OfficerCreated(address=address, info=info)

    def update_info(self, address: str, info: OfficerInfo) -> OfficerInfoUpdated:
        officer = self.require(address)
        officer.info = info.model_copy()
        logger.info("Officer info updated: %s", address)
        return OfficerInfoUpdated(address=address, info=info)

    def deactivate(self, address: str) -> OfficerDeactivated:
        if self.status(address) is not OfficerStatus.ACTIVE:
            raise OfficerNotActive(address)
        self._officers[address].status = OfficerStatus.DEACTIVATED
        logger.info("Officer deactivated: %s", address)
        return OfficerDeactivated(address=address)

    def reactivate(self, address: str) -> OfficerReactivated:
        if self.status(address) is not OfficerStatus.DEACTIVATED:
            raise OfficerNotDeactivated(address)
        self._officers[address].status = OfficerStatus.ACTIVE
        logger.info("Officer reactivated: %s", address)
        return OfficerReactivated(address=address)

    # ── Checkpoints ─────────────────────────────────────────────

    def checkpoint(self, addresses: Iterable[str]) -> dict[str, Officer | None]:
        """Deep copies of the named officers, slots included."""
        saved: dict[str, Officer | None] = {}
        for address in addresses:
            officer = self._officers.get(address)
            saved[address] = officer.model_copy(deep=True) if officer is not None else None
        return saved

    def rollback(self, saved: dict[str, Officer | None]) -> None:
        for address, officer in saved.items():
            if officer is None:
                self._officers.pop(address, None)
            else:
                self._officers[address] = officer

    # ── Position slots ──────────────────────────────────────────

    def slot_count(self, address: str, division_id: str) -> int:
        officer = self._officers.get(address)
        return len(officer.slots(division_id)) if officer is not None else 0

    def get_slot(self, address: str, division_id: str, position_index: int) -> Position:
        """
        Return the slot at ``position_index``, revoked or not.

        Raises:
            OfficerNotCreated: unknown officer.
            PositionIndexOutOfRange: index outside 0..MAX_POSITION_INDEX.
            PositionIndexNotAssigned: index in range but never created.
        """
        officer = self.require(address)
        if not 0 <= position_index <= MAX_POSITION_INDEX:
            raise PositionIndexOutOfRange(position_index)
        slots = officer.slots(division_id)
        if position_index >= len(slots):
            raise PositionIndexNotAssigned(address, division_id, position_index)
        return slots[position_index]

    def check_slot_capacity(self, address: str, division_id: str) -> int:
        """Return the index the next appended slot would take, or raise if full."""
        next_index = self.slot_count(address, division_id)
        if next_index > MAX_POSITION_INDEX:
            raise PositionIndexOutOfRange(next_index)
        return next_index

    def append_slot(self, address: str, division_id: str, position: Position) -> int:
        officer = self.require(address)
        next_index = self.check_slot_capacity(address, division_id)
        officer.positions.setdefault(division_id, []).append(position.model_copy())
        logger.info(
            "Position slot appended: officer=%s division=%s index=%d role=%s",
            address, division_id, next_index, position.role.name,
        )
        return next_index

    def require_assigned_slot(self, address: str, division_id: str, position_index: int) -> Position:
        """Return a live slot. A revoked slot is a tombstone and reads as unassigned."""
        slot = self.get_slot(address, division_id, position_index)
        if slot.is_revoked:
            raise PositionIndexNotAssigned(address, division_id, position_index)
        return slot

    def set_slot_name(self, address: str, division_id: str, position_index: int, name: str) -> None:
        self.require_assigned_slot(address, division_id, position_index).name = name

    def set_slot_role(
        self, address: str, division_id: str, position_index: int, role: PositionRole
    ) -> None:
        self.require_assigned_slot(address, division_id, position_index).role = role
