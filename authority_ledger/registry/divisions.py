"""
Division Registry — the organizational hierarchy and each division's activation state.

Divisions are never deleted, only deactivated and reactivated. Activation is a
strict two-state toggle: a redundant transition is rejected rather than
ignored. Access control is not performed here; the owning service restricts
every mutator to the SystemAdmin.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from authority_ledger.registry.errors import (
    DivisionAlreadyCreated,
    DivisionNotActive,
    DivisionNotCreated,
    DivisionNotDeactivated,
    InvalidSupervisoryDivisionId,
)
from authority_ledger.registry.schema import (
    ROOT_DIVISION_ID,
    Division,
    DivisionCreated,
    DivisionDeactivated,
    DivisionReactivated,
    DivisionStatus,
    DivisionUpdated,
)

logger = logging.getLogger(__name__)


class DivisionRegistry:
    """Owns every division record, keyed by caller-chosen division id."""

    def __init__(self) -> None:
        self._divisions: dict[str, Division] = {}

    # ── Reads ───────────────────────────────────────────────────

    def get(self, division_id: str) -> Division | None:
        return self._divisions.get(division_id)

    def require(self, division_id: str) -> Division:
        """Return the division or raise ``DivisionNotCreated``."""
        division = self._divisions.get(division_id)
        if division is None:
            raise DivisionNotCreated(division_id)
        return division

    def status(self, division_id: str) -> DivisionStatus:
        division = self._divisions.get(division_id)
        return division.status if division is not None else DivisionStatus.NOT_CREATED

    def exists(self, division_id: str) -> bool:
        return division_id in self._divisions

    def is_active(self, division_id: str) -> bool:
        return self.status(division_id) is DivisionStatus.ACTIVE

    def list_subdivisions(self, division_id: str) -> list[Division]:
        """Direct children of a division (or of ROOT) in creation order."""
        return [d for d in self._divisions.values() if d.supervisory_id == division_id]

    def __len__(self) -> int:
        return len(self._divisions)

    # ── Mutators ────────────────────────────────────────────────

    def create(self, division_id: str, name: str, supervisory_id: str) -> DivisionCreated:
        if division_id in self._divisions or division_id == ROOT_DIVISION_ID:
            raise DivisionAlreadyCreated(division_id)
        if supervisory_id != ROOT_DIVISION_ID and supervisory_id not in self._divisions:
            raise InvalidSupervisoryDivisionId(supervisory_id)

        self._divisions[division_id] = Division(
            id=division_id,
            name=name,
            supervisory_id=supervisory_id,
            status=DivisionStatus.ACTIVE,
        )
        logger.info("Division created: %s (supervisory=%s)", division_id, supervisory_id)
        return DivisionCreated(division_id=division_id, name=name, supervisory_id=supervisory_id)

    def update_name(self, division_id: str, name: str) -> DivisionUpdated:
        division = self.require(division_id)
        division.name = name
        logger.info("Division renamed: %s", division_id)
        return DivisionUpdated(
            division_id=division_id, name=name, supervisory_id=division.supervisory_id
        )

    def update(self, division_id: str, name: str, supervisory_id: str) -> DivisionUpdated:
        """
        Replace the name and supervisory division of an existing division.

        The new supervisory id must be ROOT or an existing division, and must
        not be the division itself or one of its descendants.
        """
        division = self.require(division_id)
        if supervisory_id != ROOT_DIVISION_ID:
            if supervisory_id not in self._divisions:
                raise InvalidSupervisoryDivisionId(supervisory_id)
            if self._is_descendant_or_self(supervisory_id, division_id):
                raise InvalidSupervisoryDivisionId(supervisory_id)

        division.name = name
        division.supervisory_id = supervisory_id
        logger.info("Division updated: %s (supervisory=%s)", division_id, supervisory_id)
        return DivisionUpdated(division_id=division_id, name=name, supervisory_id=supervisory_id)

    def deactivate(self, division_id: str) -> DivisionDeactivated:
        if self.status(division_id) is not DivisionStatus.ACTIVE:
            raise DivisionNotActive(division_id)
        self._divisions[division_id].status = DivisionStatus.DEACTIVATED
        logger.info("Division deactivated: %s", division_id)
        return DivisionDeactivated(division_id=division_id)

    def reactivate(self, division_id: str) -> DivisionReactivated:
        if self.status(division_id) is not DivisionStatus.DEACTIVATED:
            raise DivisionNotDeactivated(division_id)
        self._divisions[division_id].status = DivisionStatus.ACTIVE
        logger.info("Division reactivated: %s", division_id)
        return DivisionReactivated(division_id=division_id)

    # ── Checkpoints ─────────────────────────────────────────────

    def checkpoint(self, division_ids: Iterable[str]) -> dict[str, Division | None]:
        """Deep copies of the named records; ``None`` marks an id not yet created."""
        saved: dict[str, Division | None] = {}
        for division_id in division_ids:
            division = self._divisions.get(division_id)
            saved[division_id] = division.model_copy(deep=True) if division is not None else None
        return saved

    def rollback(self, saved: dict[str, Division | None]) -> None:
        for division_id, division in saved.items():
            if division is None:
                self._divisions.pop(division_id, None)
            else:
                self._divisions[division_id] = division

    # ── Internal ────────────────────────────────────────────────

    def _is_descendant_or_self(self, candidate: str, ancestor: str) -> bool:
        """Walk up from ``candidate``; True if ``ancestor`` is on the chain."""
        current = candidate
        seen: set[str] = set()
        while current != ROOT_DIVISION_ID and current not in seen:
            if current == ancestor:
                return True
            seen.add(current)
            current = self._divisions[current].supervisory_id
        return False
