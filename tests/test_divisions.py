"""
Tests for the Division Registry and the SystemAdmin-only division operations.

Validates:
- Creation under ROOT and under existing divisions
- Duplicate and invalid-parent rejection
- Strict activation toggles
- Supervisory re-parenting without cycles
- Read models for unknown divisions
"""

from __future__ import annotations

import pytest

from authority_ledger.registry.divisions import DivisionRegistry
from authority_ledger.registry.errors import (
    DivisionAlreadyCreated,
    DivisionNotActive,
    DivisionNotCreated,
    DivisionNotDeactivated,
    InvalidSupervisoryDivisionId,
    NotTheSystemAdmin,
)
from authority_ledger.registry.schema import (
    ROOT_DIVISION_ID,
    DivisionStatus,
    EventType,
)
from authority_ledger.service import DocumentAuthority

ADMIN = "0x00000000000000000000000000000000000000a1"
OUTSIDER = "0x00000000000000000000000000000000000000b2"
CORE = "0x0000000000000000000000000000000000000c03"


class TestDivisionRegistry:
    """Registry-level behavior with no access control."""

    def setup_method(self):
        self.registry = DivisionRegistry()
        self.registry.create("H26", "UBND Hanoi", ROOT_DIVISION_ID)

    def test_create_under_root(self):
        division = self.registry.require("H26")
        assert division.name == "UBND Hanoi"
        assert division.supervisory_id == ROOT_DIVISION_ID
        assert division.status is DivisionStatus.ACTIVE

    def test_create_returns_event(self):
        event = self.registry.create("H26-01", "District 1", "H26")
        assert event.event_type is EventType.DIVISION_CREATED
        assert event.division_id == "H26-01"
        assert event.supervisory_id == "H26"

    def test_duplicate_rejected(self):
        with pytest.raises(DivisionAlreadyCreated) as exc_info:
            self.registry.create("H26", "Other", ROOT_DIVISION_ID)
        assert exc_info.value.division_id == "H26"
        assert self.registry.require("H26").name == "UBND Hanoi"

    def test_root_id_is_reserved(self):
        with pytest.raises(DivisionAlreadyCreated):
            self.registry.create(ROOT_DIVISION_ID, "Root", ROOT_DIVISION_ID)

    def test_unknown_supervisory_rejected(self):
        with pytest.raises(InvalidSupervisoryDivisionId):
            self.registry.create("X1", "Orphan", "MISSING")
        assert not self.registry.exists("X1")

    def test_require_unknown(self):
        with pytest.raises(DivisionNotCreated):
            self.registry.require("MISSING")

    def test_status_of_unknown_is_not_created(self):
        assert self.registry.status("MISSING") is DivisionStatus.NOT_CREATED
        assert not self.registry.is_active("MISSING")

    def test_deactivate_then_reactivate(self):
        self.registry.deactivate("H26")
        assert self.registry.status("H26") is DivisionStatus.DEACTIVATED
        self.registry.reactivate("H26")
        assert self.registry.status("H26") is DivisionStatus.ACTIVE

    def test_deactivate_twice_fails(self):
        self.registry.deactivate("H26")
        with pytest.raises(DivisionNotActive):
            self.registry.deactivate("H26")
        assert self.registry.status("H26") is DivisionStatus.DEACTIVATED

    def test_reactivate_active_fails(self):
        with pytest.raises(DivisionNotDeactivated):
            self.registry.reactivate("H26")

    def test_toggles_on_unknown_division(self):
        with pytest.raises(DivisionNotActive):
            self.registry.deactivate("MISSING")
        with pytest.raises(DivisionNotDeactivated):
            self.registry.reactivate("MISSING")

    def test_deactivated_parent_still_accepts_children(self):
        self.registry.deactivate("H26")
        self.registry.create("H26-01", "District 1", "H26")
        assert self.registry.is_active("H26-01")

    def test_list_subdivisions_in_creation_order(self):
        self.registry.create("H26-02", "District 2", "H26")
        self.registry.create("H26-01", "District 1", "H26")
        ids = [d.id for d in self.registry.list_subdivisions("H26")]
        assert ids == ["H26-02", "H26-01"]
        assert [d.id for d in self.registry.list_subdivisions(ROOT_DIVISION_ID)] == ["H26"]


class TestDivisionUpdate:
    """Renaming and re-parenting."""

    def setup_method(self):
        self.registry = DivisionRegistry()
        self.registry.create("A", "A", ROOT_DIVISION_ID)
        self.registry.create("B", "B", "A")
        self.registry.create("C", "C", "B")
        self.registry.create("D", "D", ROOT_DIVISION_ID)

    def test_update_name_keeps_parent(self):
        event = self.registry.update_name("B", "Bravo")
        assert event.supervisory_id == "A"
        assert self.registry.require("B").name == "Bravo"

    def test_reparent(self):
        self.registry.update("C", "C", "D")
        assert self.registry.require("C").supervisory_id == "D"

    def test_reparent_to_root(self):
        self.registry.update("B", "B", ROOT_DIVISION_ID)
        assert self.registry.require("B").supervisory_id == ROOT_DIVISION_ID

    def test_self_parent_rejected(self):
        with pytest.raises(InvalidSupervisoryDivisionId):
            self.registry.update("B", "B", "B")

    def test_descendant_parent_rejected(self):
        with pytest.raises(InvalidSupervisoryDivisionId):
            self.registry.update("A", "A", "C")
        assert self.registry.require("A").supervisory_id == ROOT_DIVISION_ID

    def test_unknown_parent_rejected(self):
        with pytest.raises(InvalidSupervisoryDivisionId):
            self.registry.update("B", "B", "MISSING")

    def test_update_unknown_division(self):
        with pytest.raises(DivisionNotCreated):
            self.registry.update("MISSING", "M", ROOT_DIVISION_ID)


class TestDivisionAdministration:
    """Division operations through the authority service."""

    def setup_method(self):
        self.authority = DocumentAuthority(system_admin=ADMIN, core_address=CORE)

    def test_admin_creates_division(self):
        event = self.authority.create_division(ADMIN, "H26", "UBND Hanoi", ROOT_DIVISION_ID)
        assert event.division_id == "H26"
        assert self.authority.events == [event]

    def test_non_admin_rejected(self):
        with pytest.raises(NotTheSystemAdmin):
            self.authority.create_division(OUTSIDER, "H26", "UBND Hanoi", ROOT_DIVISION_ID)
        assert self.authority.get_division("H26").status is DivisionStatus.NOT_CREATED
        assert self.authority.events == []

    def test_admin_address_is_case_insensitive(self):
        self.authority.create_division(ADMIN.upper().replace("0X", "0x"), "H26", "H", ROOT_DIVISION_ID)
        assert self.authority.get_division("H26").status is DivisionStatus.ACTIVE

    def test_non_admin_cannot_toggle(self):
        self.authority.create_division(ADMIN, "H26", "UBND Hanoi", ROOT_DIVISION_ID)
        with pytest.raises(NotTheSystemAdmin):
            self.authority.deactivate_division(OUTSIDER, "H26")
        with pytest.raises(NotTheSystemAdmin):
            self.authority.update_division_name(OUTSIDER, "H26", "Renamed")

    def test_get_unknown_division(self):
        division = self.authority.get_division("MISSING")
        assert division.status is DivisionStatus.NOT_CREATED
        assert division.name == ""

    def test_get_division_returns_copy(self):
        self.authority.create_division(ADMIN, "H26", "UBND Hanoi", ROOT_DIVISION_ID)
        copy = self.authority.get_division("H26")
        copy.name = "tampered"
        assert self.authority.get_division("H26").name == "UBND Hanoi"

    def test_admin_transfer(self):
        event = self.authority.update_system_admin(ADMIN, OUTSIDER)
        assert event.previous_admin == ADMIN
        assert self.authority.get_system_admin() == OUTSIDER
        with pytest.raises(NotTheSystemAdmin):
            self.authority.create_division(ADMIN, "H26", "UBND Hanoi", ROOT_DIVISION_ID)
        self.authority.create_division(OUTSIDER, "H26", "UBND Hanoi", ROOT_DIVISION_ID)

    def test_admin_transfer_requires_admin(self):
        with pytest.raises(NotTheSystemAdmin):
            self.authority.update_system_admin(OUTSIDER, OUTSIDER)
        assert self.authority.get_system_admin() == ADMIN
