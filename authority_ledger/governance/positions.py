"""
Position Manager — creates, renames, re-roles and revokes position slots.

All operations are mediated by the AuthorizationResolver and require the
caller to act as SystemAdmin (admin sentinel index) or through a
DIVISION_ADMIN slot in the target division. Revocation and role updates mutate
the same field but stay distinct operations with distinct events: a role
update can never set REVOKED, and a revoked slot accepts neither.
"""

from __future__ import annotations

import logging

from authority_ledger.governance.authorization import AuthorizationResolver
from authority_ledger.registry.errors import InvalidCreatedPositionRole, InvalidUpdatedRole
from authority_ledger.registry.officers import OfficerRegistry
from authority_ledger.registry.schema import (
    Position,
    PositionCreated,
    PositionNameUpdated,
    PositionRevoked,
    PositionRole,
    PositionRoleUpdated,
)

logger = logging.getLogger(__name__)


class PositionManager:
    """Slot lifecycle for officers' per-division position sequences."""

    def __init__(self, resolver: AuthorizationResolver, officers: OfficerRegistry) -> None:
        self.resolver = resolver
        self.officers = officers

    # ── Reads ───────────────────────────────────────────────────

    def get_position(self, address: str, division_id: str, position_index: int) -> Position:
        """Return a copy of the slot; revoked slots are returned as-is."""
        return self.officers.get_slot(address, division_id, position_index).model_copy()

    # ── Mutators ────────────────────────────────────────────────

    def create_position(
        self,
        caller: str,
        address: str,
        division_id: str,
        position: Position,
        creator_position_index: int,
    ) -> PositionCreated:
        """
        Append a new slot for ``address`` in ``division_id``.

        Returns:
            PositionCreated event carrying the new index and the creator's index.

        Raises:
            InvalidCreatedPositionRole: role is REVOKED.
            OfficerNotCreated / OfficerNotActive: target officer unusable.
            Any resolver error for the caller's claim.
        """
        self.resolver.require(caller, creator_position_index, division_id, PositionRole.DIVISION_ADMIN)
        if position.role is PositionRole.REVOKED:
            raise InvalidCreatedPositionRole()
        self.officers.require_active(address)

        position_index = self.officers.append_slot(address, division_id, position)
        return PositionCreated(
            address=address,
            division_id=division_id,
            position=position,
            position_index=position_index,
            creator_position_index=creator_position_index,
        )

    def update_position_name(
        self,
        caller: str,
        address: str,
        division_id: str,
        position_index: int,
        name: str,
        creator_position_index: int,
    ) -> PositionNameUpdated:
        self.resolver.require(caller, creator_position_index, division_id, PositionRole.DIVISION_ADMIN)
        self.officers.set_slot_name(address, division_id, position_index, name)
        logger.info(
            "Position renamed: officer=%s division=%s index=%d",
            address, division_id, position_index,
        )
        return PositionNameUpdated(
            address=address,
            division_id=division_id,
            position_index=position_index,
            name=name,
            creator_position_index=creator_position_index,
        )

    def update_position_role(
        self,
        caller: str,
        address: str,
        division_id: str,
        position_index: int,
        role: PositionRole,
        creator_position_index: int,
    ) -> PositionRoleUpdated:
        self.resolver.require(caller, creator_position_index, division_id, PositionRole.DIVISION_ADMIN)
        if role is PositionRole.REVOKED:
            raise InvalidUpdatedRole()
        self.officers.set_slot_role(address, division_id, position_index, role)
        logger.info(
            "Position role updated: officer=%s division=%s index=%d role=%s",
            address, division_id, position_index, role.name,
        )
        return PositionRoleUpdated(
            address=address,
            division_id=division_id,
            position_index=position_index,
            role=role,
            creator_position_index=creator_position_index,
        )

    def revoke_position(
        self,
        caller: str,
        address: str,
        division_id: str,
        position_index: int,
        creator_position_index: int,
    ) -> PositionRevoked:
        """Tombstone a slot. The index stays assigned to its officer forever."""
        self.resolver.require(caller, creator_position_index, division_id, PositionRole.DIVISION_ADMIN)
        self.officers.set_slot_role(address, division_id, position_index, PositionRole.REVOKED)
        logger.info(
            "Position revoked: officer=%s division=%s index=%d",
            address, division_id, position_index,
        )
        return PositionRevoked(
            address=address,
            division_id=division_id,
            position_index=position_index,
            creator_position_index=creator_position_index,
        )
