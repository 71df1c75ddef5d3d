"""
Authorization Resolver — the single "who may act" check.

Every mutating entry point that is not SystemAdmin-exclusive asks this
resolver whether a caller, invoking one specific position index, may act on
a target division with at least a given role. A caller never searches its
own positions: it names the grant it is invoking, and the resolver checks
only that grant.

Decisions:

- SYSTEM_ADMIN: the caller used the admin sentinel index and is the admin
- DIVISION_ROLE: the caller's claimed slot satisfies the required role
- UNAUTHORIZED: anything else, with the typed error that explains why

The resolver holds no state of its own. It reads the officer and division
registries and the admin state supplied by the owning service.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from authority_ledger.registry.divisions import DivisionRegistry
from authority_ledger.registry.errors import (
    AuthorityError,
    DivisionNotActive,
    DivisionNotCreated,
    NotSystemAdminOrDivisionAdmin,
    NotTheDivisionManager,
    NotTheSystemAdmin,
    OfficerNotActive,
    OfficerNotCreated,
    PositionIndexNotAssigned,
    PositionIndexOutOfRange,
)
from authority_ledger.registry.officers import OfficerRegistry
from authority_ledger.registry.schema import (
    ADMIN_POSITION_INDEX,
    MAX_POSITION_INDEX,
    AuthorityLevel,
    DivisionStatus,
    OfficerStatus,
    PositionRole,
)

logger = logging.getLogger(__name__)

RoleErrorFactory = Callable[[str, str], AuthorityError]


# Error raised when a valid slot carries too little authority. Any live slot
# satisfies STAFF, so only the two stricter requirements need one.
ROLE_ERRORS: dict[PositionRole, RoleErrorFactory] = {
    PositionRole.DIVISION_ADMIN: NotSystemAdminOrDivisionAdmin,
    PositionRole.MANAGER: NotTheDivisionManager,
}


@dataclass
class AuthorizationResult:
    """Outcome of resolving one position claim."""

    level: AuthorityLevel
    caller: str
    division_id: str
    position_index: int
    role: PositionRole | None = None
    error: AuthorityError | None = None

    @property
    def is_allowed(self) -> bool:
        return self.level is not AuthorityLevel.UNAUTHORIZED

    @property
    def is_system_admin(self) -> bool:
        return self.level is AuthorityLevel.SYSTEM_ADMIN

    def raise_for_denial(self) -> AuthorizationResult:
        """Raise the carried error if unauthorized; otherwise return self."""
        if self.error is not None:
            raise self.error
        return self


class AuthorizationResolver:
    """
    Central capability resolution for position-based authority.

    Usage:
        resolver = AuthorizationResolver(divisions, officers, lambda: admin)
        resolver.require(caller, 0, "H26", PositionRole.MANAGER)
    """

    def __init__(
        self,
        divisions: DivisionRegistry,
        officers: OfficerRegistry,
        admin_lookup: Callable[[], str],
    ) -> None:
        """
        Args:
            divisions: Division registry to read division state from.
            officers: Officer registry to read officer and slot state from.
            admin_lookup: Returns the current SystemAdmin address.
        """
        self.divisions = divisions
        self.officers = officers
        self._admin_lookup = admin_lookup

    @property
    def system_admin(self) -> str:
        return self._admin_lookup()

    def is_system_admin(self, caller: str) -> bool:
        return caller == self._admin_lookup()

    def require_system_admin(self, caller: str) -> None:
        if not self.is_system_admin(caller):
            raise NotTheSystemAdmin(caller)

    def resolve(
        self,
        caller: str,
        position_index: int,
        division_id: str,
        minimum_role: PositionRole,
    ) -> AuthorizationResult:
        """
        Classify the caller's authority over ``division_id``.

        Checks run in a fixed order so that the first failing condition
        determines the error: admin sentinel, index range, caller identity
        and activity, division existence and activity, slot assignment,
        slot role.

        Args:
            caller: Normalized caller address.
            position_index: Claimed slot index, or ADMIN_POSITION_INDEX.
            division_id: Division the caller wants to act on.
            minimum_role: Least privileged role that is sufficient.

        Returns:
            AuthorizationResult. Never raises for authorization failures.
        """

        def deny(error: AuthorityError) -> AuthorizationResult:
            logger.debug(
                "Authorization denied: caller=%s division=%s index=%d reason=%s",
                caller, division_id, position_index, error.name,
            )
            return AuthorizationResult(
                level=AuthorityLevel.UNAUTHORIZED,
                caller=caller,
                division_id=division_id,
                position_index=position_index,
                error=error,
            )

        if position_index == ADMIN_POSITION_INDEX:
            if not self.is_system_admin(caller):
                return deny(NotTheSystemAdmin(caller))
            division_error = self._division_error(division_id)
            if division_error is not None:
                return deny(division_error)
            return AuthorizationResult(
                level=AuthorityLevel.SYSTEM_ADMIN,
                caller=caller,
                division_id=division_id,
                position_index=position_index,
            )

        if not 0 <= position_index <= MAX_POSITION_INDEX:
            return deny(PositionIndexOutOfRange(position_index))

        officer_status = self.officers.status(caller)
        if officer_status is OfficerStatus.NOT_CREATED:
            return deny(OfficerNotCreated(caller))
        if officer_status is not OfficerStatus.ACTIVE:
            return deny(OfficerNotActive(caller))

        division_error = self._division_error(division_id)
        if division_error is not None:
            return deny(division_error)

        slots = self.officers.require(caller).slots(division_id)
        if position_index >= len(slots) or slots[position_index].is_revoked:
            return deny(PositionIndexNotAssigned(caller, division_id, position_index))

        role = slots[position_index].role
        if not role.satisfies(minimum_role):
            return deny(ROLE_ERRORS[minimum_role](caller, division_id))

        return AuthorizationResult(
            level=AuthorityLevel.DIVISION_ROLE,
            caller=caller,
            division_id=division_id,
            position_index=position_index,
            role=role,
        )

    def require(
        self,
        caller: str,
        position_index: int,
        division_id: str,
        minimum_role: PositionRole,
    ) -> AuthorizationResult:
        """Resolve and raise the typed error on denial."""
        return self.resolve(caller, position_index, division_id, minimum_role).raise_for_denial()

    def _division_error(self, division_id: str) -> AuthorityError | None:
        status = self.divisions.status(division_id)
        if status is DivisionStatus.NOT_CREATED:
            return DivisionNotCreated(division_id)
        if status is not DivisionStatus.ACTIVE:
            return DivisionNotActive(division_id)
        return None
