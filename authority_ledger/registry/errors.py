"""
Error taxonomy — every failure is a typed, named condition.

Errors abort the whole call with no state change. They are deterministic and
caller-correctable: fix the input and retry the call.
"""

from __future__ import annotations


class AuthorityError(Exception):
    """Base class for all ledger failures."""

    def __init__(self, message: str = "", **context: object) -> None:
        self.context = context
        super().__init__(message or self.__class__.__name__)

    @property
    def name(self) -> str:
        return self.__class__.__name__


# ── Identity not found ─────────────────────────────────────────


class IdentityNotFoundError(AuthorityError):
    pass


class DivisionNotCreated(IdentityNotFoundError):
    def __init__(self, division_id: str) -> None:
        self.division_id = division_id
        super().__init__(f"Division {division_id!r} has not been created", division_id=division_id)


class OfficerNotCreated(IdentityNotFoundError):
    def __init__(self, address: str) -> None:
        self.address = address
        super().__init__(f"Officer {address} has not been created", address=address)


# ── Lifecycle state ────────────────────────────────────────────


class LifecycleStateError(AuthorityError):
    pass


class DivisionNotActive(LifecycleStateError):
    def __init__(self, division_id: str) -> None:
        self.division_id = division_id
        super().__init__(f"Division {division_id!r} is not active", division_id=division_id)


class DivisionNotDeactivated(LifecycleStateError):
    def __init__(self, division_id: str) -> None:
        self.division_id = division_id
        super().__init__(f"Division {division_id!r} is not deactivated", division_id=division_id)


class DivisionAlreadyCreated(LifecycleStateError):
    def __init__(self, division_id: str) -> None:
        self.division_id = division_id
        super().__init__(f"Division {division_id!r} already exists", division_id=division_id)


class OfficerNotActive(LifecycleStateError):
    def __init__(self, address: str) -> None:
        self.address = address
        super().__init__(f"Officer {address} is not active", address=address)


class OfficerNotDeactivated(LifecycleStateError):
    def __init__(self, address: str) -> None:
        self.address = address
        super().__init__(f"Officer {address} is not deactivated", address=address)


class OfficerAlreadyCreated(LifecycleStateError):
    def __init__(self, address: str) -> None:
        self.address = address
        super().__init__(f"Officer {address} already exists", address=address)


# ── Authorization ──────────────────────────────────────────────


class AuthorizationError(AuthorityError):
    pass


class NotTheSystemAdmin(AuthorizationError):
    def __init__(self, caller: str) -> None:
        self.caller = caller
        super().__init__(f"{caller} is not the system admin", caller=caller)


class NotSystemAdminOrDivisionAdmin(AuthorizationError):
    def __init__(self, caller: str, division_id: str) -> None:
        self.caller = caller
        self.division_id = division_id
        super().__init__(
            f"{caller} is neither the system admin nor an admin of division {division_id!r}",
            caller=caller,
            division_id=division_id,
        )


class NotTheDivisionManager(AuthorizationError):
    def __init__(self, caller: str, division_id: str) -> None:
        self.caller = caller
        self.division_id = division_id
        super().__init__(
            f"{caller} does not hold a manager position in division {division_id!r}",
            caller=caller,
            division_id=division_id,
        )


# ── Position claims ────────────────────────────────────────────


class PositionClaimError(AuthorityError):
    pass


class PositionIndexOutOfRange(PositionClaimError):
    def __init__(self, position_index: int) -> None:
        self.position_index = position_index
        super().__init__(
            f"Position index {position_index} is out of range", position_index=position_index
        )


class PositionIndexNotAssigned(PositionClaimError):
    def __init__(self, address: str, division_id: str, position_index: int) -> None:
        self.address = address
        self.division_id = division_id
        self.position_index = position_index
        super().__init__(
            f"Position {position_index} of {address} in division {division_id!r} is not assigned",
            address=address,
            division_id=division_id,
            position_index=position_index,
        )


class InvalidCreatedPositionRole(PositionClaimError):
    def __init__(self) -> None:
        super().__init__("A position cannot be created with the REVOKED role")


class InvalidUpdatedRole(PositionClaimError):
    def __init__(self) -> None:
        super().__init__("Use revoke_position to revoke; REVOKED is not a valid update role")


# ── Document protocol ──────────────────────────────────────────


class DocumentProtocolError(AuthorityError):
    pass


class SignersSignaturesLengthNotMatch(DocumentProtocolError):
    def __init__(self, signer_count: int, signatures_length: int) -> None:
        self.signer_count = signer_count
        self.signatures_length = signatures_length
        super().__init__(
            f"{signatures_length} signature bytes do not match {signer_count} signers",
            signer_count=signer_count,
            signatures_length=signatures_length,
        )


class InvalidSignature(DocumentProtocolError):
    def __init__(self, signer: str, recovered: str | None = None) -> None:
        self.signer = signer
        self.recovered = recovered
        super().__init__(
            f"Signature for {signer} is invalid (recovered {recovered})",
            signer=signer,
            recovered=recovered,
        )


class InvalidSupervisoryDivisionId(DocumentProtocolError):
    def __init__(self, supervisory_id: str) -> None:
        self.supervisory_id = supervisory_id
        super().__init__(
            f"Supervisory division {supervisory_id!r} is not valid", supervisory_id=supervisory_id
        )


# ── Input / infrastructure ─────────────────────────────────────


class InvalidAddress(AuthorityError, ValueError):
    def __init__(self, address: object) -> None:
        self.address = address
        super().__init__(f"Not a 20-byte hex address: {address!r}", address=address)


class LedgerIntegrityError(Exception):
    """
    The durable event ledger cannot be written, verified or replayed.

    Kept outside ``AuthorityError``: it reports an unavailable or damaged
    store, not a rejected operation. The API answers it with 503.
    """
