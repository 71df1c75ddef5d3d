"""
Document Authority Service — the top-level owner of all ledger state.

This is the single entry point for every operation. It owns:

- the SystemAdmin state (replaceable only by the current admin)
- the division and officer registries
- the authorization resolver, position manager and submission protocol
- the in-memory event journal and, optionally, a durable event ledger

Execution model: one logical transaction at a time. Every public method runs
under one re-entrant writer lock. The records a call may touch are
checkpointed first, and its events are written to the durable ledger before
they reach the journal; if validation, the mutation or that write fails, the
checkpoint is restored and the error propagates with state untouched.

A persistent ledger is the source of truth across restarts:
``DocumentAuthority.from_ledger`` verifies the chain and replays every
recorded event into fresh registries before accepting new calls.

Usage:
    authority = DocumentAuthority(system_admin=admin_address)
    authority.create_division(admin_address, "H26", "UBND Hanoi", ROOT_DIVISION_ID)
    authority.create_officer(admin_address, officer_address, OfficerInfo(name="A"))

    authority = DocumentAuthority.from_ledger(ledger)   # resume after restart
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import TypeVar

from sqlalchemy.exc import SQLAlchemyError

from authority_ledger.config import settings
from authority_ledger.documents.submission import DocumentSubmissionProtocol
from authority_ledger.governance.authorization import AuthorizationResolver
from authority_ledger.governance.positions import PositionManager
from authority_ledger.ledger.models import EventEntryDB
from authority_ledger.ledger.service import EventLedgerService
from authority_ledger.registry.divisions import DivisionRegistry
from authority_ledger.registry.errors import (
    AuthorityError,
    InvalidAddress,
    InvalidCreatedPositionRole,
    LedgerIntegrityError,
    OfficerAlreadyCreated,
)
from authority_ledger.registry.officers import OfficerRegistry
from authority_ledger.registry.schema import (
    EVENT_CLASSES,
    Division,
    DivisionCreated,
    DivisionDeactivated,
    DivisionReactivated,
    DivisionStatus,
    DivisionUpdated,
    DocumentSigner,
    DocumentSubmitted,
    EventType,
    LedgerEvent,
    LegalDocument,
    OfficerCreated,
    OfficerDeactivated,
    OfficerInfo,
    OfficerInfoUpdated,
    OfficerReactivated,
    OfficerStatus,
    OfficerView,
    Position,
    PositionCreated,
    PositionNameUpdated,
    PositionRevoked,
    PositionRole,
    PositionRoleUpdated,
    SystemAdminUpdated,
    normalize_address,
)

logger = logging.getLogger(__name__)

R = TypeVar("R")


@dataclass
class AdminState:
    """Holder of the single SystemAdmin identity."""

    system_admin: str


class DocumentAuthority:
    """Permissioned document-authority ledger."""

    def __init__(
        self,
        system_admin: str | None = None,
        core_address: str | None = None,
        ledger_service: EventLedgerService | None = None,
    ) -> None:
        """
        Args:
            system_admin: Initial admin address. Defaults to settings.
            core_address: Address the ingress gateway knows this core by.
            ledger_service: Optional durable event ledger. It is written to,
                never read from; use ``from_ledger`` to resume from one that
                already holds history.
        """
        self.admin = AdminState(normalize_address(system_admin or settings.system_admin_address))
        self.core_address = normalize_address(core_address or settings.core_address)
        self.ledger_service = ledger_service

        self.divisions = DivisionRegistry()
        self.officers = OfficerRegistry()
        self.resolver = AuthorizationResolver(
            self.divisions, self.officers, lambda: self.admin.system_admin
        )
        self.positions = PositionManager(self.resolver, self.officers)
        self.documents = DocumentSubmissionProtocol(self.resolver)

        self.events: list[LedgerEvent] = []
        self._lock = threading.RLock()

    @classmethod
    def from_ledger(
        cls,
        ledger_service: EventLedgerService,
        system_admin: str | None = None,
        core_address: str | None = None,
    ) -> DocumentAuthority:
        """
        Rebuild an authority from an initialized, persistent event ledger.

        The chain is verified first, then every recorded event is applied in
        sequence order. ``system_admin`` is the admin before the first
        recorded transfer.

        Raises:
            LedgerIntegrityError: The chain does not verify, or a recorded
                event cannot be applied to the state rebuilt so far.
        """
        is_valid, verified, message = ledger_service.verify_chain()
        if not is_valid:
            raise LedgerIntegrityError(f"Refusing to replay ledger: {message}")

        authority = cls(
            system_admin=system_admin, core_address=core_address, ledger_service=ledger_service
        )
        with authority._lock:
            for entry in ledger_service.get_entries_in_order():
                authority._replay(entry)
        logger.info(
            "Authority rebuilt from ledger: entries=%d divisions=%d officers=%d",
            verified, len(authority.divisions), len(authority.officers),
        )
        return authority

    # ── SystemAdmin ─────────────────────────────────────────────

    def get_system_admin(self) -> str:
        with self._lock:
            return self.admin.system_admin

    def update_system_admin(self, caller: str, new_admin: str) -> SystemAdminUpdated:
        caller, new_admin = normalize_address(caller), normalize_address(new_admin)
        with self._lock:
            self.resolver.require_system_admin(caller)

            def transfer() -> SystemAdminUpdated:
                previous = self.admin.system_admin
                self.admin.system_admin = new_admin
                logger.info("System admin transferred: %s -> %s", previous, new_admin)
                return SystemAdminUpdated(previous_admin=previous, new_admin=new_admin)

            return self._apply(caller, transfer)

    # ── Divisions ───────────────────────────────────────────────

    def create_division(
        self, caller: str, division_id: str, name: str, supervisory_id: str
    ) -> DivisionCreated:
        caller = normalize_address(caller)
        with self._lock:
            self.resolver.require_system_admin(caller)
            return self._apply(
                caller,
                lambda: self.divisions.create(division_id, name, supervisory_id),
                divisions=[division_id],
            )

    def update_division_name(self, caller: str, division_id: str, name: str) -> DivisionUpdated:
        caller = normalize_address(caller)
        with self._lock:
            self.resolver.require_system_admin(caller)
            return self._apply(
                caller, lambda: self.divisions.update_name(division_id, name), divisions=[division_id]
            )

    def update_division(
        self, caller: str, division_id: str, name: str, supervisory_id: str
    ) -> DivisionUpdated:
        caller = normalize_address(caller)
        with self._lock:
            self.resolver.require_system_admin(caller)
            return self._apply(
                caller,
                lambda: self.divisions.update(division_id, name, supervisory_id),
                divisions=[division_id],
            )

    def deactivate_division(self, caller: str, division_id: str) -> DivisionDeactivated:
        caller = normalize_address(caller)
        with self._lock:
            self.resolver.require_system_admin(caller)
            return self._apply(
                caller, lambda: self.divisions.deactivate(division_id), divisions=[division_id]
            )

    def reactivate_division(self, caller: str, division_id: str) -> DivisionReactivated:
        caller = normalize_address(caller)
        with self._lock:
            self.resolver.require_system_admin(caller)
            return self._apply(
                caller, lambda: self.divisions.reactivate(division_id), divisions=[division_id]
            )

    def get_division(self, division_id: str) -> Division:
        """Return the division; unknown ids read as an empty NOT_CREATED record."""
        with self._lock:
            division = self.divisions.get(division_id)
            if division is None:
                return Division(
                    id=division_id, name="", supervisory_id="", status=DivisionStatus.NOT_CREATED
                )
            return division.model_copy()

    def list_subdivisions(self, division_id: str) -> list[Division]:
        with self._lock:
            return [d.model_copy() for d in self.divisions.list_subdivisions(division_id)]

    # ── Officers ────────────────────────────────────────────────

    def create_officer(self, caller: str, address: str, info: OfficerInfo) -> OfficerCreated:
        """Create a bare officer identity. SystemAdmin only."""
        caller, address = normalize_address(caller), normalize_address(address)
        with self._lock:
            self.resolver.require_system_admin(caller)
            return self._apply(caller, lambda: self.officers.create(address, info), officers=[address])

    def create_officer_with_position(
        self,
        caller: str,
        address: str,
        info: OfficerInfo,
        division_id: str,
        creator_position_index: int,
        position: Position,
    ) -> tuple[OfficerCreated, PositionCreated]:
        """
        Create an officer and its first position slot in one step.

        Gated by the resolver for ``division_id``: the SystemAdmin (admin
        sentinel index) or a DIVISION_ADMIN of that division may onboard.
        Both events are recorded together or not at all.
        """
        caller, address = normalize_address(caller), normalize_address(address)
        with self._lock:
            self.resolver.require(
                caller, creator_position_index, division_id, PositionRole.DIVISION_ADMIN
            )
            if position.role is PositionRole.REVOKED:
                raise InvalidCreatedPositionRole()
            if self.officers.exists(address):
                raise OfficerAlreadyCreated(address)

            def onboard() -> tuple[OfficerCreated, PositionCreated]:
                created = self.officers.create(address, info)
                position_index = self.officers.append_slot(address, division_id, position)
                return created, PositionCreated(
                    address=address,
                    division_id=division_id,
                    position=position,
                    position_index=position_index,
                    creator_position_index=creator_position_index,
                )

            return self._apply(caller, onboard, officers=[address])

    def update_officer_info(self, caller: str, address: str, info: OfficerInfo) -> OfficerInfoUpdated:
        caller, address = normalize_address(caller), normalize_address(address)
        with self._lock:
            self.resolver.require_system_admin(caller)
            return self._apply(
                caller, lambda: self.officers.update_info(address, info), officers=[address]
            )

    def deactivate_officer(self, caller: str, address: str) -> OfficerDeactivated:
        caller, address = normalize_address(caller), normalize_address(address)
        with self._lock:
            self.resolver.require_system_admin(caller)
            return self._apply(caller, lambda: self.officers.deactivate(address), officers=[address])

    def reactivate_officer(self, caller: str, address: str) -> OfficerReactivated:
        caller, address = normalize_address(caller), normalize_address(address)
        with self._lock:
            self.resolver.require_system_admin(caller)
            return self._apply(caller, lambda: self.officers.reactivate(address), officers=[address])

    def get_officer_info(self, address: str) -> OfficerView:
        """Return info and status; unknown addresses read as NOT_CREATED."""
        address = normalize_address(address)
        with self._lock:
            officer = self.officers.get(address)
            if officer is None:
                return OfficerView(info=OfficerInfo(name=""), status=OfficerStatus.NOT_CREATED)
            return OfficerView(info=officer.info.model_copy(), status=officer.status)

    def is_officer_active(self, address: str) -> bool:
        address = normalize_address(address)
        with self._lock:
            return self.officers.is_active(address)

    # ── Positions ───────────────────────────────────────────────

    def create_position(
        self,
        caller: str,
        address: str,
        division_id: str,
        position: Position,
        creator_position_index: int,
    ) -> PositionCreated:
        caller, address = normalize_address(caller), normalize_address(address)
        with self._lock:
            return self._apply(
                caller,
                lambda: self.positions.create_position(
                    caller, address, division_id, position, creator_position_index
                ),
                officers=[address],
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
        caller, address = normalize_address(caller), normalize_address(address)
        with self._lock:
            return self._apply(
                caller,
                lambda: self.positions.update_position_name(
                    caller, address, division_id, position_index, name, creator_position_index
                ),
                officers=[address],
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
        caller, address = normalize_address(caller), normalize_address(address)
        with self._lock:
            return self._apply(
                caller,
                lambda: self.positions.update_position_role(
                    caller, address, division_id, position_index, role, creator_position_index
                ),
                officers=[address],
            )

    def revoke_position(
        self,
        caller: str,
        address: str,
        division_id: str,
        position_index: int,
        creator_position_index: int,
    ) -> PositionRevoked:
        caller, address = normalize_address(caller), normalize_address(address)
        with self._lock:
            return self._apply(
                caller,
                lambda: self.positions.revoke_position(
                    caller, address, division_id, position_index, creator_position_index
                ),
                officers=[address],
            )

    def get_officer_position(self, address: str, division_id: str, position_index: int) -> Position:
        address = normalize_address(address)
        with self._lock:
            return self.positions.get_position(address, division_id, position_index)

    def get_position_count(self, address: str, division_id: str) -> int:
        address = normalize_address(address)
        with self._lock:
            return self.officers.slot_count(address, division_id)

    # ── Documents ───────────────────────────────────────────────

    def submit_document(
        self,
        caller: str,
        division_id: str,
        publisher_position_index: int,
        document: LegalDocument,
        signers: Sequence[DocumentSigner],
        signatures: bytes,
    ) -> DocumentSubmitted:
        caller = normalize_address(caller)
        with self._lock:
            return self._apply(
                caller,
                lambda: self.documents.submit(
                    caller, division_id, publisher_position_index, document, signers, signatures
                ),
            )

    # ── Ingress gateway lookup ──────────────────────────────────

    def is_caller_allowed(
        self,
        sender: str,
        recipient: str,
        value: int = 0,
        gas_price: int = 0,
        gas_limit: int = 0,
        payload: bytes = b"",
    ) -> bool:
        """
        Admission check consumed by the transaction gateway.

        Allowed: the SystemAdmin to anyone, or an ACTIVE officer to this core.
        ``value``, ``gas_price``, ``gas_limit`` and ``payload`` are accepted
        for interface compatibility and do not affect the decision.
        """
        try:
            sender, recipient = normalize_address(sender), normalize_address(recipient)
        except InvalidAddress:
            return False
        with self._lock:
            if sender == self.admin.system_admin:
                return True
            return self.officers.is_active(sender) and recipient == self.core_address

    # ── Internal ────────────────────────────────────────────────

    def _apply(
        self,
        actor: str,
        mutation: Callable[[], R],
        divisions: Iterable[str] = (),
        officers: Iterable[str] = (),
    ) -> R:
        """
        Run one state change and record its events, all or nothing.

        ``mutation`` returns one event or a tuple of events. ``divisions`` and
        ``officers`` name every record it may touch; they are checkpointed
        and restored if the mutation or the durable write raises.

        Raises:
            LedgerIntegrityError: The durable ledger rejected the write.
        """
        saved_divisions = self.divisions.checkpoint(divisions)
        saved_officers = self.officers.checkpoint(officers)
        saved_admin = self.admin.system_admin
        try:
            result = mutation()
            events: list[LedgerEvent] = list(result) if isinstance(result, tuple) else [result]
            if self.ledger_service is not None:
                try:
                    self.ledger_service.append_many(events, actor=actor)
                except SQLAlchemyError as exc:
                    raise LedgerIntegrityError(f"Event ledger write failed: {exc}") from exc
        except Exception:
            self.divisions.rollback(saved_divisions)
            self.officers.rollback(saved_officers)
            self.admin.system_admin = saved_admin
            raise

        self.events.extend(events)
        return result

    def _replay(self, entry: EventEntryDB) -> None:
        """Apply one recorded event to the registries without recording it again."""
        try:
            event_class = EVENT_CLASSES[EventType(entry.event_type)]
            event = event_class.model_validate({**entry.content, "emitted_at": entry.timestamp})

            if isinstance(event, SystemAdminUpdated):
                self.admin.system_admin = event.new_admin
            elif isinstance(event, DivisionCreated):
                self.divisions.create(event.division_id, event.name, event.supervisory_id)
            elif isinstance(event, DivisionUpdated):
                self.divisions.update(event.division_id, event.name, event.supervisory_id)
            elif isinstance(event, DivisionDeactivated):
                self.divisions.deactivate(event.division_id)
            elif isinstance(event, DivisionReactivated):
                self.divisions.reactivate(event.division_id)
            elif isinstance(event, OfficerCreated):
                self.officers.create(event.address, event.info)
            elif isinstance(event, OfficerInfoUpdated):
                self.officers.update_info(event.address, event.info)
            elif isinstance(event, OfficerDeactivated):
                self.officers.deactivate(event.address)
            elif isinstance(event, OfficerReactivated):
                self.officers.reactivate(event.address)
            elif isinstance(event, PositionCreated):
                index = self.officers.append_slot(event.address, event.division_id, event.position)
                if index != event.position_index:
                    raise LedgerIntegrityError(
                        f"Recorded index {event.position_index} replayed as {index}"
                    )
            elif isinstance(event, PositionNameUpdated):
                self.officers.set_slot_name(
                    event.address, event.division_id, event.position_index, event.name
                )
            elif isinstance(event, PositionRoleUpdated):
                self.officers.set_slot_role(
                    event.address, event.division_id, event.position_index, event.role
                )
            elif isinstance(event, PositionRevoked):
                self.officers.set_slot_role(
                    event.address, event.division_id, event.position_index, PositionRole.REVOKED
                )
            # DocumentSubmitted is an acceptance record only
        except (AuthorityError, KeyError, ValueError) as exc:
            raise LedgerIntegrityError(
                f"Cannot replay entry seq={entry.sequence_number} type={entry.event_type}: {exc}"
            ) from exc

        self.events.append(event)
