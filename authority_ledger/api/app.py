"""
Document Authority — HTTP API.

FastAPI application exposing:
- Seed / administration interface (divisions, officers, positions, admin)
- Document ingress (submit_document)
- Read interface (division, officer, position lookups)
- Ingress-gateway admission lookup

The caller identity is read from the ``X-Caller-Address`` header. The
transaction-admission gateway in front of this service authenticates senders
before requests reach it. Binary fields (document content, signatures) are
0x-prefixed hex strings.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from authority_ledger.config import settings
from authority_ledger.registry.errors import (
    AuthorityError,
    AuthorizationError,
    IdentityNotFoundError,
    LedgerIntegrityError,
    LifecycleStateError,
)
from authority_ledger.registry.schema import (
    DocumentSigner,
    LegalDocument,
    OfficerInfo,
    Position,
    PositionRole,
)
from authority_ledger.service import DocumentAuthority

logger = logging.getLogger(__name__)

CALLER_HEADER = "X-Caller-Address"


# ── Pydantic request models ────────────────────────────────────


def _hex_bytes(value: str) -> bytes:
    text = value[2:] if value.startswith(("0x", "0X")) else value
    try:
        return bytes.fromhex(text)
    except ValueError as exc:
        raise ValueError(f"not a hex string: {value!r}") from exc


class DivisionCreateRequest(BaseModel):
    division_id: str
    name: str
    supervisory_id: str


class DivisionUpdateRequest(BaseModel):
    name: str
    supervisory_id: str | None = None


class OfficerCreateRequest(BaseModel):
    address: str
    info: OfficerInfo
    division_id: str | None = None
    creator_position_index: int | None = None
    position: Position | None = None


class OfficerUpdateRequest(BaseModel):
    info: OfficerInfo


class PositionCreateRequest(BaseModel):
    address: str
    division_id: str
    position: Position
    creator_position_index: int


class PositionNameRequest(BaseModel):
    name: str
    creator_position_index: int


class PositionRoleRequest(BaseModel):
    role: PositionRole
    creator_position_index: int


class PositionRevokeRequest(BaseModel):
    creator_position_index: int


class DocumentRequest(BaseModel):
    number: str
    name: str
    published_at: int = Field(ge=0)
    content: bytes

    @field_validator("content", mode="before")
    @classmethod
    def _decode_content(cls, value: Any) -> Any:
        return _hex_bytes(value) if isinstance(value, str) else value


class SubmitDocumentRequest(BaseModel):
    division_id: str
    publisher_position_index: int
    document: DocumentRequest
    signers: list[DocumentSigner] = Field(default_factory=list)
    signatures: bytes = b""

    @field_validator("signatures", mode="before")
    @classmethod
    def _decode_signatures(cls, value: Any) -> Any:
        return _hex_bytes(value) if isinstance(value, str) else value


class AdminUpdateRequest(BaseModel):
    new_admin: str


class IngressRequest(BaseModel):
    sender: str
    recipient: str
    value: int = 0
    gas_price: int = 0
    gas_limit: int = 0
    payload: bytes = b""

    @field_validator("payload", mode="before")
    @classmethod
    def _decode_payload(cls, value: Any) -> Any:
        return _hex_bytes(value) if isinstance(value, str) else value


class ApiState:
    """Mutable application state injected at startup."""

    def __init__(self) -> None:
        self.authority: DocumentAuthority | None = None
        self.startup_time: datetime = datetime.now(timezone.utc)


state = ApiState()


# ── Application lifecycle ──────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the authority service unless one was injected already."""
    if state.authority is None:
        from authority_ledger.ledger.service import EventLedgerService

        ledger = EventLedgerService(settings.database_url)
        ledger.initialize()
        state.authority = DocumentAuthority.from_ledger(ledger)
        logger.info(
            "Authority API started with event ledger at %s (%d events replayed)",
            settings.database_url, len(state.authority.events),
        )
    yield
    logger.info("Authority API shut down")


app = FastAPI(
    title="Document Authority Ledger",
    description="Divisions, officers, positions and co-signed document submission",
    version="0.1.0",
    lifespan=lifespan,
)


def _authority() -> DocumentAuthority:
    if state.authority is None:
        raise HTTPException(status_code=503, detail="Authority service not initialized")
    return state.authority


def _error_status(exc: AuthorityError) -> int:
    if isinstance(exc, IdentityNotFoundError):
        return 404
    if isinstance(exc, LifecycleStateError):
        return 409
    if isinstance(exc, AuthorizationError):
        return 403
    return 422


@app.exception_handler(AuthorityError)
async def authority_error_handler(request: Request, exc: AuthorityError) -> JSONResponse:
    logger.info("Request rejected: %s %s -> %s", request.method, request.url.path, exc.name)
    return JSONResponse(
        status_code=_error_status(exc),
        content={"error": exc.name, "detail": str(exc)},
    )


@app.exception_handler(LedgerIntegrityError)
async def ledger_error_handler(request: Request, exc: LedgerIntegrityError) -> JSONResponse:
    logger.error("Event ledger unavailable: %s %s -> %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"error": "LedgerIntegrityError", "detail": str(exc)},
    )


def _event(event: Any) -> dict[str, Any]:
    return event.model_dump(mode="json")


# ── Admin ──────────────────────────────────────────────────────


@app.get("/admin")
async def get_admin():
    return {"system_admin": _authority().get_system_admin()}


@app.put("/admin")
async def update_admin(body: AdminUpdateRequest, caller: str = Header(alias=CALLER_HEADER)):
    return _event(_authority().update_system_admin(caller, body.new_admin))


# ── Divisions ──────────────────────────────────────────────────


@app.post("/divisions", status_code=201)
async def create_division(body: DivisionCreateRequest, caller: str = Header(alias=CALLER_HEADER)):
    return _event(
        _authority().create_division(caller, body.division_id, body.name, body.supervisory_id)
    )


@app.patch("/divisions/{division_id}")
async def update_division(
    division_id: str, body: DivisionUpdateRequest, caller: str = Header(alias=CALLER_HEADER)
):
    authority = _authority()
    if body.supervisory_id is None:
        return _event(authority.update_division_name(caller, division_id, body.name))
    return _event(authority.update_division(caller, division_id, body.name, body.supervisory_id))


@app.post("/divisions/{division_id}/deactivate")
async def deactivate_division(division_id: str, caller: str = Header(alias=CALLER_HEADER)):
    return _event(_authority().deactivate_division(caller, division_id))


@app.post("/divisions/{division_id}/reactivate")
async def reactivate_division(division_id: str, caller: str = Header(alias=CALLER_HEADER)):
    return _event(_authority().reactivate_division(caller, division_id))


@app.get("/divisions/{division_id}")
async def get_division(division_id: str):
    division = _authority().get_division(division_id)
    return {
        "name": division.name,
        "supervisory_id": division.supervisory_id,
        "status": division.status.name,
    }


@app.get("/divisions/{division_id}/subdivisions")
async def list_subdivisions(division_id: str):
    return {
        "subdivisions": [
            d.model_dump(mode="json") for d in _authority().list_subdivisions(division_id)
        ]
    }


# ── Officers ───────────────────────────────────────────────────


@app.post("/officers", status_code=201)
async def create_officer(body: OfficerCreateRequest, caller: str = Header(alias=CALLER_HEADER)):
    """Bare identity creation, or identity plus first position when a division is given."""
    authority = _authority()
    if body.division_id is None:
        return {"events": [_event(authority.create_officer(caller, body.address, body.info))]}
    if body.position is None or body.creator_position_index is None:
        return JSONResponse(
            status_code=422,
            content={
                "error": "IncompleteOnboarding",
                "detail": "division_id requires position and creator_position_index",
            },
        )
    events = authority.create_officer_with_position(
        caller,
        body.address,
        body.info,
        body.division_id,
        body.creator_position_index,
        body.position,
    )
    return {"events": [_event(e) for e in events]}


@app.patch("/officers/{address}")
async def update_officer(
    address: str, body: OfficerUpdateRequest, caller: str = Header(alias=CALLER_HEADER)
):
    return _event(_authority().update_officer_info(caller, address, body.info))


@app.post("/officers/{address}/deactivate")
async def deactivate_officer(address: str, caller: str = Header(alias=CALLER_HEADER)):
    return _event(_authority().deactivate_officer(caller, address))


@app.post("/officers/{address}/reactivate")
async def reactivate_officer(address: str, caller: str = Header(alias=CALLER_HEADER)):
    return _event(_authority().reactivate_officer(caller, address))


@app.get("/officers/{address}")
async def get_officer(address: str):
    view = _authority().get_officer_info(address)
    return {"info": view.info.model_dump(), "status": view.status.name}


# ── Positions ──────────────────────────────────────────────────


@app.post("/positions", status_code=201)
async def create_position(body: PositionCreateRequest, caller: str = Header(alias=CALLER_HEADER)):
    return _event(
        _authority().create_position(
            caller, body.address, body.division_id, body.position, body.creator_position_index
        )
    )


@app.patch("/positions/{address}/{division_id}/{position_index}/name")
async def update_position_name(
    address: str,
    division_id: str,
    position_index: int,
    body: PositionNameRequest,
    caller: str = Header(alias=CALLER_HEADER),
):
    return _event(
        _authority().update_position_name(
            caller, address, division_id, position_index, body.name, body.creator_position_index
        )
    )


@app.patch("/positions/{address}/{division_id}/{position_index}/role")
async def update_position_role(
    address: str,
    division_id: str,
    position_index: int,
    body: PositionRoleRequest,
    caller: str = Header(alias=CALLER_HEADER),
):
    return _event(
        _authority().update_position_role(
            caller, address, division_id, position_index, body.role, body.creator_position_index
        )
    )


@app.post("/positions/{address}/{division_id}/{position_index}/revoke")
async def revoke_position(
    address: str,
    division_id: str,
    position_index: int,
    body: PositionRevokeRequest,
    caller: str = Header(alias=CALLER_HEADER),
):
    return _event(
        _authority().revoke_position(
            caller, address, division_id, position_index, body.creator_position_index
        )
    )


@app.get("/positions/{address}/{division_id}/{position_index}")
async def get_position(address: str, division_id: str, position_index: int):
    position = _authority().get_officer_position(address, division_id, position_index)
    return {"name": position.name, "role": position.role.name}


# ── Documents ──────────────────────────────────────────────────


@app.post("/documents", status_code=201)
async def submit_document(body: SubmitDocumentRequest, caller: str = Header(alias=CALLER_HEADER)):
    document = LegalDocument(
        number=body.document.number,
        name=body.document.name,
        published_at=body.document.published_at,
        content=body.document.content,
    )
    return _event(
        _authority().submit_document(
            caller,
            body.division_id,
            body.publisher_position_index,
            document,
            body.signers,
            body.signatures,
        )
    )


# ── Ingress gateway ────────────────────────────────────────────


@app.post("/ingress/allowed")
async def ingress_allowed(body: IngressRequest):
    allowed = _authority().is_caller_allowed(
        body.sender,
        body.recipient,
        body.value,
        body.gas_price,
        body.gas_limit,
        body.payload,
    )
    return {"allowed": allowed}


# ── Health ─────────────────────────────────────────────────────


@app.get("/health")
async def health():
    authority = state.authority
    ledger_status: dict[str, Any] = {"attached": False}
    if authority is not None and authority.ledger_service is not None:
        is_valid, entries, message = authority.ledger_service.verify_chain()
        ledger_status = {"attached": True, "valid": is_valid, "entries": entries, "message": message}
    return JSONResponse({
        "status": "healthy" if authority is not None else "starting",
        "uptime_seconds": (datetime.now(timezone.utc) - state.startup_time).total_seconds(),
        "divisions": len(authority.divisions) if authority is not None else 0,
        "officers": len(authority.officers) if authority is not None else 0,
        "events": len(authority.events) if authority is not None else 0,
        "event_ledger": ledger_status,
    })
