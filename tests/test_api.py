"""
Tests for the HTTP API.

Validates:
- Seed / administration routes
- Read routes for unknown and existing records
- Document submission with hex-encoded content and signatures
- Error mapping (404 / 409 / 403 / 422, 503 when the event ledger is unavailable)
- Ingress-gateway admission lookup
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from authority_ledger.api.app import app, state
from authority_ledger.documents.signing import (
    SigningPayload,
    address_from_private_key,
    content_hash,
    sign_payload,
)
from authority_ledger.ledger.service import EventLedgerService
from authority_ledger.registry.schema import (
    ADMIN_POSITION_INDEX,
    DocumentSigner,
    LegalDocument,
)
from authority_ledger.service import DocumentAuthority

ADMIN = "0x00000000000000000000000000000000000000a1"
CORE = "0x0000000000000000000000000000000000000c03"
OFFICER_A = "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"
OFFICER_B = "0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb"
SIGNER_KEY = bytes.fromhex("07" * 32)


def as_admin() -> dict[str, str]:
    return {"X-Caller-Address": ADMIN}


class TestAdministrationRoutes:

    def setup_method(self):
        state.authority = DocumentAuthority(system_admin=ADMIN, core_address=CORE)
        self.client = TestClient(app)
        response = self.client.post(
            "/divisions",
            json={"division_id": "H26", "name": "UBND Hanoi", "supervisory_id": "ROOT"},
            headers=as_admin(),
        )
        assert response.status_code == 201

    def teardown_method(self):
        state.authority = None

    def _onboard(self, address=OFFICER_A, role=2):
        return self.client.post(
            "/officers",
            json={
                "address": address,
                "info": {"name": "A", "sex": "Male", "date_of_birth": "01/01/2001"},
                "division_id": "H26",
                "creator_position_index": ADMIN_POSITION_INDEX,
                "position": {"name": "President", "role": role},
            },
            headers=as_admin(),
        )

    def test_get_admin(self):
        assert self.client.get("/admin").json() == {"system_admin": ADMIN}

    def test_get_division(self):
        body = self.client.get("/divisions/H26").json()
        assert body == {"name": "UBND Hanoi", "supervisory_id": "ROOT", "status": "ACTIVE"}

    def test_get_unknown_division(self):
        assert self.client.get("/divisions/NOPE").json()["status"] == "NOT_CREATED"

    def test_subdivisions(self):
        self.client.post(
            "/divisions",
            json={"division_id": "H26-01", "name": "District 1", "supervisory_id": "H26"},
            headers=as_admin(),
        )
        body = self.client.get("/divisions/H26/subdivisions").json()
        assert [d["id"] for d in body["subdivisions"]] == ["H26-01"]

    def test_rename_and_reparent(self):
        self.client.post(
            "/divisions",
            json={"division_id": "H27", "name": "UBND Hue", "supervisory_id": "ROOT"},
            headers=as_admin(),
        )
        response = self.client.patch("/divisions/H27", json={"name": "Hue"}, headers=as_admin())
        assert response.status_code == 200
        assert response.json()["supervisory_id"] == "ROOT"
        response = self.client.patch(
            "/divisions/H27", json={"name": "Hue", "supervisory_id": "H26"}, headers=as_admin()
        )
        assert response.json()["supervisory_id"] == "H26"

    def test_non_admin_is_forbidden(self):
        response = self.client.post(
            "/divisions",
            json={"division_id": "H27", "name": "UBND Hue", "supervisory_id": "ROOT"},
            headers={"X-Caller-Address": OFFICER_A},
        )
        assert response.status_code == 403
        assert response.json()["error"] == "NotTheSystemAdmin"

    def test_missing_caller_header(self):
        response = self.client.post("/divisions/H26/deactivate")
        assert response.status_code == 422

    def test_duplicate_division_conflicts(self):
        response = self.client.post(
            "/divisions",
            json={"division_id": "H26", "name": "Again", "supervisory_id": "ROOT"},
            headers=as_admin(),
        )
        assert response.status_code == 409
        assert response.json()["error"] == "DivisionAlreadyCreated"

    def test_toggle_conflicts(self):
        assert self.client.post("/divisions/H26/deactivate", headers=as_admin()).status_code == 200
        response = self.client.post("/divisions/H26/deactivate", headers=as_admin())
        assert response.status_code == 409
        assert response.json()["error"] == "DivisionNotActive"

    def test_invalid_supervisory_is_unprocessable(self):
        response = self.client.post(
            "/divisions",
            json={"division_id": "X", "name": "X", "supervisory_id": "MISSING"},
            headers=as_admin(),
        )
        assert response.status_code == 422
        assert response.json()["error"] == "InvalidSupervisoryDivisionId"

    def test_onboard_officer(self):
        response = self._onboard()
        assert response.status_code == 201
        events = response.json()["events"]
        assert [e["event_type"] for e in events] == ["officer_created", "position_created"]

        officer = self.client.get(f"/officers/{OFFICER_A}").json()
        assert officer["status"] == "ACTIVE"
        assert officer["info"]["date_of_birth"] == "01/01/2001"

        position = self.client.get(f"/positions/{OFFICER_A}/H26/0").json()
        assert position == {"name": "President", "role": "MANAGER"}

    def test_bare_officer(self):
        response = self.client.post(
            "/officers", json={"address": OFFICER_B, "info": {"name": "B"}}, headers=as_admin()
        )
        assert response.status_code == 201
        assert len(response.json()["events"]) == 1

    def test_incomplete_onboarding(self):
        response = self.client.post(
            "/officers",
            json={"address": OFFICER_B, "info": {"name": "B"}, "division_id": "H26"},
            headers=as_admin(),
        )
        assert response.status_code == 422
        assert response.json()["error"] == "IncompleteOnboarding"

    def test_unknown_position_is_not_found(self):
        response = self.client.get(f"/positions/{OFFICER_A}/H26/0")
        assert response.status_code == 404
        assert response.json()["error"] == "OfficerNotCreated"

    def test_position_lifecycle(self):
        self._onboard()
        response = self.client.patch(
            f"/positions/{OFFICER_A}/H26/0/role",
            json={"role": 3, "creator_position_index": ADMIN_POSITION_INDEX},
            headers=as_admin(),
        )
        assert response.status_code == 200
        response = self.client.post(
            f"/positions/{OFFICER_A}/H26/0/revoke",
            json={"creator_position_index": ADMIN_POSITION_INDEX},
            headers=as_admin(),
        )
        assert response.status_code == 200
        assert self.client.get(f"/positions/{OFFICER_A}/H26/0").json()["role"] == "REVOKED"

    def test_revoked_position_is_terminal(self):
        self._onboard()
        revoke = {"creator_position_index": ADMIN_POSITION_INDEX}
        assert self.client.post(
            f"/positions/{OFFICER_A}/H26/0/revoke", json=revoke, headers=as_admin()
        ).status_code == 200
        response = self.client.post(f"/positions/{OFFICER_A}/H26/0/revoke", json=revoke, headers=as_admin())
        assert response.status_code == 422
        assert response.json()["error"] == "PositionIndexNotAssigned"
        response = self.client.patch(
            f"/positions/{OFFICER_A}/H26/0/role",
            json={"role": 1, "creator_position_index": ADMIN_POSITION_INDEX},
            headers=as_admin(),
        )
        assert response.status_code == 422
        assert self.client.get(f"/positions/{OFFICER_A}/H26/0").json()["role"] == "REVOKED"

    def test_update_role_to_revoked(self):
        self._onboard()
        response = self.client.patch(
            f"/positions/{OFFICER_A}/H26/0/role",
            json={"role": 0, "creator_position_index": ADMIN_POSITION_INDEX},
            headers=as_admin(),
        )
        assert response.status_code == 422
        assert response.json()["error"] == "InvalidUpdatedRole"

    def test_malformed_address(self):
        response = self.client.get("/officers/not-an-address")
        assert response.status_code == 422
        assert response.json()["error"] == "InvalidAddress"


class TestDocumentRoutes:

    def setup_method(self):
        state.authority = DocumentAuthority(system_admin=ADMIN, core_address=CORE)
        self.client = TestClient(app)
        self.client.post(
            "/divisions",
            json={"division_id": "H26", "name": "UBND Hanoi", "supervisory_id": "ROOT"},
            headers=as_admin(),
        )
        self.signer_address = address_from_private_key(SIGNER_KEY)
        for address, role in ((OFFICER_A, 2), (self.signer_address, 3)):
            self.client.post(
                "/officers",
                json={
                    "address": address,
                    "info": {"name": address[:6]},
                    "division_id": "H26",
                    "creator_position_index": ADMIN_POSITION_INDEX,
                    "position": {"name": "Seat", "role": role},
                },
                headers=as_admin(),
            )
        self.document = LegalDocument(
            number="01/QD", name="Street lighting", published_at=1_704_067_200, content=b"\x01\x02body"
        )

    def teardown_method(self):
        state.authority = None

    def _request(self, publisher_index=0, signers=(), signatures=b""):
        return {
            "division_id": "H26",
            "publisher_position_index": publisher_index,
            "document": {
                "number": self.document.number,
                "name": self.document.name,
                "published_at": self.document.published_at,
                "content": "0x" + self.document.content.hex(),
            },
            "signers": list(signers),
            "signatures": "0x" + signatures.hex(),
        }

    def test_submit_without_signers(self):
        response = self.client.post(
            "/documents", json=self._request(), headers={"X-Caller-Address": OFFICER_A}
        )
        assert response.status_code == 201
        assert response.json()["content_hash"] == content_hash(self.document.content)

    def test_submit_with_signer(self):
        signer = DocumentSigner(address=self.signer_address, division_id="H26", position_index=0)
        signature = sign_payload(SIGNER_KEY, SigningPayload.build(signer, "H26", self.document))
        response = self.client.post(
            "/documents",
            json=self._request(signers=[signer.model_dump()], signatures=signature),
            headers={"X-Caller-Address": OFFICER_A},
        )
        assert response.status_code == 201
        assert response.json()["signers"] == [self.signer_address]

    def test_unassigned_publisher(self):
        response = self.client.post(
            "/documents", json=self._request(publisher_index=1), headers={"X-Caller-Address": OFFICER_A}
        )
        assert response.status_code == 422
        assert response.json()["error"] == "PositionIndexNotAssigned"

    def test_staff_publisher_forbidden(self):
        response = self.client.post(
            "/documents",
            json=self._request(),
            headers={"X-Caller-Address": self.signer_address},
        )
        assert response.status_code == 403
        assert response.json()["error"] == "NotTheDivisionManager"

    def test_signature_length_mismatch(self):
        signer = {"address": self.signer_address, "division_id": "H26", "position_index": 0}
        response = self.client.post(
            "/documents",
            json=self._request(signers=[signer], signatures=b"\x00" * 64),
            headers={"X-Caller-Address": OFFICER_A},
        )
        assert response.status_code == 422
        assert response.json()["error"] == "SignersSignaturesLengthNotMatch"

    def test_bad_hex_content(self):
        body = self._request()
        body["document"]["content"] = "0xzz"
        response = self.client.post("/documents", json=body, headers={"X-Caller-Address": OFFICER_A})
        assert response.status_code == 422


class TestIngressAndHealth:

    def setup_method(self):
        ledger = EventLedgerService("sqlite://")
        ledger.initialize()
        state.authority = DocumentAuthority(system_admin=ADMIN, core_address=CORE, ledger_service=ledger)
        self.client = TestClient(app)
        self.client.post(
            "/officers", json={"address": OFFICER_A, "info": {"name": "A"}}, headers=as_admin()
        )

    def teardown_method(self):
        state.authority = None

    def _allowed(self, sender, recipient, **extra):
        response = self.client.post(
            "/ingress/allowed", json={"sender": sender, "recipient": recipient, **extra}
        )
        assert response.status_code == 200
        return response.json()["allowed"]

    def test_admin_may_call_anything(self):
        assert self._allowed(ADMIN, OFFICER_B)

    def test_active_officer_to_core(self):
        assert self._allowed(OFFICER_A, CORE, value=5, gas_price=1, gas_limit=21000, payload="0xdeadbeef")

    def test_active_officer_elsewhere(self):
        assert not self._allowed(OFFICER_A, OFFICER_B)

    def test_deactivated_officer(self):
        self.client.post(f"/officers/{OFFICER_A}/deactivate", headers=as_admin())
        assert not self._allowed(OFFICER_A, CORE)

    def test_unknown_sender(self):
        assert not self._allowed(OFFICER_B, CORE)

    def test_malformed_sender(self):
        assert not self._allowed("garbage", CORE)

    def test_health_reports_ledger(self):
        body = self.client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["officers"] == 1
        assert body["event_ledger"]["attached"] is True
        assert body["event_ledger"]["valid"] is True
        assert body["event_ledger"]["entries"] == 2


class TestLedgerUnavailable:
    """Requests against an authority whose event ledger cannot be written."""

    def setup_method(self):
        # Never initialized: the event table does not exist
        ledger = EventLedgerService("sqlite://")
        state.authority = DocumentAuthority(system_admin=ADMIN, core_address=CORE, ledger_service=ledger)
        self.client = TestClient(app)

    def teardown_method(self):
        state.authority = None

    def test_write_returns_service_unavailable(self):
        response = self.client.post(
            "/divisions",
            json={"division_id": "H26", "name": "UBND Hanoi", "supervisory_id": "ROOT"},
            headers=as_admin(),
        )
        assert response.status_code == 503
        assert response.json()["error"] == "LedgerIntegrityError"
        assert self.client.get("/divisions/H26").json()["status"] == "NOT_CREATED"

    def test_rejected_operation_is_still_a_client_error(self):
        response = self.client.post(
            "/divisions",
            json={"division_id": "H26", "name": "UBND Hanoi", "supervisory_id": "ROOT"},
            headers={"X-Caller-Address": OFFICER_A},
        )
        assert response.status_code == 403

    def test_missing_authority_is_unavailable(self):
        state.authority = None
        response = self.client.get("/admin")
        assert response.status_code == 503
        assert response.json()["detail"] == "Authority service not initialized"
