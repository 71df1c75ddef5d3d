"""
Document Submission Protocol — publisher authority plus per-signer verification.

A submission is accepted as a whole or not at all:

1. The publisher must hold MANAGER-or-above in the division, via the claimed
   position index (or act as SystemAdmin through the admin sentinel).
2. The packed signature blob must hold exactly one 65-byte signature per
   declared co-signer.
3. Each co-signer's payload is rebuilt independently and the signature must
   recover to that co-signer's address.
4. Each co-signer's claimed position must itself resolve: active signer,
   active division, assigned non-revoked slot.

Because each signer's payload is independent, revoking one signer's position
between signing and submission invalidates only that signer's contribution.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from authority_ledger.documents.signing import (
    SigningPayload,
    content_hash,
    recover_signer,
    split_signatures,
)
from authority_ledger.governance.authorization import AuthorizationResolver
from authority_ledger.registry.errors import InvalidSignature
from authority_ledger.registry.schema import (
    DocumentSigner,
    DocumentSubmitted,
    LegalDocument,
    PositionRole,
    normalize_address,
)

logger = logging.getLogger(__name__)


class DocumentSubmissionProtocol:
    """Validates submissions and produces acceptance records."""

    def __init__(self, resolver: AuthorizationResolver) -> None:
        self.resolver = resolver

    def verify_signer(
        self,
        signer: DocumentSigner,
        division_id: str,
        document: LegalDocument,
        signature: bytes,
    ) -> str:
        """
        Verify one co-signer's signature and position claim.

        Returns:
            The signer's normalized address.

        Raises:
            InvalidSignature: recovery failed or recovered a different address.
            Any resolver error for the signer's claimed position.
        """
        address = normalize_address(signer.address)
        payload = SigningPayload.build(signer, division_id, document)
        recovered = recover_signer(payload, signature)
        if recovered != address:
            raise InvalidSignature(address, recovered)

        self.resolver.require(address, signer.position_index, signer.division_id, PositionRole.STAFF)
        return address

    def submit(
        self,
        caller: str,
        division_id: str,
        publisher_position_index: int,
        document: LegalDocument,
        signers: Sequence[DocumentSigner],
        signatures: bytes,
    ) -> DocumentSubmitted:
        """
        Run the full submission check and build the acceptance record.

        Args:
            caller: Normalized publisher address.
            division_id: Division the document is published on behalf of.
            publisher_position_index: Publisher's claimed slot or the admin sentinel.
            document: Metadata and raw content.
            signers: Declared co-signers, in signature order.
            signatures: Concatenated 65-byte signatures.

        Returns:
            DocumentSubmitted acceptance record.
        """
        self.resolver.require(caller, publisher_position_index, division_id, PositionRole.MANAGER)

        signature_list = split_signatures(signatures, len(signers))
        verified: list[str] = []
        for signer, signature in zip(signers, signature_list):
            verified.append(self.verify_signer(signer, division_id, document, signature))

        fingerprint = content_hash(document.content)
        logger.info(
            "Document accepted: hash=%s division=%s publisher_index=%d signers=%d",
            fingerprint[:18], division_id, publisher_position_index, len(verified),
        )
        return DocumentSubmitted(
            content_hash=fingerprint,
            division_id=division_id,
            publisher_position_index=publisher_position_index,
            signers=verified,
        )
