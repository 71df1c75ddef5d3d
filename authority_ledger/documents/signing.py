"""
Document Signing — canonical co-signer payloads and signature recovery.

Every co-signer signs its own payload. The payload binds the signer's claimed
division and position index to the document metadata and the keccak-256 of
the raw content, so a signature cannot be replayed for another document,
another division or another position.

Payload layout (each field exactly 32 bytes):

    keccak256(signer division id)
    uint256(signer position index)
    keccak256(document number)
    keccak256(document name)
    keccak256(submission division id)
    uint256(published timestamp)
    keccak256(document content)

digest  = keccak256(payload)
message = keccak256("\\x19Ethereum Signed Message:\\n32" || digest)

Signatures are 65 bytes, r || s || v, with v in {27, 28} (or the raw
recovery id {0, 1}). Nothing in this module touches registry state.
"""

from __future__ import annotations

from dataclasses import dataclass

from coincurve import PrivateKey, PublicKey
from Crypto.Hash import keccak

from authority_ledger.registry.errors import SignersSignaturesLengthNotMatch
from authority_ledger.registry.schema import DocumentSigner, LegalDocument

SIGNATURE_LENGTH = 65
SIGNED_MESSAGE_PREFIX = b"\x19Ethereum Signed Message:\n32"

# secp256k1 group order; signatures with s above half of it are rejected.
_SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
_SECP256K1_HALF_N = _SECP256K1_N // 2


def keccak256(data: bytes) -> bytes:
    return keccak.new(digest_bits=256, data=data).digest()


def encode_uint256(value: int) -> bytes:
    """Fixed-width big-endian encoding of a non-negative integer."""
    if value < 0 or value >= 1 << 256:
        raise ValueError(f"{value} does not fit in uint256")
    return value.to_bytes(32, "big")


def encode_string(value: str) -> bytes:
    return keccak256(value.encode("utf-8"))


def content_hash(content: bytes) -> str:
    """0x-prefixed keccak-256 fingerprint of document content."""
    return "0x" + keccak256(content).hex()


@dataclass(frozen=True)
class SigningPayload:
    """The fields one co-signer's signature is bound to."""

    signer_division_id: str
    signer_position_index: int
    document_number: str
    document_name: str
    division_id: str
    published_at: int
    content_digest: bytes

    @classmethod
    def build(
        cls, signer: DocumentSigner, division_id: str, document: LegalDocument
    ) -> SigningPayload:
        return cls(
            signer_division_id=signer.division_id,
            signer_position_index=signer.position_index,
            document_number=document.number,
            document_name=document.name,
            division_id=division_id,
            published_at=document.published_at,
            content_digest=keccak256(document.content),
        )

    def encode(self) -> bytes:
        return b"".join(
            (
                encode_string(self.signer_division_id),
                encode_uint256(self.signer_position_index),
                encode_string(self.document_number),
                encode_string(self.document_name),
                encode_string(self.division_id),
                encode_uint256(self.published_at),
                self.content_digest,
            )
        )

    def digest(self) -> bytes:
        return keccak256(self.encode())

    def message_hash(self) -> bytes:
        """The hash actually signed: the digest under the signed-message prefix."""
        return keccak256(SIGNED_MESSAGE_PREFIX + self.digest())


def split_signatures(signatures: bytes, signer_count: int) -> list[bytes]:
    """Cut a packed signature blob into one fixed-width signature per signer."""
    if len(signatures) != SIGNATURE_LENGTH * signer_count:
        raise SignersSignaturesLengthNotMatch(signer_count, len(signatures))
    return [
        signatures[i * SIGNATURE_LENGTH:(i + 1) * SIGNATURE_LENGTH]
        for i in range(signer_count)
    ]


def address_from_public_key(public_key: PublicKey) -> str:
    uncompressed = public_key.format(compressed=False)
    return "0x" + keccak256(uncompressed[1:])[-20:].hex()


def address_from_private_key(private_key: bytes) -> str:
    return address_from_public_key(PrivateKey(private_key).public_key)


def recover_signer(payload: SigningPayload, signature: bytes) -> str | None:
    """
    Recover the lowercase address that produced ``signature`` over ``payload``.

    Returns None when the signature is malformed, uses a high s value, or
    does not recover to a point on the curve.
    """
    if len(signature) != SIGNATURE_LENGTH:
        return None

    v = signature[64]
    if v in (27, 28):
        recovery_id = v - 27
    elif v in (0, 1):
        recovery_id = v
    else:
        return None

    s = int.from_bytes(signature[32:64], "big")
    if s == 0 or s > _SECP256K1_HALF_N:
        return None

    try:
        public_key = PublicKey.from_signature_and_message(
            signature[:64] + bytes([recovery_id]), payload.message_hash(), hasher=None
        )
    except ValueError:
        return None
    return address_from_public_key(public_key)


def sign_payload(private_key: bytes, payload: SigningPayload) -> bytes:
    """Produce a 65-byte r || s || v signature (v in {27, 28})."""
    raw = PrivateKey(private_key).sign_recoverable(payload.message_hash(), hasher=None)
    return raw[:64] + bytes([raw[64] + 27])
