"""
Signer protocol: the secrets boundary.

The settlement submitter never sees private keys. It passes an unsigned
transaction dict and gets back a signed blob ready for broadcast, plus
the hash the chain will index it under.

Concrete implementations:
    - Ed25519Signer (local key, via cryptography; dev stand-in whose
      envelope is not a native chain transaction format)
    - FakeSigner (tests)

Signed envelope (Ed25519Signer):
    blob    = canonical_json_bytes({"tx": tx, "pub_key": b64, "signature": b64})
    tx_hash = SHA256(blob), uppercase hex (CometBFT tx hash convention)

The signature covers canonical_json_bytes(tx), so the same unsigned
transaction always produces the same blob and hash for a given key.
"""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from batch_submitter.canonical_json import canonical_json_bytes


@dataclass(frozen=True)
class SignResult:
    """Result of signing a transaction.

    Attributes:
        tx_blob_b64: Base64 signed transaction bytes, ready for broadcast.
        tx_hash: Uppercase hex SHA256 of the signed bytes.
        key_id: Public identifier of the signing key. Never a secret.
    """

    tx_blob_b64: str
    tx_hash: str
    key_id: str


@runtime_checkable
class Signer(Protocol):
    """Interface for settlement transaction signing.

    Properties:
        address: Account address that pays for and sends the tx.
        key_id: Public identifier of the signing key (safe for logging).
    """

    @property
    def address(self) -> str:
        ...

    @property
    def key_id(self) -> str:
        ...

    def sign(self, tx: dict[str, object]) -> SignResult:
        """Sign an unsigned transaction dict.

        Raises:
            ValueError: If the transaction dict is malformed.
        """
        ...


class Ed25519Signer:
    """Local Ed25519 signer for development and tests.

    This is a stand-in, not a chain-compatible signer. The address
    (truncated SHA256 of the public key) and the canonical-JSON envelope
    are this package's own format, not the settlement chain's native
    account or transaction encoding, so a real L1 node will not accept
    these blobs. Production deployments must inject a chain-specific
    Signer (protobuf TxRaw, sign-mode handling, account number and
    sequence) in its place.

    Args:
        private_key: The signing key. Held privately, never exposed.
    """

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key = private_key
        self._public_bytes = private_key.public_key().public_bytes(
            encoding=Encoding.Raw, format=PublicFormat.Raw
        )

    @classmethod
    def from_seed_hex(cls, seed_hex: str) -> Ed25519Signer:
        """Build a signer from a 32-byte hex seed.

        Raises:
            ValueError: If the seed is not 64 hex chars.
        """
        seed = bytes.fromhex(seed_hex.removeprefix("0x"))
        if len(seed) != 32:
            raise ValueError(f"Ed25519 seed must be 32 bytes, got {len(seed)}")
        return cls(Ed25519PrivateKey.from_private_bytes(seed))

    @classmethod
    def generate(cls) -> Ed25519Signer:
        """Build a signer with a fresh random key (dev/test)."""
        return cls(Ed25519PrivateKey.generate())

    @property
    def key_id(self) -> str:
        """Raw public key, hex."""
        return self._public_bytes.hex()

    @property
    def address(self) -> str:
        """First 20 bytes of SHA256(public key), 0x-prefixed hex."""
        return "0x" + hashlib.sha256(self._public_bytes).digest()[:20].hex()

    def sign(self, tx: dict[str, object]) -> SignResult:
        if "body" not in tx:
            raise ValueError("transaction dict has no body")

        signature = self._private_key.sign(canonical_json_bytes(tx))
        envelope = {
            "tx": tx,
            "pub_key": base64.b64encode(self._public_bytes).decode("ascii"),
            "signature": base64.b64encode(signature).decode("ascii"),
        }
        blob = canonical_json_bytes(envelope)

        return SignResult(
            tx_blob_b64=base64.b64encode(blob).decode("ascii"),
            tx_hash=hashlib.sha256(blob).hexdigest().upper(),
            key_id=self.key_id,
        )

    def __repr__(self) -> str:
        return f"Ed25519Signer(key_id={self.key_id!r})"
