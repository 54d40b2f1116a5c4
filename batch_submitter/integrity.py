"""
Integrity utilities for content hashing.
"""

import hashlib


def sha256_digest(data: bytes) -> str:
    """Compute SHA256 hex digest of bytes."""
    return hashlib.sha256(data).hexdigest()


def prefixed_digest(data: bytes) -> str:
    """Compute a prefixed digest string: "sha256:<64 hex chars>"."""
    return f"sha256:{sha256_digest(data)}"
