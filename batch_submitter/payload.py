"""
Batch payload builder.

Turns a block bulk into the exact bytes committed on L1 and stored in
the progress store:

    payload = zlib.compress(canonical_json_bytes(list(bulk.blocks)), 9)

Deterministic: the same bulk always yields the same bytes, so
re-fetching and re-building a range after a crash (before it was
persisted) reproduces the same payload.

On-chain encoding:
    The payload travels as a Move ``vector<u8>`` argument, BCS-encoded
    as a ULEB128 length prefix followed by the raw bytes. The encoder
    enforces a byte budget of ``submission_interval * 1000`` on the
    serialized argument (prefix plus bytes), so the ceiling grows with
    the window size.
"""

from __future__ import annotations

import json
import zlib

from batch_submitter.block_source import BlockBulk
from batch_submitter.canonical_json import canonical_json_bytes

# Fixed so payload bytes never depend on zlib defaults.
COMPRESSION_LEVEL = 9

# Serialized payload bytes allowed per L2 height in the window.
BYTES_PER_HEIGHT = 1000


def build_payload(bulk: BlockBulk) -> bytes:
    """Compress a block bulk into the batch payload."""
    return zlib.compress(canonical_json_bytes(list(bulk.blocks)), COMPRESSION_LEVEL)


def decode_payload(payload: bytes) -> list[str]:
    """Inverse of build_payload(). Returns the encoded blocks in order.

    Raises:
        ValueError: If payload is not a valid batch payload.
    """
    try:
        blocks = json.loads(zlib.decompress(payload).decode("utf-8"))
    except (zlib.error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError(f"not a batch payload: {exc}") from exc
    if not isinstance(blocks, list):
        raise ValueError("not a batch payload: top-level value is not a list")
    return blocks


def payload_budget(submission_interval: int) -> int:
    """Maximum payload size in bytes for a given submission interval."""
    return submission_interval * BYTES_PER_HEIGHT


def encode_uleb128(value: int) -> bytes:
    """Encode a non-negative integer as ULEB128."""
    if value < 0:
        raise ValueError(f"ULEB128 value must be >= 0, got: {value}")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def encode_vector_u8(data: bytes, max_bytes: int) -> bytes:
    """BCS-encode bytes as ``vector<u8>``.

    The budget covers the serialized argument, length prefix included.

    Raises:
        ValueError: If the encoded argument is longer than max_bytes.
    """
    prefix = encode_uleb128(len(data))
    encoded_len = len(prefix) + len(data)
    if encoded_len > max_bytes:
        raise ValueError(
            f"payload exceeds {max_bytes} bytes (got {encoded_len} bytes)"
        )
    return prefix + data
