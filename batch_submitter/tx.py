"""
Settlement transaction builder for batch commitments.

Builds the unsigned transaction dict carrying one batch: a single Move
``MsgExecute`` of ``0x1::op_batch_inbox::record_batch`` with the ledger
id as type argument and the BCS ``vector<u8>`` payload as the only
argument. This is the "transaction recipe": pure, deterministic, no
secrets, no network calls. Account number, sequence and fee are
signer/broadcast-time concerns and are NOT included here.

The builder enforces:
    - Exactly one message.
    - module_address == "0x1", module_name == "op_batch_inbox",
      function_name == "record_batch".
    - Serialized payload within the interval-scaled byte budget.
"""

from __future__ import annotations

import base64

from batch_submitter.payload import encode_vector_u8

MSG_EXECUTE_TYPE = "/initia.move.v1.MsgExecute"
MODULE_ADDRESS = "0x1"
MODULE_NAME = "op_batch_inbox"
FUNCTION_NAME = "record_batch"


def batch_memo(ledger_id: str, batch_index: int) -> str:
    """Memo tagging a transaction with the batch it commits."""
    return f"{ledger_id}/{batch_index}"


def plan_record_batch(
    sender: str,
    ledger_id: str,
    payload: bytes,
    *,
    max_payload_bytes: int,
    memo: str = "",
) -> dict[str, object]:
    """Build an unsigned record_batch transaction dict.

    Args:
        sender: Address of the batch submitter account.
        ledger_id: Rollup identifier, passed as the Move type argument.
        payload: Compressed batch payload.
        max_payload_bytes: Byte budget for the serialized payload.
        memo: Transaction memo. Carries "<ledger_id>/<batch_index>" so
            duplicate submissions of one batch can be spotted off-chain.

    Returns:
        Unsigned transaction dict.

    Raises:
        ValueError: If sender or ledger_id is empty, payload is empty,
            or the payload exceeds max_payload_bytes.
    """
    if not sender:
        raise ValueError("sender must be non-empty")
    if not ledger_id:
        raise ValueError("ledger_id must be non-empty")
    if not payload:
        raise ValueError("payload must be non-empty")

    serialized = encode_vector_u8(payload, max_payload_bytes)

    return {
        "body": {
            "messages": [
                {
                    "@type": MSG_EXECUTE_TYPE,
                    "sender": sender,
                    "module_address": MODULE_ADDRESS,
                    "module_name": MODULE_NAME,
                    "function_name": FUNCTION_NAME,
                    "type_args": [ledger_id],
                    "args": [base64.b64encode(serialized).decode("ascii")],
                }
            ],
            "memo": memo,
        },
    }
