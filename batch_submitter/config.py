"""
Process configuration.

SubmitterConfig is built once at startup (normally from the environment)
and passed explicitly into the worker and its adapters. There is no
module-level config singleton.

The raw environment mapping is validated against CONFIG_SCHEMA with
jsonschema before any field is converted, so a misconfigured deployment
fails fast with ConfigError instead of half-starting.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import jsonschema  # type: ignore[import-untyped]

from batch_submitter.errors import ConfigError

_URL = {"type": "string", "pattern": "^https?://"}
# Decimal strings strictly greater than zero.
_POSITIVE_NUMBER = {"type": "string", "pattern": r"^(?=.*[1-9])[0-9]+(\.[0-9]+)?$"}
_POSITIVE_INT = {"type": "string", "pattern": r"^[1-9][0-9]*$"}

# Environment variable -> schema. Values are always strings in the environment.
CONFIG_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": [
        "L2ID",
        "BRIDGE_ID",
        "L1_RPC_URI",
        "L1_LCD_URI",
        "L2_RPC_URI",
        "L2_LCD_URI",
        "BATCH_SUBMITTER_KEY",
    ],
    "properties": {
        "L2ID": {"type": "string", "minLength": 1},
        "BRIDGE_ID": _POSITIVE_INT,
        "L1_RPC_URI": _URL,
        "L1_LCD_URI": _URL,
        "L2_RPC_URI": _URL,
        "L2_LCD_URI": _URL,
        "BATCH_SUBMITTER_KEY": {"type": "string", "pattern": "^(0x)?[0-9a-fA-F]{64}$"},
        "BATCH_DB_PATH": {"type": "string", "minLength": 1},
        "INTERVAL_BATCH": _POSITIVE_NUMBER,
        "HTTP_TIMEOUT": _POSITIVE_NUMBER,
        "CONFIRM_ATTEMPTS": _POSITIVE_INT,
        "CONFIRM_INTERVAL": _POSITIVE_NUMBER,
        "LOG_LEVEL": {"enum": ["DEBUG", "INFO", "WARNING", "ERROR"]},
        "LOG_FORMAT": {"enum": ["json", "text"]},
    },
}

_KNOWN_KEYS = tuple(CONFIG_SCHEMA["properties"])


@dataclass(frozen=True)
class SubmitterConfig:
    """Immutable configuration for one run of the batch submitter.

    Attributes:
        ledger_id: Rollup instance identifier (L2ID). Recorded with every batch.
        bridge_id: Bridge to read starting height / submission interval from.
        l1_rpc_url: Settlement-layer CometBFT RPC (broadcast, tx lookup).
        l1_lcd_url: Settlement-layer REST endpoint (bridge config).
        l2_rpc_url: Execution-layer RPC (block_bulk).
        l2_lcd_url: Execution-layer REST endpoint (latest height).
        signer_key_hex: Ed25519 seed, hex. Excluded from repr.
        db_path: SQLite path for the progress store.
        poll_interval_s: Backoff between availability checks.
        http_timeout_s: Per-request HTTP timeout.
        confirm_attempts: Max tx lookups before a submit is declared failed.
        confirm_interval_s: Delay between tx lookups.
        log_level: Root level for the batch_submitter logger.
        log_format: "json" or "text".
    """

    ledger_id: str
    bridge_id: int
    l1_rpc_url: str
    l1_lcd_url: str
    l2_rpc_url: str
    l2_lcd_url: str
    signer_key_hex: str = field(repr=False)
    db_path: str = "batch_submitter.db"
    poll_interval_s: float = 10.0
    http_timeout_s: float = 30.0
    confirm_attempts: int = 20
    confirm_interval_s: float = 1.0
    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> SubmitterConfig:
        """Build a config from environment variables.

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Raises:
            ConfigError: If a required variable is missing or malformed.
        """
        if environ is None:
            environ = os.environ
        raw = {key: environ[key] for key in _KNOWN_KEYS if key in environ}

        try:
            jsonschema.validate(instance=raw, schema=CONFIG_SCHEMA)
        except jsonschema.ValidationError as exc:
            # exc.message echoes the offending value, which may be the key.
            if exc.absolute_path:
                field_name = str(exc.absolute_path[-1])
                message = f"invalid configuration: {field_name} failed {exc.validator} check"
            elif exc.validator == "required":
                field_name = next(
                    key for key in CONFIG_SCHEMA["required"] if key not in raw
                )
                message = f"invalid configuration: {field_name} is required"
            else:
                field_name = "<root>"
                message = f"invalid configuration: {exc.message}"
            raise ConfigError(
                message,
                error_code="INVALID_CONFIG",
                details={"field": field_name},
            ) from exc

        key_hex = raw["BATCH_SUBMITTER_KEY"]
        if key_hex.startswith("0x"):
            key_hex = key_hex[2:]

        return cls(
            ledger_id=raw["L2ID"],
            bridge_id=int(raw["BRIDGE_ID"]),
            l1_rpc_url=raw["L1_RPC_URI"].rstrip("/"),
            l1_lcd_url=raw["L1_LCD_URI"].rstrip("/"),
            l2_rpc_url=raw["L2_RPC_URI"].rstrip("/"),
            l2_lcd_url=raw["L2_LCD_URI"].rstrip("/"),
            signer_key_hex=key_hex.lower(),
            db_path=raw.get("BATCH_DB_PATH", cls.db_path),
            poll_interval_s=float(raw.get("INTERVAL_BATCH", cls.poll_interval_s)),
            http_timeout_s=float(raw.get("HTTP_TIMEOUT", cls.http_timeout_s)),
            confirm_attempts=int(raw.get("CONFIRM_ATTEMPTS", cls.confirm_attempts)),
            confirm_interval_s=float(
                raw.get("CONFIRM_INTERVAL", cls.confirm_interval_s)
            ),
            log_level=raw.get("LOG_LEVEL", cls.log_level),
            log_format=raw.get("LOG_FORMAT", cls.log_format),
        )
