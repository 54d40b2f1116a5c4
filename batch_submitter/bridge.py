"""
Bridge parameter discovery.

Reads the two numbers the height calculator needs from the settlement
layer's bridge record, exactly once at startup:

    GET {l1_lcd}/opinit/ophost/v1/bridges/{bridge_id}
    -> {"bridge_id": "1",
        "bridge_config": {"starting_block_number": "1",
                          "submission_interval": "100", ...}}

Chain REST APIs encode 64-bit integers as decimal strings. Both forms
are accepted.

Any failure is a ConfigError: without these parameters no batch range
can be computed, so there is nothing to retry in-process.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from batch_submitter.errors import ConfigError
from batch_submitter.transport import JsonTransport

BRIDGE_PATH = "/opinit/ophost/v1/bridges/{bridge_id}"


@dataclass(frozen=True)
class BridgeConfig:
    """Bridge parameters, immutable for the lifetime of a run.

    Attributes:
        starting_height: L2 height where batch 0 begins.
        submission_interval: Number of L2 heights per batch.
    """

    starting_height: int
    submission_interval: int

    def __post_init__(self) -> None:
        if self.starting_height < 1:
            raise ValueError(
                f"starting_height must be >= 1, got: {self.starting_height}"
            )
        if self.submission_interval < 1:
            raise ValueError(
                f"submission_interval must be >= 1, got: {self.submission_interval}"
            )


async def fetch_bridge_config(
    l1_lcd_url: str,
    bridge_id: int,
    transport: JsonTransport,
) -> BridgeConfig:
    """Query and parse the bridge record.

    Raises:
        ConfigError: On transport failure or a malformed bridge record.
    """
    url = l1_lcd_url.rstrip("/") + BRIDGE_PATH.format(bridge_id=bridge_id)
    try:
        response = await transport.get_json(url)
    except Exception as exc:
        raise ConfigError(
            f"bridge config unavailable: {exc}",
            error_code="BRIDGE_UNAVAILABLE",
            details={"url": url, "bridge_id": bridge_id},
        ) from exc

    return parse_bridge_config(response, bridge_id=bridge_id)


def parse_bridge_config(response: dict[str, Any], *, bridge_id: int) -> BridgeConfig:
    """Parse a bridge query response into BridgeConfig.

    Raises:
        ConfigError: If bridge_config or either field is missing or invalid.
    """
    bridge_cfg = response.get("bridge_config")
    if not isinstance(bridge_cfg, dict):
        raise ConfigError(
            "bridge response has no bridge_config",
            error_code="BRIDGE_MALFORMED",
            details={"bridge_id": bridge_id},
        )

    try:
        return BridgeConfig(
            starting_height=_parse_int(bridge_cfg, "starting_block_number"),
            submission_interval=_parse_int(bridge_cfg, "submission_interval"),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigError(
            f"bridge config malformed: {exc}",
            error_code="BRIDGE_MALFORMED",
            details={"bridge_id": bridge_id},
        ) from exc


def _parse_int(data: dict[str, Any], key: str) -> int:
    value = data[key]
    if isinstance(value, bool):
        raise TypeError(f"{key} must be an integer, got bool")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    raise ValueError(f"{key} must be an integer or decimal string, got: {value!r}")
