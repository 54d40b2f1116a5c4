"""
Batch submitter process entry point.

Run under a process supervisor:
    python -m batch_submitter

Exits 1 on any fatal error so the supervisor restarts the process;
the restarted process resumes from the progress store.

Signing uses the local Ed25519Signer, whose envelope is not a native
settlement-chain transaction. Swap in a chain-specific Signer in
build_submitter() before pointing this at a real L1.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from functools import partial

from batch_submitter.block_source import RpcBlockSource
from batch_submitter.bridge import BridgeConfig, fetch_bridge_config
from batch_submitter.client import JsonRpcSettlementClient
from batch_submitter.config import SubmitterConfig
from batch_submitter.errors import BatchSubmitterError, ConfigError, StoreError
from batch_submitter.logging_setup import setup_logging
from batch_submitter.progress import ProgressStore
from batch_submitter.settlement import SettlementSubmitter
from batch_submitter.signer import Ed25519Signer
from batch_submitter.transport import HttpxTransport
from batch_submitter.worker import BatchSubmitter

logger = logging.getLogger("batch_submitter.main")


def build_submitter(config: SubmitterConfig, store: ProgressStore) -> BatchSubmitter:
    """Wire the production adapters for one run."""
    transport = HttpxTransport(timeout=config.http_timeout_s)
    signer = Ed25519Signer.from_seed_hex(config.signer_key_hex)
    client = JsonRpcSettlementClient(config.l1_rpc_url, transport)

    def make_submitter(bridge_config: BridgeConfig) -> SettlementSubmitter:
        return SettlementSubmitter(
            client,
            signer,
            submission_interval=bridge_config.submission_interval,
            confirm_attempts=config.confirm_attempts,
            confirm_interval_s=config.confirm_interval_s,
        )

    return BatchSubmitter(
        ledger_id=config.ledger_id,
        block_source=RpcBlockSource(config.l2_rpc_url, config.l2_lcd_url, transport),
        store=store,
        load_bridge_config=partial(
            fetch_bridge_config, config.l1_lcd_url, config.bridge_id, transport
        ),
        make_submitter=make_submitter,
        poll_interval_s=config.poll_interval_s,
    )


async def main(config: SubmitterConfig) -> None:
    """Run the submitter until SIGINT/SIGTERM or a fatal error."""
    try:
        store = ProgressStore(config.db_path)
    except StoreError as exc:
        logger.error(
            "cannot open progress store",
            extra={"error": str(exc), "error_code": exc.error_code, **exc.details},
        )
        raise
    submitter = build_submitter(config, store)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, submitter.stop)

    try:
        await submitter.run()
    finally:
        store.close()


def cli() -> int:
    try:
        config = SubmitterConfig.from_env()
    except ConfigError as exc:
        setup_logging()
        logger.error("configuration error", extra={"error": str(exc), **exc.details})
        return 1

    setup_logging(config.log_level, config.log_format)
    logger.info(
        "starting batch submitter",
        extra={
            "ledger_id": config.ledger_id,
            "bridge_id": config.bridge_id,
            "poll_interval_s": config.poll_interval_s,
        },
    )

    try:
        asyncio.run(main(config))
    except BatchSubmitterError:
        # Already logged with full context by the worker.
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(cli())
