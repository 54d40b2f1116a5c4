"""
Logging setup for the batch submitter process.

Everything logs under the "batch_submitter" logger tree
(batch_submitter.worker, batch_submitter.settlement, ...). setup_logging()
installs exactly one stdout handler on that logger and turns off
propagation, so records are never duplicated by a root handler. Calling
it again only updates the level.

Formats:
    json  One JSON object per line (JsonFormatter):
              ts      UTC ISO-8601 timestamp, millisecond precision, "Z" suffix
              level   Level name
              logger  Logger name
              msg     Rendered message
              exc     Formatted traceback, only when exc_info is set
          Every ``extra={...}`` field is copied in as a top-level key.
          Values that are not JSON-serializable are rendered with str().
    text  TEXT_FORMAT, for local runs.

Messages are constant strings; per-batch values (batch_index, start, end,
tx_hash, error) travel as extras so "msg" can be matched exactly.
"""

import json
import logging
import sys
from datetime import datetime, timezone

LOGGER_NAME = "batch_submitter"

_RESERVED = frozenset(
    (
        "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
        "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
        "created", "msecs", "relativeCreated", "thread", "threadName",
        "processName", "process", "taskName", "message",
    )
)


# -----------------------------
# JSON formatter (one object per line)
# -----------------------------
class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key.startswith("_") or key in _RESERVED:
                continue
            log[key] = value
        if record.exc_info:
            log["exc"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO", fmt: str = "json") -> logging.Logger:
    """Install a single stdout handler on the package logger. Idempotent."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        if fmt == "json":
            handler.setFormatter(JsonFormatter())
        else:
            handler.setFormatter(logging.Formatter(TEXT_FORMAT))
        logger.addHandler(handler)
    logger.propagate = False
    return logger
