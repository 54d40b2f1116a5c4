"""
Error taxonomy for the batch submitter.

Every fatal condition is a BatchSubmitterError subclass carrying a
machine-readable ``error_code`` and a ``details`` dict (batch index,
height range, endpoint, ...) so the operator log line has enough
context to diagnose before the supervisor restarts the process.

Kinds:
    - ConfigError: configuration or bridge parameters unavailable at startup.
    - FetchError: block source failed for a range already known to exist.
    - SubmitError: settlement transaction failed, was rejected, or never
      confirmed.
    - StoreError: progress store read or write failed.

"Range not yet produced" is NOT an error. It is reported as
``CycleOutcome.WAITING`` by the worker.

No kind is retried in-process. The run aborts and initialization
recomputes the next batch index from the progress store on restart.
"""

from __future__ import annotations

from typing import Any


class BatchSubmitterError(Exception):
    """Base class for fatal batch submitter errors.

    Args:
        message: Human-readable description.
        error_code: Stable machine-readable code (e.g. "HTTP_ERROR").
        details: Structured context for logs. Never contains secrets.
    """

    kind = "BATCH_SUBMITTER"

    def __init__(
        self,
        message: str,
        *,
        error_code: str = "UNKNOWN",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.details: dict[str, Any] = dict(details or {})

    def with_context(self, **context: Any) -> BatchSubmitterError:
        """Merge extra context into details and return self (for re-raise)."""
        for key, value in context.items():
            self.details.setdefault(key, value)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "error_code": self.error_code,
            "message": str(self),
            "details": self.details,
        }


class ConfigError(BatchSubmitterError):
    """Configuration or bridge parameters unavailable. Fatal, no retry."""

    kind = "CONFIG"


class FetchError(BatchSubmitterError):
    """Block source failed for an available range. Fatal."""

    kind = "FETCH"


class SubmitError(BatchSubmitterError):
    """Settlement commit failed, was rejected, or did not confirm. Fatal."""

    kind = "SUBMIT"


class StoreError(BatchSubmitterError):
    """Progress store read or write failed. Fatal."""

    kind = "STORE"
