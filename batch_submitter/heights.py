"""
Height range calculator.

Maps a batch index to its inclusive L2 height window:

    start = starting_height + batch_index * submission_interval
    end   = start + submission_interval - 1

e.g. starting_height=100, submission_interval=50:
    0 -> [100, 149], 1 -> [150, 199], 2 -> [200, 249], ...

The range is never stored. It is recomputed from the batch index every
time, so persisted progress cannot drift from the window it covers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from batch_submitter.bridge import BridgeConfig


@dataclass(frozen=True)
class HeightRange:
    """Inclusive L2 height window ``[start, end]``."""

    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start + 1

    def to_dict(self) -> dict[str, int]:
        return {"start": self.start, "end": self.end}


def range_for(
    batch_index: int,
    *,
    starting_height: int,
    submission_interval: int,
) -> HeightRange:
    """Compute the height window for a batch index.

    Raises:
        ValueError: If batch_index is negative or submission_interval < 1.
    """
    if batch_index < 0:
        raise ValueError(f"batch_index must be >= 0, got: {batch_index}")
    if submission_interval < 1:
        raise ValueError(
            f"submission_interval must be >= 1, got: {submission_interval}"
        )

    start = starting_height + batch_index * submission_interval
    return HeightRange(start=start, end=start + submission_interval - 1)


def is_contiguous(a: HeightRange, b: HeightRange) -> bool:
    """True if ``b`` starts exactly one height after ``a`` ends."""
    return a.end + 1 == b.start


class HeightCalculator:
    """Binds the bridge parameters once for the lifetime of a run.

    Args:
        bridge_config: Starting height and submission interval, read once
            at startup.
    """

    def __init__(self, bridge_config: BridgeConfig) -> None:
        self._starting_height = bridge_config.starting_height
        self._submission_interval = bridge_config.submission_interval

    @property
    def starting_height(self) -> int:
        return self._starting_height

    @property
    def submission_interval(self) -> int:
        return self._submission_interval

    def range_for(self, batch_index: int) -> HeightRange:
        return range_for(
            batch_index,
            starting_height=self._starting_height,
            submission_interval=self._submission_interval,
        )
