"""Per-invocation wall-clock budget and progress interpolation.

The host may kill an invocation after a few seconds.  The stage controller
measures elapsed time from the start of *this* invocation only (never from
document creation) and pauses voluntarily once the budget is spent, which
leaves a clean checkpoint instead of relying on the host's kill.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field

# Progress bounds for the embedding loop; 0-25 covers extraction and
# chunking, 95-100 is the completion step.
EMBEDDING_PROGRESS_START = 25
EMBEDDING_PROGRESS_END = 95

PROGRESS_EXTRACTING = 5
PROGRESS_EXTRACTED = 10
PROGRESS_CHUNKING = 15
PROGRESS_COMPLETE = 100


def interpolate_progress(batches_done: int, batch_count: int) -> int:
    """Linear progress between the embedding start and end bounds."""
    if batch_count <= 0:
        return EMBEDDING_PROGRESS_START
    done = min(max(batches_done, 0), batch_count)
    span = EMBEDDING_PROGRESS_END - EMBEDDING_PROGRESS_START
    return round(EMBEDDING_PROGRESS_START + span * done / batch_count)


@dataclass
class InvocationBudget:
    """Tracks elapsed time against a fixed budget using an injectable clock."""

    seconds: float
    clock: Callable[[], float] = time.monotonic
    started_at: float = field(init=False)

    def __post_init__(self) -> None:
        self.started_at = self.clock()

    def elapsed(self) -> float:
        return self.clock() - self.started_at

    def exhausted(self) -> bool:
        return self.elapsed() >= self.seconds
