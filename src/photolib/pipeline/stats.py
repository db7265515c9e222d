from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple


@dataclass(frozen=True)
class StatsSnapshot:
    processed: int
    failed: int
    pending: int
    current_batch: Tuple[Any, ...]
    processing: bool
    queue_length: int
    drain_runs: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "failed": self.failed,
            "pending": self.pending,
            "currentBatch": list(self.current_batch),
            "processing": self.processing,
            "queueLength": self.queue_length,
            "drainRuns": self.drain_runs,
        }


@dataclass
class PipelineStats:
    """Process-wide counters shared by the queue, processor and controller.

    Every read or write goes through ``lock``; the queue takes the same lock
    so ``pending`` always matches the queue length.
    """

    processed: int = 0
    failed: int = 0
    pending: int = 0
    current_batch: List[Any] = field(default_factory=list)
    processing: bool = False
    drain_runs: int = 0
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def snapshot(self, queue_length: int) -> StatsSnapshot:
        with self.lock:
            return StatsSnapshot(
                processed=self.processed,
                failed=self.failed,
                pending=self.pending,
                current_batch=tuple(self.current_batch),
                processing=self.processing,
                queue_length=queue_length,
                drain_runs=self.drain_runs,
            )
