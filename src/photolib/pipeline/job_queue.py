from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, List

from photolib.pipeline.stats import PipelineStats


@dataclass(frozen=True)
class Job:
    image_id: Any
    source_path: str
    enqueued_at: float = field(default_factory=time.time)


class JobQueue:
    """FIFO of pending embedding jobs.

    Never blocks and never raises. Mutations update ``stats.pending`` while
    holding ``stats.lock``.
    """

    def __init__(self, stats: PipelineStats) -> None:
        self.stats = stats
        self._jobs: Deque[Job] = deque()

    @property
    def lock(self):
        return self.stats.lock

    def enqueue(self, image_id: Any, source_path: str) -> Job:
        job = Job(image_id=image_id, source_path=source_path)
        with self.lock:
            self._jobs.append(job)
            self.stats.pending = len(self._jobs)
        return job

    def drain(self, n: int) -> List[Job]:
        with self.lock:
            batch: List[Job] = []
            while self._jobs and len(batch) < n:
                batch.append(self._jobs.popleft())
            self.stats.pending = len(self._jobs)
            return batch

    def clear(self) -> int:
        with self.lock:
            dropped = len(self._jobs)
            self._jobs.clear()
            self.stats.pending = 0
            return dropped

    def length(self) -> int:
        with self.lock:
            return len(self._jobs)

    def __len__(self) -> int:
        return self.length()
