from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Iterable, Optional, Tuple

from photolib.core.errors import InvalidArgument
from photolib.core.settings import PipelineConfig
from photolib.pipeline.embed_client import EmbeddingClient
from photolib.pipeline.enums import PipelineState
from photolib.pipeline.job_queue import Job, JobQueue
from photolib.pipeline.processor import BatchProcessor
from photolib.pipeline.stats import PipelineStats, StatsSnapshot
from photolib.store.image_store import ImageStore

logger = logging.getLogger(__name__)


def _validate(image_id: Any, source_path: Any) -> str:
    if image_id is None or isinstance(image_id, bool):
        raise InvalidArgument("image_id is required")
    if isinstance(image_id, str) and not image_id.strip():
        raise InvalidArgument("image_id is required")
    if not isinstance(source_path, (str, os.PathLike)):
        raise InvalidArgument("source_path must be a path")
    path = os.fspath(source_path)
    if not isinstance(path, str) or not path.strip():
        raise InvalidArgument("source_path is required")
    return path


class EmbeddingPipeline:
    """Entry point for enqueueing embedding work and reading its progress.

    One instance per process, owned by the app. ``enqueue`` must be called
    from the event loop thread: it starts the drain loop as a task on the
    running loop.
    """

    def __init__(
        self,
        client: EmbeddingClient,
        store: ImageStore,
        config: Optional[PipelineConfig] = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self.store = store
        self._stats = PipelineStats()
        self.queue = JobQueue(self._stats)
        self.processor = BatchProcessor(
            self.queue,
            client,
            store,
            batch_size=self.config.batch_size,
            pause_sec=self.config.batch_pause_sec,
        )
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> PipelineState:
        with self._stats.lock:
            return PipelineState.DRAINING if self._stats.processing else PipelineState.IDLE

    @property
    def is_running(self) -> bool:
        return self.state is PipelineState.DRAINING

    def enqueue(self, image_id: Any, source_path: Any) -> Job:
        path = _validate(image_id, source_path)
        loop = asyncio.get_running_loop()
        with self._stats.lock:
            job = self.queue.enqueue(image_id, path)
            start = not self._stats.processing
            if start:
                self._stats.processing = True
                self._stats.drain_runs += 1
            pending = self._stats.pending
        logger.info("[EMBED_QUEUE] added image_id=%s pending=%d", image_id, pending)
        if start:
            self._task = loop.create_task(self.processor.run(), name="embedding-drain")
        return job

    def enqueue_many(self, items: Iterable[Tuple[Any, Any]]) -> int:
        count = 0
        for image_id, source_path in items:
            self.enqueue(image_id, source_path)
            count += 1
        return count

    def enqueue_missing(self) -> int:
        """Queue every stored image that has no embedding yet."""
        rows = self.store.list_for_embedding(missing_only=True)
        count = self.enqueue_many((row["id"], row["file_path"]) for row in rows)
        if count:
            logger.info("[EMBED_QUEUE] recovered missing=%d", count)
        return count

    def stats(self) -> StatsSnapshot:
        with self._stats.lock:
            return self._stats.snapshot(self.queue.length())

    def clear(self) -> int:
        dropped = self.queue.clear()
        logger.info("[EMBED_QUEUE] cleared dropped=%d", dropped)
        return dropped

    async def wait_idle(self) -> None:
        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})

    async def aclose(self) -> None:
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.wait({task})
