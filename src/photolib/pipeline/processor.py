from __future__ import annotations

import asyncio
import logging
from typing import List, Tuple

from photolib.core.errors import ImageNotFound
from photolib.pipeline.embed_client import EmbeddingClient
from photolib.pipeline.enums import EmbedErrorKind
from photolib.pipeline.job_queue import Job, JobQueue
from photolib.store.image_store import ImageStore

logger = logging.getLogger(__name__)


class BatchProcessor:
    """Drains the job queue in fixed-size batches until it is empty.

    Jobs in a batch are embedded concurrently and fail independently. A
    failed job is counted and logged, never re-enqueued. Between batches the
    loop sleeps ``pause_sec`` so the embedding service never sees more than
    ``batch_size`` requests at once.
    """

    def __init__(
        self,
        queue: JobQueue,
        client: EmbeddingClient,
        store: ImageStore,
        *,
        batch_size: int = 5,
        pause_sec: float = 2.0,
    ) -> None:
        self.queue = queue
        self.stats = queue.stats
        self.client = client
        self.store = store
        self.batch_size = batch_size
        self.pause_sec = pause_sec

    def _next_batch(self) -> List[Job]:
        with self.stats.lock:
            batch = self.queue.drain(self.batch_size)
            if batch:
                self.stats.current_batch = [job.image_id for job in batch]
            else:
                self._release()
            return batch

    def _release(self) -> None:
        with self.stats.lock:
            self.stats.current_batch = []
            self.stats.pending = self.queue.length()
            self.stats.processing = False

    async def run(self) -> None:
        logger.info("[EMBED_QUEUE] processor_started pending=%d", self.queue.length())
        try:
            while True:
                batch = self._next_batch()
                if not batch:
                    break
                logger.info(
                    "[EMBED_BATCH] start ids=%s remaining=%d",
                    [job.image_id for job in batch],
                    self.queue.length(),
                )
                await self.process_batch(batch)
                if self.queue.length() > 0:
                    logger.debug("[EMBED_BATCH] pause sec=%.1f", self.pause_sec)
                    await asyncio.sleep(self.pause_sec)
        except asyncio.CancelledError:
            logger.warning("[EMBED_QUEUE] processor_cancelled pending=%d", self.queue.length())
            self._release()
            raise
        except Exception as exc:
            logger.exception("[EMBED_QUEUE] processor_crashed: %s", exc)
            self._release()
            return

        snap = self.stats.snapshot(self.queue.length())
        logger.info(
            "[EMBED_QUEUE] processor_done processed=%d failed=%d",
            snap.processed,
            snap.failed,
        )

    async def _embed(self, job: Job) -> int:
        vec = await self.client.embed_image(job.source_path)
        if not self.store.set_embedding(job.image_id, vec):
            raise ImageNotFound(f"image {job.image_id} no longer exists")
        return len(vec)

    async def _run_job(self, job: Job) -> bool:
        """Embed one job and count it the moment it settles."""
        try:
            dim = await self._embed(job)
        except Exception as exc:
            with self.stats.lock:
                self.stats.failed += 1
            logger.error(
                "[EMBED_JOB] failed image_id=%s kind=%s error=%s",
                job.image_id,
                getattr(exc, "kind", EmbedErrorKind.ERROR),
                exc,
            )
            return False
        with self.stats.lock:
            self.stats.processed += 1
        logger.info("[EMBED_JOB] done image_id=%s dim=%d", job.image_id, dim)
        return True

    async def process_batch(self, batch: List[Job]) -> Tuple[int, int]:
        results = await asyncio.gather(
            *(self._run_job(job) for job in batch),
            return_exceptions=True,
        )
        succeeded = sum(1 for ok in results if ok is True)
        return succeeded, len(results) - succeeded
