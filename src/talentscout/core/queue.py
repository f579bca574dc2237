from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace

logger = logging.getLogger(__name__)

STAGES = ("scrape", "extract", "index")


@dataclass(slots=True)
class StageJob:
    stage: str
    talent_id: int
    run_id: int | None = None
    attempt: int = 0
    enqueued_at: float = field(default_factory=time.time)

    def retry(self) -> StageJob:
        return replace(self, attempt=self.attempt + 1, enqueued_at=time.time())


class StageQueue:
    """Thread-safe FIFO of pipeline stage jobs."""

    def __init__(self) -> None:
        self._queue: queue.Queue[StageJob] = queue.Queue()

    def put(self, job: StageJob) -> None:
        if job.stage not in STAGES:
            raise ValueError(f"unknown stage {job.stage}")
        logger.debug("Enqueued stage=%s talent_id=%s run_id=%s attempt=%s", job.stage, job.talent_id, job.run_id, job.attempt)
        self._queue.put(job)

    def get(self, timeout: float | None = None) -> StageJob | None:
        try:
            return self._queue.get(timeout=timeout) if timeout else self._queue.get_nowait()
        except queue.Empty:
            return None

    def __len__(self) -> int:
        return self._queue.qsize()

    def drain(self, handler: Callable[[StageJob], None], *, max_jobs: int | None = None) -> int:
        processed = 0
        while max_jobs is None or processed < max_jobs:
            job = self.get()
            if job is None:
                break
            try:
                handler(job)
            finally:
                self._queue.task_done()
            processed += 1
        return processed

    def work(
        self,
        handler: Callable[[StageJob], None],
        stop_event: threading.Event,
        *,
        poll_sec: float = 0.5,
    ) -> None:
        while not stop_event.is_set():
            job = self.get(timeout=poll_sec)
            if job is None:
                continue
            try:
                handler(job)
            except Exception:
                logger.exception("Unhandled error processing stage=%s talent_id=%s", job.stage, job.talent_id)
            finally:
                self._queue.task_done()
