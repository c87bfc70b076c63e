"""Background Adaptation Scheduler.

Every session end requests one adaptation job. Jobs run on a worker pool
owned by the scheduler, so they outlive the thread that enqueued them.

Job flow:
    enqueue() → pending → running → sample_batch(batch_size) → engine.adapt(batch)
                                  → succeeded | failed (never retried)

Jobs carry no dedup key: back-to-back enqueues each run and each call
adapt, possibly concurrently and with identical batches.
"""

import logging
import secrets
import threading
from collections import deque
import concurrent.futures
from concurrent.futures import ThreadPoolExecutor, Future
from datetime import datetime
from typing import Optional, List, Dict, Any

from ..errors import AdaptationError, ConfigurationError
from ..types import AdaptationJob, JobStatus
from .engine import AdaptationEngine
from .sample_store import SampleStore, get_sample_store

logger = logging.getLogger(__name__)


class AdaptationScheduler:
    """Runs fire-and-forget adaptation jobs against the sample store."""

    def __init__(
        self,
        engine: AdaptationEngine,
        store: Optional[SampleStore] = None,
        batch_size: Optional[int] = None,
        max_workers: Optional[int] = None,
        history: Optional[int] = None,
    ):
        if batch_size is None or max_workers is None or history is None:
            from ..config import get_config
            config = get_config()
            batch_size = config.batch_size if batch_size is None else batch_size
            max_workers = config.job_workers if max_workers is None else max_workers
            history = config.job_history if history is None else history

        if batch_size < 0:
            raise ConfigurationError(f"batch_size must be >= 0, got {batch_size}")

        self.engine = engine
        self._store = store
        self.batch_size = batch_size

        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="whisperkey-adapt",
        )
        self._lock = threading.Lock()
        self._inflight: Dict[str, Future] = {}
        self._history: deque = deque(maxlen=history)

    @property
    def store(self) -> SampleStore:
        # Resolved per job so a scheduler can be built before the store exists
        return self._store or get_sample_store()

    # =========================================================================
    # SCHEDULING
    # =========================================================================

    def enqueue(self) -> None:
        """Schedule one adaptation job and return immediately."""
        job = AdaptationJob(id=secrets.token_hex(8), created_at=datetime.utcnow())

        with self._lock:
            self._history.append(job)
            try:
                future = self._executor.submit(self._execute, job)
            except RuntimeError as e:
                # Pool already shut down
                job.status = JobStatus.FAILED.value
                job.error = f"Not scheduled: {e}"
                job.finished_at = datetime.utcnow()
                logger.warning(f"Adaptation job {job.id} dropped: {e}")
                return
            self._inflight[job.id] = future

        future.add_done_callback(lambda _: self._forget(job.id))
        logger.debug(f"Adaptation job {job.id} pending")

    def run_now(self) -> AdaptationJob:
        """Run one job synchronously on the calling thread."""
        job = AdaptationJob(id=secrets.token_hex(8), created_at=datetime.utcnow())
        with self._lock:
            self._history.append(job)
        return self._execute(job)

    def _forget(self, job_id: str):
        with self._lock:
            self._inflight.pop(job_id, None)

    # =========================================================================
    # JOB BODY
    # =========================================================================

    def _execute(self, job: AdaptationJob) -> AdaptationJob:
        job.status = JobStatus.RUNNING.value
        job.started_at = datetime.utcnow()
        logger.info(f"Adaptation job {job.id} running (batch size {self.batch_size})")

        try:
            batch = self.store.sample_batch(self.batch_size)
        except Exception as e:
            return self._fail(job, e)

        job.batch_ids = [sample.id for sample in batch]

        try:
            self.engine.adapt(batch)
        except Exception as e:
            return self._fail(job, AdaptationError(f"Engine failed on {len(batch)} samples: {e}"))

        job.status = JobStatus.SUCCEEDED.value
        job.finished_at = datetime.utcnow()
        logger.info(f"Adaptation job {job.id} succeeded ({len(batch)} samples)")
        return job

    def _fail(self, job: AdaptationJob, error: Exception) -> AdaptationJob:
        job.status = JobStatus.FAILED.value
        job.error = str(error)
        job.finished_at = datetime.utcnow()
        logger.error(f"Adaptation job {job.id} failed: {error}")
        return job

    # =========================================================================
    # INSPECTION
    # =========================================================================

    def jobs(self) -> List[AdaptationJob]:
        """Recent jobs, oldest first."""
        with self._lock:
            return list(self._history)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._inflight)

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for jobs accepted so far. Returns False on timeout."""
        with self._lock:
            futures = list(self._inflight.values())
        _, not_done = concurrent.futures.wait(futures, timeout=timeout)
        return not not_done

    def get_status(self) -> Dict[str, Any]:
        jobs = self.jobs()
        by_status = {status.value: 0 for status in JobStatus}
        for job in jobs:
            by_status[job.status] += 1

        return {
            "batch_size": self.batch_size,
            "in_flight": self.pending_count(),
            "jobs": by_status,
            "last_job": jobs[-1].to_dict() if jobs else None,
        }

    def shutdown(self, wait: bool = True):
        """Stop accepting jobs; optionally wait for accepted ones."""
        self._executor.shutdown(wait=wait)
