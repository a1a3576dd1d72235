"""Fire-and-forget extraction on a worker pool, reported through the job log."""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Callable, Dict, Optional

from ..models import ExtractionJob, ExtractionReport
from ..models.reports import IN_FLIGHT_STATUSES
from ..storage import MemoryStore
from ..utils import days_between, now_utc

logger = logging.getLogger(__name__)

ExtractFn = Callable[[str, str, str], ExtractionReport]


class ExtractionQueue:
    """
    Background extraction runner.

    ``submit`` returns as soon as the job is recorded. The worker marks the
    job ``processing`` and then ``completed`` or ``failed``; a failure is
    logged and written to the job, never raised into the submitter.
    """

    def __init__(
        self,
        extract_fn: ExtractFn,
        memory_store: MemoryStore,
        max_workers: int = 4,
        dedupe_seconds: float = 120.0,
        clock: Callable[[], datetime] = now_utc,
    ):
        """
        Initialize the queue.

        Args:
            extract_fn: Callable running one extraction (session, agent, user)
            memory_store: Store holding the job log
            max_workers: Worker threads
            dedupe_seconds: Window in which an in-flight job for the same
                session suppresses a new submission
            clock: Source of the current time
        """
        self.extract_fn = extract_fn
        self.store = memory_store
        self.dedupe_seconds = dedupe_seconds
        self.clock = clock
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="memory-extract"
        )
        self._futures: Dict[str, Future] = {}
        self._submit_lock = threading.Lock()

    def _recent_in_flight(self, session_id: str) -> Optional[ExtractionJob]:
        now = self.clock()
        for job in self.store.find_jobs(session_id, list(IN_FLIGHT_STATUSES)):
            if days_between(job.created_at, now) * 86400.0 < self.dedupe_seconds:
                return job
        return None

    def submit(
        self, session_id: str, agent_id: str, user_id: str
    ) -> Optional[ExtractionJob]:
        """
        Queue an extraction.

        Returns:
            The new job, or None when an in-flight job already covers the session
        """
        with self._submit_lock:
            existing = self._recent_in_flight(session_id)
            if existing:
                logger.info(
                    "Extraction for session %s already in flight (job %s), skipping",
                    session_id,
                    existing.job_id,
                )
                return None
            job = ExtractionJob.create(session_id, agent_id, user_id)
            job.created_at = self.clock()
            self.store.save_job(job)

        future = self._executor.submit(self._run, job)
        self._futures[job.job_id] = future
        # Registered after the insert; a future that already finished runs the
        # callback immediately, so no finished entry is left behind.
        future.add_done_callback(lambda _: self._futures.pop(job.job_id, None))
        return job

    def _run(self, job: ExtractionJob) -> None:
        try:
            job.start()
            self.store.save_job(job)
            report = self.extract_fn(job.session_id, job.agent_id, job.user_id)
            job.complete(report)
        except Exception as e:
            logger.exception(
                "Background extraction failed for session %s (job %s)",
                job.session_id,
                job.job_id,
            )
            job.fail(f"{type(e).__name__}: {e}")
        try:
            self.store.save_job(job)
        except Exception:
            logger.exception("Could not record outcome of job %s", job.job_id)

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[ExtractionJob]:
        """
        Block until a submitted job finishes and return its recorded state.

        Finished jobs are no longer tracked here; their outcome is read
        straight from the job log.
        """
        future = self._futures.get(job_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.store.get_job(job_id)

    @property
    def in_flight(self) -> int:
        """Jobs submitted and not yet finished."""
        return len(self._futures)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
