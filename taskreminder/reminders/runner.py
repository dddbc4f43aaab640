"""
Polling job runner.

Every ``poll_interval`` the runner claims due jobs from the shared job store,
up to its global concurrency ceiling, and runs each on a thread pool under the
per-kind ceiling of the definition registered for that kind. Several runner
processes can share one database; the store's atomic claim keeps them from
executing the same job at the same time.
"""
import logging
import os
import socket
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Set

from sqlalchemy.orm import Session

from taskreminder.utils.timezone import utcnow
from .config import settings
from .job_models import Job, JobOutcome, JobStatus
from .metrics import jobs_claimed_total, jobs_failed_total, jobs_in_flight, runner_polls_total
from .repository import claim_due_jobs, release_job

logger = logging.getLogger(__name__)

JobHandler = Callable[[Session, Job], Optional[JobOutcome]]


@dataclass
class JobDefinition:
    """What to run for one job kind, and how many may run at once."""
    handler: JobHandler
    concurrency: Optional[int] = None
    on_exhausted: Optional[Callable[[Session, Job], None]] = None


def default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class JobRunner:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        definitions: Dict[str, JobDefinition],
        poll_interval: Optional[float] = None,
        max_concurrency: Optional[int] = None,
        lock_lifetime: Optional[timedelta] = None,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[timedelta] = None,
        worker_id: Optional[str] = None,
        now: Callable[[], datetime] = utcnow,
    ):
        if not definitions:
            raise ValueError("JobRunner needs at least one job definition")
        self.session_factory = session_factory
        self.definitions = dict(definitions)
        self.poll_interval = poll_interval if poll_interval is not None else settings.POLL_INTERVAL_SECONDS
        self.max_concurrency = max_concurrency or settings.MAX_CONCURRENCY
        self.lock_lifetime = lock_lifetime or timedelta(seconds=settings.LOCK_LIFETIME_SECONDS)
        self.max_attempts = max_attempts if max_attempts is not None else settings.JOB_MAX_ATTEMPTS
        self.retry_delay = retry_delay or timedelta(seconds=settings.JOB_RETRY_DELAY_SECONDS)
        self.worker_id = worker_id or default_worker_id()
        self.now = now

        self._semaphores = {
            kind: threading.BoundedSemaphore(
                min(definition.concurrency or settings.DEFAULT_CONCURRENCY, self.max_concurrency)
            )
            for kind, definition in self.definitions.items()
        }
        self._executor = ThreadPoolExecutor(max_workers=self.max_concurrency, thread_name_prefix="job-runner")
        self._lock = threading.Lock()
        self._in_flight = 0
        self._futures: Set[Future] = set()

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    def run_once(self) -> List[Future]:
        """One poll tick: claim what fits under the ceiling and dispatch it."""
        runner_polls_total.inc()
        with self._lock:
            capacity = self.max_concurrency - self._in_flight
        if capacity <= 0:
            logger.debug(f"[JobRunner] {self.worker_id} at capacity; skipping poll")
            return []

        db = self.session_factory()
        try:
            jobs = claim_due_jobs(
                db,
                self.worker_id,
                capacity,
                kinds=self.definitions.keys(),
                now=self.now(),
                lock_lifetime=self.lock_lifetime,
            )
        finally:
            db.close()

        if jobs:
            logger.info(f"🧭 [JobRunner] {self.worker_id} claimed {len(jobs)} job(s)")
            jobs_claimed_total.inc(len(jobs))

        futures = []
        for job in jobs:
            with self._lock:
                self._in_flight += 1
            jobs_in_flight.inc()
            future = self._executor.submit(self._execute, job)
            with self._lock:
                self._futures.add(future)
            future.add_done_callback(self._on_done)
            futures.append(future)
        return futures

    def _execute(self, job: Job) -> JobOutcome:
        definition = self.definitions[job.kind]
        with self._semaphores[job.kind]:
            db = self.session_factory()
            try:
                error = None
                try:
                    outcome = definition.handler(db, job) or JobOutcome.SUCCEEDED
                except Exception as e:
                    db.rollback()
                    logger.exception(f"❌ [JobRunner] Handler for job={job.id} kind={job.kind} raised")
                    outcome = JobOutcome.FAILED
                    error = repr(e)

                if outcome is JobOutcome.FAILED:
                    jobs_failed_total.inc()
                status = release_job(
                    db,
                    job.id,
                    self.worker_id,
                    outcome,
                    error=error,
                    now=self.now(),
                    max_attempts=self.max_attempts,
                    retry_delay=self.retry_delay,
                )
                if status == JobStatus.FAILED.value and definition.on_exhausted is not None:
                    try:
                        definition.on_exhausted(db, job)
                    except Exception:
                        db.rollback()
                        logger.exception(f"❌ [JobRunner] on_exhausted hook failed for job={job.id}")
                return outcome
            finally:
                db.close()

    def _on_done(self, future: Future) -> None:
        with self._lock:
            self._in_flight -= 1
            self._futures.discard(future)
        jobs_in_flight.dec()
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            # Release itself failed; the lease will expire and the job becomes claimable again
            logger.error(f"❌ [JobRunner] Job execution could not be recorded: {exc!r}")

    def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for every dispatched job to finish."""
        with self._lock:
            pending = list(self._futures)
        if pending:
            wait(pending, timeout=timeout)

    def run_forever(self, stop_event: Optional[threading.Event] = None) -> None:
        stop_event = stop_event or threading.Event()
        logger.info(
            f"🚀 [JobRunner] {self.worker_id} running; poll={self.poll_interval}s "
            f"max_concurrency={self.max_concurrency} kinds={list(self.definitions)}"
        )
        while not stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("❌ [JobRunner] Poll cycle failed")
            stop_event.wait(self.poll_interval)
        logger.info(f"[JobRunner] {self.worker_id} stopping; waiting for {self.in_flight} job(s)")
        self.shutdown(wait=True)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
