"""Recurring background job scheduler."""

import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple, Union

from pydantic import ValidationError

from .clock import Clock, SystemClock
from .config import Settings
from .errors import JobValidationError, PersistenceError
from .executors import Executor
from .models import JobState, JobType, Recurrence, RecurrenceInterval, ScheduledJob, TickReport
from .recurrence import initial_run, next_run_after
from .storage import MemoryStore, StateStore

logger = logging.getLogger(__name__)

# shortest sleep between ticks when a job is about to fall due
MIN_SLEEP_SECONDS = 0.5


class JobScheduler:
    """Holds one-shot and recurring jobs and runs them when due.

    A job is due when it is active and ``next_run <= now``. Each tick
    executes the due batch, then reschedules recurring jobs, removes
    one-shot jobs that succeeded, leaves failed jobs due so the next tick
    retries them, and writes one snapshot of the whole job set.
    """

    def __init__(
        self,
        executors: Mapping[JobType, Executor],
        store: Optional[StateStore] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ):
        self.executors = dict(executors)
        self.store = store if store is not None else MemoryStore()
        self.settings = settings or Settings()
        self.clock = clock or SystemClock()
        self.tz = self.settings.tz()

        self._jobs: Dict[str, ScheduledJob] = {}
        self._executing: Set[str] = set()
        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._load()

    # -- persistence --------------------------------------------------

    def _load(self) -> None:
        try:
            raw = self.store.load() or []
            jobs = [ScheduledJob(**item) for item in raw]
        except (OSError, ValueError, TypeError, ValidationError) as e:
            logger.warning("Failed to load scheduled jobs, starting empty: %s", e)
            return
        for job in jobs:
            self._jobs[job.id] = job
        logger.info("Loaded %d scheduled jobs", len(jobs))

    def _persist(self) -> None:
        snapshot = [job.model_dump(mode="json") for job in self._jobs.values()]
        try:
            self.store.save(snapshot)
        except (OSError, TypeError, ValueError) as e:
            if self.settings.strict_persistence:
                raise PersistenceError(f"Failed to save scheduled jobs: {e}") from e
            logger.warning("Failed to save scheduled jobs, keeping in-memory state: %s", e)

    # -- job management -----------------------------------------------

    def schedule_job(
        self,
        type: Union[JobType, str],
        data: Optional[Dict[str, Any]] = None,
        scheduled_for: Optional[datetime] = None,
        recurring: Optional[Union[Recurrence, Dict[str, Any]]] = None,
        active: bool = True,
    ) -> str:
        """Add a job and return its new id.

        Raises JobValidationError for an unknown job type or a malformed
        recurrence rule.
        """
        try:
            job = ScheduledJob(
                id=uuid.uuid4().hex,
                type=type,
                data=data or {},
                scheduled_for=scheduled_for or self.clock.now(),
                recurring=recurring,
                active=active,
            )
        except ValidationError as e:
            raise JobValidationError(f"Invalid job: {e}", {"errors": e.errors(include_url=False)}) from e

        job.next_run = initial_run(job.scheduled_for, job.recurring, self.tz)

        with self._lock:
            self._jobs[job.id] = job
            self._persist()

        logger.info("Job scheduled: %s (%s) next run %s", job.type.value, job.id, job.next_run.isoformat())
        return job.id

    def cancel_job(self, job_id: str) -> bool:
        """Remove a job. A run already in flight still completes."""
        with self._lock:
            if self._jobs.pop(job_id, None) is None:
                return False
            self._persist()
        logger.info("Job cancelled: %s", job_id)
        return True

    def set_active(self, job_id: str, active: bool) -> bool:
        """Pause or resume a job. Resuming clears its failure count."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return False
            job.active = active
            if active:
                job.failure_count = 0
            self._persist()
        return True

    def get_jobs(self) -> List[ScheduledJob]:
        """Copies of all jobs, safe to inspect while the scheduler runs."""
        with self._lock:
            return [job.model_copy(deep=True) for job in self._jobs.values()]

    def get_job(self, job_id: str) -> Optional[ScheduledJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def find_jobs(self, job_type: JobType) -> List[ScheduledJob]:
        return [job for job in self.get_jobs() if job.type == job_type]

    def job_state(self, job_id: str) -> Optional[JobState]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            if job_id in self._executing:
                return JobState.EXECUTING
            return job.state(self.clock.now())

    def due_jobs(self, now: Optional[datetime] = None) -> List[ScheduledJob]:
        now = now or self.clock.now()
        with self._lock:
            return [
                job.model_copy(deep=True)
                for job in self._jobs.values()
                if job.state(now) == JobState.DUE and job.id not in self._executing
            ]

    def seconds_until_next_due(self) -> Optional[float]:
        """Seconds until the earliest active job falls due, 0 if overdue."""
        with self._lock:
            upcoming = [
                job.next_run for job in self._jobs.values()
                if job.active and job.next_run is not None and job.id not in self._executing
            ]
        if not upcoming:
            return None
        return max(0.0, (min(upcoming) - self.clock.now()).total_seconds())

    # -- execution ----------------------------------------------------

    def run_pending(self) -> TickReport:
        """Execute every job that is due now. One poll tick."""
        now = self.clock.now()
        with self._lock:
            due = self.due_jobs(now)
            self._executing.update(job.id for job in due)

        report = TickReport()
        if not due:
            return report

        outcomes, still_running = self._run_batch(due)

        with self._lock:
            for job_id, error in outcomes:
                if job_id not in still_running:
                    self._executing.discard(job_id)
                self._apply(job_id, error, now, report)
            self._persist()

        return report

    def _run_batch(self, due: List[ScheduledJob]) -> Tuple[List[Tuple[str, Optional[str]]], Set[str]]:
        """Run the batch concurrently. Returns (job id, error) pairs and ids still running."""
        timeout = self.settings.job_timeout_seconds
        pool = ThreadPoolExecutor(
            max_workers=min(self.settings.max_concurrent_jobs, len(due)),
            thread_name_prefix="ezjob-job",
        )
        futures = {pool.submit(self._invoke, job): job for job in due}
        done, not_done = wait(futures, timeout=timeout)

        outcomes = []
        still_running = set()
        for future, job in futures.items():
            if future in done:
                outcomes.append((job.id, future.result()))
            else:
                still_running.add(job.id)
                outcomes.append((job.id, f"Timed out after {timeout}s"))
                future.add_done_callback(lambda _f, job_id=job.id: self._release(job_id))
        pool.shutdown(wait=False)
        return outcomes, still_running

    def _release(self, job_id: str) -> None:
        with self._lock:
            self._executing.discard(job_id)

    def _invoke(self, job: ScheduledJob) -> Optional[str]:
        """Run one job's executor. Returns None on success, else the error."""
        executor = self.executors.get(job.type)
        if executor is None:
            return f"No executor registered for {job.type.value}"

        logger.info("Processing job: %s (%s)", job.type.value, job.id)
        try:
            ok = executor(dict(job.data))
        except Exception as e:
            logger.error("Job execution failed: %s (%s)", job.type.value, job.id, exc_info=True)
            return str(e) or type(e).__name__
        if ok is False:
            return "Executor reported failure"
        return None

    def _apply(self, job_id: str, error: Optional[str], now: datetime, report: TickReport) -> None:
        job = self._jobs.get(job_id)
        if job is None:
            # cancelled while running
            return

        if error is not None:
            job.failure_count += 1
            job.last_error = error
            report.failed.append(job_id)
            logger.error(
                "Job %s (%s) failed (attempt %d): %s",
                job.type.value, job_id, job.failure_count, error,
            )
            limit = self.settings.max_consecutive_failures
            if limit is not None and job.failure_count >= limit:
                job.active = False
                report.deactivated.append(job_id)
                logger.error("Job %s deactivated after %d consecutive failures", job_id, job.failure_count)
            return

        job.last_run = now
        job.failure_count = 0
        job.last_error = None
        report.executed.append(job_id)

        if job.recurring is not None:
            job.next_run = next_run_after(job.next_run, now, job.recurring, self.tz, self._anchor_day(job))
            report.rescheduled.append(job_id)
            logger.info("Job %s completed, next run %s", job_id, job.next_run.isoformat())
        else:
            del self._jobs[job_id]
            report.removed.append(job_id)
            logger.info("Job %s completed and removed", job_id)

    def _anchor_day(self, job: ScheduledJob) -> Optional[int]:
        """Day of month a monthly series keeps returning to, taken from its first run."""
        if job.recurring is None or job.recurring.interval != RecurrenceInterval.MONTHLY:
            return None
        return initial_run(job.scheduled_for, job.recurring, self.tz).astimezone(self.tz).day

    # -- polling loop -------------------------------------------------

    def _sleep_interval(self) -> float:
        """Poll interval, cut short only by a job that falls due in the future.

        Overdue jobs, including ones that just failed, wait for the next poll.
        """
        now = self.clock.now()
        with self._lock:
            upcoming = [
                job.next_run for job in self._jobs.values()
                if job.active and job.next_run is not None and job.next_run > now
            ]
        interval = self.settings.poll_interval_seconds
        if upcoming:
            interval = min(interval, max((min(upcoming) - now).total_seconds(), MIN_SLEEP_SECONDS))
        return interval

    def run_forever(self) -> None:
        """Tick until stopped, sleeping until the next job is due or the poll interval passes."""
        logger.info("Background job scheduler started")
        try:
            while not self._stop.is_set():
                try:
                    self.run_pending()
                except PersistenceError:
                    logger.error("Scheduler stopping: job state could not be saved")
                    raise
                except Exception as e:
                    logger.error("Scheduler tick failed: %s", e, exc_info=True)
                self._stop.wait(self._sleep_interval())
        finally:
            logger.info("Background job scheduler stopped")

    def start(self) -> None:
        """Run the polling loop on a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run_forever, name="ezjob-scheduler", daemon=True)
        self._thread.start()

    def request_stop(self) -> None:
        self._stop.set()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
