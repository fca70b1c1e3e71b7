"""
Job reservation.

Workers never coordinate directly. To reserve a job a worker reads
candidates from the views, then tries to lock them one at a time with a
write conditioned on the version it read. When two workers race for the
same job exactly one write matches the version; the other sees a version
conflict and moves on to its next candidate.

Abandoned locks are recovered the same way: a lock older than the max run
time is treated as free. This relies on worker clocks agreeing to well
within the max run time.
"""

import logging
from collections.abc import Iterable
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from delayed_jobs.clock import Clock, utcnow
from delayed_jobs.config import WorkerConfig
from delayed_jobs.constants import SPAN_RESERVE_JOB, JobStatus
from delayed_jobs.db.connection import get_session_context
from delayed_jobs.db.repository import JobRepository
from delayed_jobs.db.views import IndexViews
from delayed_jobs.observability.metrics import get_metrics
from delayed_jobs.observability.tracing import get_tracer
from delayed_jobs.types.job import JobRecord

logger = logging.getLogger(__name__)


def select_candidates(jobs: Iterable[JobRecord], config: WorkerConfig) -> list[JobRecord]:
    """
    Order and filter reservation candidates.

    Candidates are sorted by priority (lowest first, stable), filtered by
    the configured priority bounds and queues, then cut to the read-ahead
    window. Sorting happens before the cut so the window always holds the
    most urgent jobs.

    Args:
        jobs: Candidates from the views, duplicates allowed.
        config: The worker configuration.

    Returns:
        Candidates to try, in order.
    """
    candidates = sorted(jobs, key=lambda job: job.priority)

    if config.min_priority is not None:
        candidates = [job for job in candidates if job.priority >= config.min_priority]
    if config.max_priority is not None:
        candidates = [job for job in candidates if job.priority <= config.max_priority]
    if config.queues:
        candidates = [job for job in candidates if job.queue in config.queues]

    if config.read_ahead is not None:
        candidates = candidates[: config.read_ahead]
    return candidates


class ReservationEngine:
    """
    Finds and locks a runnable job for a worker.

    One engine can serve several workers in a process; the worker id is
    passed to each call.
    """

    def __init__(
        self,
        config: WorkerConfig,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        clock: Clock = utcnow,
    ):
        """
        Initialize the engine.

        Args:
            config: Reservation settings.
            session_factory: Factory for store sessions. Defaults to the
                global factory.
            clock: Time source.
        """
        self.config = config
        self._session_factory = session_factory
        self._clock = clock
        self._metrics = get_metrics()

    async def find_available(self, worker_id: str) -> list[JobRecord]:
        """
        Collect candidates from the ready, mine and expired views.

        Store errors propagate.

        Args:
            worker_id: The reserving worker.

        Returns:
            Candidates to try, in order.
        """
        async with get_session_context(self._session_factory) as session:
            views = IndexViews(session, clock=self._clock)
            ready = await views.ready_jobs()
            mine = await views.my_jobs(worker_id)
            expired = await views.expired_jobs(self.config.max_run_time)

        return select_candidates([*ready, *mine, *expired], self.config)

    async def reserve(self, worker_id: str) -> JobRecord | None:
        """
        Reserve one job for a worker.

        Args:
            worker_id: The reserving worker.

        Returns:
            The locked job, or None if every candidate was taken. The
            caller polls again later.
        """
        with get_tracer().start_as_current_span(SPAN_RESERVE_JOB) as span:
            span.set_attribute("worker_id", worker_id)

            candidates = await self.find_available(worker_id)
            span.set_attribute("candidates", len(candidates))

            for candidate in candidates:
                locked = await self.lock_exclusively(candidate, worker_id)
                if locked is not None:
                    span.set_attribute("job_id", str(locked.id))
                    self._metrics.record_job_reserved(worker_id)
                    logger.info(
                        "Reserved job",
                        extra={
                            "job_id": str(locked.id),
                            "worker_id": worker_id,
                            "attempts": locked.attempts,
                            "priority": locked.priority,
                        },
                    )
                    return locked

        return None

    async def lock_exclusively(
        self,
        job: JobRecord,
        worker_id: str,
        max_run_time: timedelta | None = None,
    ) -> JobRecord | None:
        """
        Try to lock a job for a worker.

        - A live lock held by another worker is never taken.
        - A lock already held by this worker is renewed; attempts stay.
        - A free job, or one whose lock went stale, is locked and its
          attempts counted.

        The write is conditioned on the version ``job`` was read with, so
        a concurrent change by another worker makes this attempt fail.

        Args:
            job: Candidate snapshot as read from the views.
            worker_id: The reserving worker.
            max_run_time: Staleness threshold. Defaults to the configured one.

        Returns:
            The locked job, or None if the lock was not acquired.
        """
        max_run_time = max_run_time or self.config.max_run_time
        now = self._clock()

        if job.locked_by_other(worker_id) and not job.lock_expired(max_run_time, now):
            self._metrics.record_lock_conflict("locked")
            return None

        candidate = job.model_copy(deep=True)
        reclaimed_from = None

        if candidate.locked_by_me(worker_id):
            candidate.locked_at = now
        else:
            if candidate.locked_by_other(worker_id):
                reclaimed_from = candidate.locked_by
            candidate.lock(worker_id, now)
            candidate.status = JobStatus.WORKING
            candidate.attempts += 1

        async with get_session_context(self._session_factory) as session:
            result = await JobRepository(session, clock=self._clock).conditional_write(candidate)

        if result.ok:
            if reclaimed_from is not None:
                self._metrics.record_stale_lock_reclaimed()
                logger.warning(
                    "Reclaimed stale lock",
                    extra={
                        "job_id": str(job.id),
                        "worker_id": worker_id,
                        "previous_owner": reclaimed_from,
                    },
                )
            return result.record

        if result.conflict:
            self._metrics.record_lock_conflict("version_conflict")
            logger.debug(
                "Lost lock race",
                extra={"job_id": str(job.id), "worker_id": worker_id},
            )
            return None

        self._metrics.record_lock_conflict("store_error")
        logger.error(
            "Store error while locking job",
            exc_info=result.error,
            extra={"job_id": str(job.id), "worker_id": worker_id},
        )
        return None
