"""
Worker process for executing jobs.

The worker reserves one job at a time, runs it under the max run time
deadline, and records the outcome on the job: completed, rescheduled, or
failed for good once its attempts are spent.
"""

import asyncio
import inspect
import logging
import os
import signal
import socket
import time
import traceback
from datetime import datetime
from typing import Awaitable, Callable

from prometheus_client import start_http_server
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from delayed_jobs.clock import Clock, utcnow
from delayed_jobs.config import WorkerConfig, get_settings
from delayed_jobs.constants import SPAN_EXECUTE_JOB, JobStatus
from delayed_jobs.db import close_db, get_engine, get_session_context, init_db
from delayed_jobs.db.maintenance import clear_locks
from delayed_jobs.db.repository import JobRepository
from delayed_jobs.observability.logging import bind_context, setup_logging
from delayed_jobs.observability.metrics import get_metrics, setup_metrics
from delayed_jobs.observability.tracing import get_tracer, instrument_sqlalchemy, setup_tracing
from delayed_jobs.types.job import JobContext, JobRecord, WriteResult
from delayed_jobs.worker.exceptions import (
    DeserializationError,
    JobFailedError,
    JobTimeoutError,
)
from delayed_jobs.worker.handlers import invoke, load_payload
from delayed_jobs.worker.reservation import ReservationEngine
from delayed_jobs.worker.retry import RetryPolicy

logger = logging.getLogger(__name__)

# Called with the job and the error before a failed attempt is recorded
ErrorHook = Callable[[JobRecord, BaseException], Awaitable[None] | None]


def default_worker_id(prefix: str | None = None, index: int | None = None) -> str:
    """
    Build a worker identity from the host name and pid.

    Args:
        prefix: Optional name prefix.
        index: Position in an in-process pool, to keep identities distinct.

    Returns:
        The worker identity, used as ``locked_by``.
    """
    name = f"{prefix or ''}host:{socket.gethostname()} pid:{os.getpid()}"
    if index is not None:
        name = f"{name} #{index}"
    return name


def format_error(error: BaseException) -> str:
    """Render an error and its traceback for ``last_error``."""
    return "".join(traceback.format_exception(error)).rstrip()


class Worker:
    """
    Job worker that polls for and executes jobs.

    Features:
    - Optimistic-lock reservation, no coordination with other workers
    - Stale lock reclaim through the expired view
    - Execution deadline equal to the max run time
    - Retry with backoff until attempts run out
    - Releases its locks on graceful shutdown
    """

    def __init__(
        self,
        config: WorkerConfig | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        worker_id: str | None = None,
        clock: Clock = utcnow,
        error_hook: ErrorHook | None = None,
    ):
        """
        Initialize the worker.

        Args:
            config: Worker settings. Defaults to the configured settings.
            session_factory: Factory for store sessions. Defaults to the
                global factory.
            worker_id: Unique worker identifier. Defaults to hostname + PID.
            clock: Time source.
            error_hook: Called before a failed attempt is recorded.
        """
        settings = get_settings()

        self.config = config or settings.worker_config()
        self.worker_id = worker_id or default_worker_id(settings.worker_name_prefix)
        self._session_factory = session_factory
        self._clock = clock
        self._error_hook = error_hook

        self._engine = ReservationEngine(self.config, session_factory, clock=clock)
        self._retry = RetryPolicy.from_config(self.config, clock=clock)
        self._running = False
        self._stop_event = asyncio.Event()
        self._metrics = get_metrics()

    @property
    def engine(self) -> ReservationEngine:
        return self._engine

    async def start(self) -> None:
        """Run until stopped, then release this worker's locks."""
        bind_context(worker_id=self.worker_id)
        logger.info(
            "Worker starting",
            extra={
                "worker_id": self.worker_id,
                "read_ahead": self.config.read_ahead,
                "max_run_time": self.config.max_run_time.total_seconds(),
            },
        )

        self._running = True
        self._stop_event.clear()

        try:
            while self._running:
                try:
                    outcome = await self.run_once()
                except Exception as e:
                    logger.exception(
                        f"Error in worker loop: {e}",
                        extra={"worker_id": self.worker_id},
                    )
                    outcome = None

                if outcome is None and self._running:
                    await self._sleep(self.config.poll_interval)
        finally:
            await self._release_locks()

        logger.info("Worker stopped", extra={"worker_id": self.worker_id})

    async def stop(self) -> None:
        """Stop the worker after the current job."""
        logger.info("Worker stopping", extra={"worker_id": self.worker_id})
        self._running = False
        self._stop_event.set()

    async def run_once(self) -> bool | None:
        """
        Reserve and run one job.

        Returns:
            True if the job succeeded, False if it failed, None if no job
            could be reserved.
        """
        job = await self._engine.reserve(self.worker_id)
        if job is None:
            return None
        return await self.run(job)

    async def work_off(self, num: int = 100) -> tuple[int, int]:
        """
        Run up to ``num`` jobs, stopping early when none can be reserved.

        Returns:
            Tuple of (succeeded, failed).
        """
        succeeded = failed = 0
        for _ in range(num):
            outcome = await self.run_once()
            if outcome is None:
                break
            if outcome:
                succeeded += 1
            else:
                failed += 1
        return succeeded, failed

    async def run(self, job: JobRecord) -> bool:
        """
        Execute a reserved job and record the outcome.

        Args:
            job: The job, locked by this worker.

        Returns:
            True if the job succeeded, False otherwise.
        """
        started = time.monotonic()

        try:
            payload, handler = load_payload(job)
        except DeserializationError as e:
            logger.error(
                "Could not load job payload",
                extra={"job_id": str(job.id), "error": e.message},
            )
            await self._fail(job, format_error(e), started)
            return False

        context = JobContext(
            job_id=job.id,
            attempt=job.attempts,
            max_attempts=job.max_attempts,
            payload=payload,
            queue=job.queue,
            locked_by=self.worker_id,
            locked_at=job.locked_at or self._clock(),
        )
        deadline = self.config.max_run_time.total_seconds()
        retry_at: datetime | None = None

        logger.info(
            "Executing job",
            extra={
                "job_id": str(job.id),
                "job_type": payload.job_type,
                "attempt": job.attempts,
            },
        )

        try:
            with get_tracer().start_as_current_span(SPAN_EXECUTE_JOB) as span:
                span.set_attribute("job_id", str(job.id))
                span.set_attribute("job_type", payload.job_type)
                span.set_attribute("attempt", job.attempts)

                try:
                    result = await asyncio.wait_for(invoke(handler, context), timeout=deadline)
                except TimeoutError as e:
                    raise JobTimeoutError(
                        f"Execution expired after {deadline:g}s", job_id=job.id
                    ) from e

            if not result.success:
                retry_at = result.retry_at
                raise JobFailedError(result.error or "Job reported failure", job_id=job.id)

        except Exception as e:
            logger.warning(
                "Job failed",
                extra={"job_id": str(job.id), "error": str(e), "attempt": job.attempts},
            )
            await self._run_error_hook(job, e)
            await self._fail(job, format_error(e), started, explicit_time=retry_at)
            return False

        await self._complete(job, started)
        return True

    async def _complete(self, job: JobRecord, started: float) -> None:
        now = self._clock()
        job.status = JobStatus.COMPLETED
        job.completed_at = now
        job.add_run_time(now)
        job.run_at = None
        job.unlock()
        job.clear_failed()

        await self._persist(job)

        duration = time.monotonic() - started
        self._metrics.record_job_completed(job.status.value, duration)
        logger.info(
            "Job completed successfully",
            extra={"job_id": str(job.id), "duration": f"{duration:.2f}s"},
        )

    async def _fail(
        self,
        job: JobRecord,
        error: str,
        started: float,
        explicit_time: datetime | None = None,
    ) -> None:
        self._retry.reschedule(job, error=error, explicit_time=explicit_time)
        await self._persist(job)
        self._metrics.record_job_completed(job.status.value, time.monotonic() - started)

    async def _persist(self, job: JobRecord) -> WriteResult:
        async with get_session_context(self._session_factory) as session:
            result = await JobRepository(session, clock=self._clock).conditional_write(job)

        if result.conflict:
            # Another worker reclaimed the lock while this one was running
            logger.warning(
                "Job changed while running, outcome dropped",
                extra={"job_id": str(job.id), "worker_id": self.worker_id},
            )
        elif not result.ok:
            logger.error(
                "Failed to record job outcome",
                exc_info=result.error,
                extra={"job_id": str(job.id)},
            )
        return result

    async def _run_error_hook(self, job: JobRecord, error: BaseException) -> None:
        if self._error_hook is None:
            return
        try:
            outcome = self._error_hook(job, error)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception("Error hook raised", extra={"job_id": str(job.id)})

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except TimeoutError:
            pass

    async def _release_locks(self) -> None:
        try:
            async with get_session_context(self._session_factory) as session:
                await clear_locks(session, self.worker_id, clock=self._clock)
        except Exception:
            logger.exception(
                "Failed to clear locks on shutdown",
                extra={"worker_id": self.worker_id},
            )


def request_stop(workers: list[Worker], pending: set[asyncio.Task]) -> None:
    """
    Ask every worker to stop after its current job.

    Stop tasks are kept in ``pending`` until they finish so the event loop
    does not drop them.
    """
    for worker in workers:
        task = asyncio.get_running_loop().create_task(worker.stop())
        pending.add(task)
        task.add_done_callback(pending.discard)


async def run_async() -> None:
    """Run a pool of workers until SIGTERM or SIGINT."""
    setup_logging()
    setup_metrics()
    setup_tracing()
    await init_db()
    instrument_sqlalchemy(get_engine())

    settings = get_settings()
    start_http_server(settings.prometheus_port)

    config = settings.worker_config()
    pool_size = max(1, settings.worker_pool_size)
    workers = [
        Worker(
            config=config,
            worker_id=default_worker_id(
                settings.worker_name_prefix,
                index=i if pool_size > 1 else None,
            ),
        )
        for i in range(pool_size)
    ]

    loop = asyncio.get_running_loop()
    stopping: set[asyncio.Task] = set()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, request_stop, workers, stopping)

    try:
        await asyncio.gather(*(worker.start() for worker in workers))
    finally:
        await close_db()


def run() -> None:
    """Run the worker."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
