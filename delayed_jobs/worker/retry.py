"""
Failure accounting and rescheduling.
"""

import logging
from datetime import datetime, timedelta

from delayed_jobs.clock import Clock, to_naive_utc, utcnow
from delayed_jobs.config import WorkerConfig
from delayed_jobs.constants import JobStatus
from delayed_jobs.types.job import JobRecord

logger = logging.getLogger(__name__)


class RetryPolicy:
    """
    Decides what happens to a job after a failed attempt.

    ``attempts`` was already counted when the lock was taken, so the
    policy only reads it. While ``attempts < max_attempts`` the job is
    rescheduled with a polynomial backoff; after that it is marked
    ``Failed - Attempts Exceeded`` and drops out of every view.
    """

    def __init__(
        self,
        base_delay: float = 5.0,
        exponent: int = 4,
        clock: Clock = utcnow,
    ):
        """
        Initialize the policy.

        Args:
            base_delay: Seconds added to every backoff.
            exponent: Power applied to the attempt count.
            clock: Time source.
        """
        self.base_delay = base_delay
        self.exponent = exponent
        self._clock = clock

    @classmethod
    def from_config(cls, config: WorkerConfig, clock: Clock = utcnow) -> "RetryPolicy":
        return cls(
            base_delay=config.retry_base_delay,
            exponent=config.retry_backoff_exponent,
            clock=clock,
        )

    def backoff(self, attempts: int) -> timedelta:
        """Delay before the next attempt: attempts**exponent + base_delay seconds."""
        return timedelta(seconds=attempts**self.exponent + self.base_delay)

    def reschedule(
        self,
        job: JobRecord,
        error: str | None = None,
        explicit_time: datetime | None = None,
    ) -> JobRecord:
        """
        Record a failed attempt on the job and pick its next run time.

        The job is modified in place and returned; the caller persists it.

        Args:
            job: The locked job that just failed.
            error: Captured error message, stored as ``last_error``.
            explicit_time: Run time to use instead of the backoff.

        Returns:
            The updated job.
        """
        now = self._clock()

        job.add_run_time(now)
        job.failed_at = now
        if error is not None:
            job.last_error = error
        job.unlock()

        if job.attempts < job.max_attempts:
            if explicit_time is not None:
                job.run_at = to_naive_utc(explicit_time)
            else:
                job.run_at = now + self.backoff(job.attempts)
            job.status = JobStatus.FAILED_RESCHEDULED
            logger.info(
                "Job rescheduled",
                extra={
                    "job_id": str(job.id),
                    "attempts": job.attempts,
                    "run_at": job.run_at.isoformat(),
                },
            )
        else:
            job.run_at = None
            job.status = JobStatus.FAILED_ATTEMPTS_EXCEEDED
            logger.warning(
                f"Job failed permanently after {job.attempts} attempts",
                extra={"job_id": str(job.id), "error": error},
            )

        return job
