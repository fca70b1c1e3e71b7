"""
Unit tests for failure rescheduling.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from delayed_jobs.constants import JobStatus
from delayed_jobs.types.job import JobRecord, JobResult
from delayed_jobs.worker.retry import RetryPolicy


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    @pytest.fixture
    def policy(self, clock) -> RetryPolicy:
        return RetryPolicy(base_delay=5.0, exponent=4, clock=clock)

    def _locked_job(self, clock, attempts: int, max_attempts: int = 3) -> JobRecord:
        job = JobRecord(
            id=uuid4(),
            attempts=attempts,
            max_attempts=max_attempts,
            status=JobStatus.WORKING,
        )
        job.lock("worker-a", clock.now - timedelta(seconds=2))
        return job

    @pytest.mark.parametrize(
        "attempts,expected_seconds",
        [(0, 5), (1, 6), (2, 21), (3, 86)],
    )
    def test_backoff(self, policy, attempts, expected_seconds):
        assert policy.backoff(attempts) == timedelta(seconds=expected_seconds)

    def test_from_config(self, worker_config, clock):
        policy = RetryPolicy.from_config(worker_config, clock=clock)

        assert policy.base_delay == worker_config.retry_base_delay
        assert policy.exponent == worker_config.retry_backoff_exponent

    def test_reschedules_while_attempts_remain(self, policy, clock):
        job = self._locked_job(clock, attempts=2)

        policy.reschedule(job, error="boom")

        assert job.status == JobStatus.FAILED_RESCHEDULED
        assert job.run_at == clock.now + timedelta(seconds=21)
        assert job.is_failed
        assert not job.in_progress
        assert job.failed_at == clock.now
        assert job.last_error == "boom"
        assert job.locked_at is None
        assert job.locked_by is None

    def test_attempts_are_not_counted_again(self, policy, clock):
        """Attempts were counted when the lock was taken."""
        job = self._locked_job(clock, attempts=1)

        policy.reschedule(job, error="boom")

        assert job.attempts == 1

    def test_exhausted_job_fails_permanently(self, policy, clock):
        job = self._locked_job(clock, attempts=3, max_attempts=3)

        policy.reschedule(job, error="boom")

        assert job.status == JobStatus.FAILED_ATTEMPTS_EXCEEDED
        assert job.run_at is None
        assert job.failed_at == clock.now
        assert job.last_error == "boom"
        assert not job.is_locked
        assert not job.is_runnable

    def test_single_attempt_job_is_not_rescheduled(self, policy, clock):
        job = self._locked_job(clock, attempts=1, max_attempts=1)

        policy.reschedule(job, error="boom")

        assert job.status == JobStatus.FAILED_ATTEMPTS_EXCEEDED

    def test_explicit_time_overrides_backoff(self, policy, clock):
        retry_at = clock.now + timedelta(hours=1)
        job = self._locked_job(clock, attempts=1)

        policy.reschedule(job, error="boom", explicit_time=retry_at)

        assert job.run_at == retry_at
        assert job.status == JobStatus.FAILED_RESCHEDULED

    def test_explicit_time_ignored_once_exhausted(self, policy, clock):
        job = self._locked_job(clock, attempts=3, max_attempts=3)

        policy.reschedule(job, explicit_time=clock.now + timedelta(hours=1))

        assert job.run_at is None

    def test_run_time_accumulates(self, policy, clock):
        job = self._locked_job(clock, attempts=1)
        job.run_time = 1.5

        policy.reschedule(job)

        assert job.run_time == pytest.approx(3.5)

    def test_keeps_previous_error_without_new_one(self, policy, clock):
        job = self._locked_job(clock, attempts=1)
        job.last_error = "earlier"

        policy.reschedule(job)

        assert job.last_error == "earlier"

    def test_aware_explicit_time_is_stored_as_utc(self, policy, clock):
        job = self._locked_job(clock, attempts=1)

        policy.reschedule(
            job,
            explicit_time=datetime(2026, 1, 1, 18, 0, tzinfo=timezone(timedelta(hours=5))),
        )

        assert job.run_at == datetime(2026, 1, 1, 13, 0)
        assert job.run_at.tzinfo is None

    @pytest.mark.parametrize(
        "offset_hours,expected_hour",
        [(5, 7), (-5, 17)],
    )
    def test_handler_retry_at_is_converted_to_utc(self, offset_hours, expected_hour):
        retry_at = datetime(2026, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=offset_hours)))

        result = JobResult(success=False, retry_at=retry_at)

        assert result.retry_at == datetime(2026, 1, 1, expected_hour, 0)
