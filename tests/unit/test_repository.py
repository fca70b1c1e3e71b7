"""
Unit tests for the job repository.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from delayed_jobs.constants import DEFAULT_MAX_ATTEMPTS, JobStatus
from delayed_jobs.db.repository import JobRepository
from delayed_jobs.types.job import WriteOutcome


class TestJobRepository:
    """Tests for JobRepository."""

    @pytest_asyncio.fixture
    async def repo(self, db_session: AsyncSession, clock) -> JobRepository:
        """Create a repository instance."""
        return JobRepository(db_session, clock=clock)

    async def test_create_job_defaults(self, repo: JobRepository, clock):
        """A new job is pending, unlocked and runnable now."""
        payload = {"job_type": "echo", "data": {"message": "test"}}

        job = await repo.create_job(payload=payload)

        assert job.payload == payload
        assert job.status == JobStatus.PENDING
        assert job.priority == 0
        assert job.attempts == 0
        assert job.max_attempts == DEFAULT_MAX_ATTEMPTS
        assert job.run_at == clock.now
        assert job.locked_at is None
        assert job.locked_by is None
        assert job.run_time == 0.0
        assert job.version == 1

    async def test_create_job_with_options(self, repo: JobRepository, clock):
        """Explicit scheduling options are stored."""
        run_at = clock.now + timedelta(hours=1)

        job = await repo.create_job(
            payload={"job_type": "echo"},
            priority=3,
            queue="mail",
            run_at=run_at,
            max_attempts=2,
            tags=["nightly"],
        )

        assert job.priority == 3
        assert job.queue == "mail"
        assert job.run_at == run_at
        assert job.max_attempts == 2
        assert job.tags == ["nightly"]

    async def test_create_job_aware_run_at_is_stored_as_utc(self, repo: JobRepository):
        """An offset is converted to UTC, not dropped."""
        run_at = datetime(2026, 1, 1, 6, 0, tzinfo=timezone(timedelta(hours=-5)))

        job = await repo.create_job(payload={"job_type": "echo"}, run_at=run_at)

        assert job.run_at == datetime(2026, 1, 1, 11, 0)
        assert (await repo.get_job(job.id)).run_at == datetime(2026, 1, 1, 11, 0)

    async def test_create_job_empty_queue_is_default(self, repo: JobRepository):
        """An empty queue name means the default queue."""
        job = await repo.create_job(payload={"job_type": "echo"}, queue="")
        assert job.queue is None

    async def test_get_job_by_id(self, repo: JobRepository):
        """Test getting a job by ID."""
        job = await repo.create_job(payload={"job_type": "echo"})

        retrieved = await repo.get_job(job.id)

        assert retrieved is not None
        assert retrieved.id == job.id

    async def test_get_job_not_found(self, repo: JobRepository):
        """Test getting a non-existent job."""
        assert await repo.get_job(uuid4()) is None

    async def test_conditional_write_bumps_version(self, repo: JobRepository, clock):
        """A write against the current version succeeds and bumps it."""
        job = await repo.create_job(payload={"job_type": "echo"})
        job.lock("worker-a", clock.now)

        result = await repo.conditional_write(job)

        assert result.outcome == WriteOutcome.OK
        assert result.record.version == 2

        stored = await repo.get_job(job.id)
        assert stored.version == 2
        assert stored.locked_by == "worker-a"
        assert stored.locked_at == clock.now

    async def test_conditional_write_stale_version_conflicts(self, repo: JobRepository, clock):
        """A write based on an outdated snapshot is rejected."""
        job = await repo.create_job(payload={"job_type": "echo"})
        first = job.model_copy(deep=True)
        second = job.model_copy(deep=True)

        first.lock("worker-a", clock.now)
        second.lock("worker-b", clock.now)

        assert (await repo.conditional_write(first)).ok
        result = await repo.conditional_write(second)

        assert result.outcome == WriteOutcome.VERSION_CONFLICT
        assert result.record is None
        stored = await repo.get_job(job.id)
        assert stored.locked_by == "worker-a"

    async def test_conditional_write_missing_job_conflicts(self, repo: JobRepository):
        """Writing a job that no longer exists is a conflict, not an error."""
        job = await repo.create_job(payload={"job_type": "echo"})
        await repo.delete_all()

        result = await repo.conditional_write(job)

        assert result.conflict

    async def test_conditional_write_rounds_run_time(self, repo: JobRepository):
        """run_time is stored with two decimals."""
        job = await repo.create_job(payload={"job_type": "echo"})
        job.run_time = 1.23456

        result = await repo.conditional_write(job)

        assert result.record.run_time == 1.23
        assert (await repo.get_job(job.id)).run_time == 1.23

    async def test_bulk_write_reports_each_record(self, repo: JobRepository, clock):
        """One stale record does not block the others."""
        fresh = await repo.create_job(payload={"job_type": "echo"})
        stale = await repo.create_job(payload={"job_type": "echo"})

        bumped = stale.model_copy(deep=True)
        bumped.priority = 9
        assert (await repo.conditional_write(bumped)).ok

        fresh.priority = 1
        stale.priority = 2
        results = await repo.bulk_write([fresh, stale])

        assert [r.outcome for r in results] == [
            WriteOutcome.OK,
            WriteOutcome.VERSION_CONFLICT,
        ]
        assert (await repo.get_job(fresh.id)).priority == 1
        assert (await repo.get_job(stale.id)).priority == 9

    async def test_list_jobs_filters(self, repo: JobRepository):
        """Test listing with status and queue filters."""
        await repo.create_job(payload={"job_type": "echo"}, queue="mail")
        await repo.create_job(payload={"job_type": "echo"}, queue="mail")
        other = await repo.create_job(payload={"job_type": "echo"}, queue="video")
        other.status = JobStatus.COMPLETED
        await repo.conditional_write(other)

        mail, mail_total = await repo.list_jobs(queue="mail")
        completed, completed_total = await repo.list_jobs(status=JobStatus.COMPLETED)
        page, total = await repo.list_jobs(limit=1)

        assert mail_total == 2
        assert {job.queue for job in mail} == {"mail"}
        assert completed_total == 1
        assert completed[0].id == other.id
        assert total == 3
        assert len(page) == 1

    async def test_job_stats_and_queue_depth(self, repo: JobRepository):
        """Stats count jobs per status; depth counts jobs waiting to run."""
        await repo.create_job(payload={"job_type": "echo"})
        rescheduled = await repo.create_job(payload={"job_type": "echo"}, queue="mail")
        rescheduled.status = JobStatus.FAILED_RESCHEDULED
        await repo.conditional_write(rescheduled)
        done = await repo.create_job(payload={"job_type": "echo"})
        done.status = JobStatus.COMPLETED
        await repo.conditional_write(done)

        stats = await repo.get_job_stats()

        assert stats == {"Pending": 1, "Failed - Rescheduled": 1, "Completed": 1}
        assert await repo.get_queue_depth() == 2
        assert await repo.get_queue_depth(queues=["mail"]) == 1

    async def test_delete_all(self, repo: JobRepository):
        """Every job is removed."""
        for _ in range(3):
            await repo.create_job(payload={"job_type": "echo"})

        assert await repo.delete_all() == 3
        _, total = await repo.list_jobs()
        assert total == 0
