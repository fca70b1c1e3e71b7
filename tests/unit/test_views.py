"""
Unit tests for the reservation views.
"""

from datetime import timedelta

from delayed_jobs.constants import JobStatus

MAX_RUN_TIME = timedelta(minutes=5)


class TestReadyJobs:
    """Tests for the ready jobs query."""

    async def test_unlocked_due_job_is_ready(self, store):
        job = await store.enqueue()
        assert await store.ready_ids() == [job.id]

    async def test_future_job_is_not_ready_until_run_at(self, store, clock):
        """A job scheduled later only shows up once the clock passes run_at."""
        run_at = clock.now + timedelta(minutes=10)
        job = await store.enqueue(run_at=run_at)

        assert await store.ready_ids() == []

        clock.advance(minutes=9, seconds=59)
        assert await store.ready_ids() == []

        clock.advance(seconds=1)
        assert await store.ready_ids() == [job.id]

    async def test_ordered_by_run_at(self, store, clock):
        later = await store.enqueue(run_at=clock.now - timedelta(minutes=1))
        earlier = await store.enqueue(run_at=clock.now - timedelta(minutes=2))

        assert await store.ready_ids() == [earlier.id, later.id]

    async def test_locked_job_is_not_ready(self, store, clock):
        job = await store.enqueue()
        job.lock("worker-a", clock.now)
        await store.write(job)

        assert await store.ready_ids() == []


class TestMyJobs:
    """Tests for the jobs-held-by-a-worker query."""

    async def test_returns_only_own_locks(self, store, clock):
        mine = await store.enqueue()
        theirs = await store.enqueue()
        await store.enqueue()

        mine.lock("worker-a", clock.now)
        theirs.lock("worker-b", clock.now)
        await store.write(mine)
        await store.write(theirs)

        assert await store.my_ids("worker-a") == [mine.id]
        assert await store.my_ids("worker-b") == [theirs.id]
        assert await store.my_ids("worker-c") == []

    async def test_includes_future_run_at(self, store, clock):
        job = await store.enqueue(run_at=clock.now + timedelta(days=1))
        job.lock("worker-a", clock.now)
        await store.write(job)

        assert await store.my_ids("worker-a") == [job.id]


class TestExpiredJobs:
    """Tests for the stale lock query."""

    async def test_lock_older_than_max_run_time_is_expired(self, store, clock):
        job = await store.enqueue()
        job.lock("worker-a", clock.now - MAX_RUN_TIME - timedelta(seconds=1))
        await store.write(job)

        assert await store.expired_ids(MAX_RUN_TIME) == [job.id]

    async def test_lock_younger_than_max_run_time_is_not_expired(self, store, clock):
        job = await store.enqueue()
        job.lock("worker-a", clock.now - MAX_RUN_TIME + timedelta(seconds=1))
        await store.write(job)

        assert await store.expired_ids(MAX_RUN_TIME) == []

    async def test_unlocked_job_is_not_expired(self, store):
        await store.enqueue()
        assert await store.expired_ids(MAX_RUN_TIME) == []

    async def test_ordered_by_lock_time(self, store, clock):
        newer = await store.enqueue()
        older = await store.enqueue()
        newer.lock("worker-a", clock.now - timedelta(hours=1))
        older.lock("worker-b", clock.now - timedelta(hours=2))
        await store.write(newer)
        await store.write(older)

        assert await store.expired_ids(MAX_RUN_TIME) == [older.id, newer.id]


class TestRunnableRestriction:
    """Terminal and exhausted jobs are absent from every view."""

    async def test_completed_job_is_excluded(self, store, clock):
        job = await store.enqueue()
        job.status = JobStatus.COMPLETED
        job.run_at = None
        await store.write(job)

        assert await store.candidate_ids("worker-a", MAX_RUN_TIME) == set()

    async def test_attempts_exceeded_job_is_excluded(self, store, clock):
        job = await store.enqueue()
        job.status = JobStatus.FAILED_ATTEMPTS_EXCEEDED
        job.lock("worker-a", clock.now - timedelta(days=1))
        await store.write(job)

        assert await store.candidate_ids("worker-a", MAX_RUN_TIME) == set()

    async def test_spent_attempts_are_excluded(self, store, clock):
        """attempts == max_attempts drops a job even if its status lags."""
        job = await store.enqueue(max_attempts=2)
        job.attempts = 2
        job.status = JobStatus.WORKING
        job.lock("worker-a", clock.now - timedelta(days=1))
        await store.write(job)

        assert await store.candidate_ids("worker-a", MAX_RUN_TIME) == set()

    async def test_rescheduled_job_returns_when_due(self, store, clock):
        job = await store.enqueue()
        job.status = JobStatus.FAILED_RESCHEDULED
        job.attempts = 1
        job.run_at = clock.now + timedelta(seconds=30)
        await store.write(job)

        assert await store.ready_ids() == []
        clock.advance(seconds=30)
        assert await store.ready_ids() == [job.id]
