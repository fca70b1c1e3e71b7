"""
Sorted views over the jobs table.

Two partial composite indexes stand in for a composite-key view:
``(locked_by, run_at)`` and ``(locked_at, run_at)``, both restricted to
jobs that may still run. Each query below is a range over one of them.
"""

from datetime import datetime, timedelta

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from delayed_jobs.clock import Clock, utcnow
from delayed_jobs.db.models import RUNNABLE, Job
from delayed_jobs.db.repository import JobRepository
from delayed_jobs.types.job import JobRecord


def ready_jobs_query(now: datetime) -> Select:
    """Unlocked jobs whose run_at has passed, on (locked_by, run_at)."""
    return (
        select(Job)
        .where(RUNNABLE, Job.locked_by.is_(None), Job.run_at <= now)
        .order_by(Job.locked_by, Job.run_at)
    )


def my_jobs_query(worker_id: str) -> Select:
    """Jobs locked by one worker, any run_at, on (locked_by, run_at)."""
    return (
        select(Job)
        .where(RUNNABLE, Job.locked_by == worker_id)
        .order_by(Job.locked_by, Job.run_at)
    )


def expired_jobs_query(max_run_time: timedelta, now: datetime) -> Select:
    """Jobs locked before now - max_run_time, on (locked_at, run_at)."""
    return (
        select(Job)
        .where(
            RUNNABLE,
            Job.locked_at.is_not(None),
            Job.locked_at < now - max_run_time,
        )
        .order_by(Job.locked_at, Job.run_at)
    )


class IndexViews:
    """
    Read-only range queries used to find reservation candidates.

    Store errors propagate to the caller; an empty list is a normal result.
    """

    def __init__(self, session: AsyncSession, clock: Clock = utcnow):
        self._repo = JobRepository(session, clock=clock)
        self._clock = clock

    async def ready_jobs(self) -> list[JobRecord]:
        return await self._repo.range_query(ready_jobs_query(self._clock()))

    async def my_jobs(self, worker_id: str) -> list[JobRecord]:
        return await self._repo.range_query(my_jobs_query(worker_id))

    async def expired_jobs(self, max_run_time: timedelta) -> list[JobRecord]:
        return await self._repo.range_query(
            expired_jobs_query(max_run_time, self._clock())
        )
