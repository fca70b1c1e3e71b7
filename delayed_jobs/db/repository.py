"""
Job repository for database operations.
Implements the versioned record store used by the reservation protocol.
"""

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import Select, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from delayed_jobs.clock import Clock, to_naive_utc, utcnow
from delayed_jobs.config import get_settings
from delayed_jobs.constants import DEFAULT_PRIORITY, JobStatus
from delayed_jobs.db.models import Job
from delayed_jobs.types.job import JobRecord, WriteOutcome, WriteResult

logger = logging.getLogger(__name__)

# Fields a conditional write may change
_WRITABLE_FIELDS = frozenset(
    {
        "priority",
        "attempts",
        "max_attempts",
        "payload",
        "queue",
        "tags",
        "run_at",
        "locked_at",
        "locked_by",
        "failed_at",
        "last_error",
        "completed_at",
        "run_time",
        "status",
    }
)


class JobRepository:
    """
    Repository for job database operations.

    The store offers no row locks or multi-row transactions to callers.
    Reads return detached ``JobRecord`` snapshots; writes go through
    ``conditional_write``, which only succeeds if the row still carries
    the version the snapshot was read with.
    """

    def __init__(self, session: AsyncSession, clock: Clock = utcnow):
        """
        Initialize the repository with a database session.

        Args:
            session: The async database session.
            clock: Time source for defaults and bookkeeping timestamps.
        """
        self._session = session
        self._clock = clock

    async def create_job(
        self,
        payload: dict[str, Any],
        priority: int = DEFAULT_PRIORITY,
        queue: str | None = None,
        run_at: datetime | None = None,
        max_attempts: int | None = None,
        tags: list[str] | None = None,
    ) -> JobRecord:
        """
        Enqueue a new job.

        Args:
            payload: The job payload.
            priority: Priority, lower runs first.
            queue: Optional queue name. Empty means the default queue.
            run_at: Earliest execution time. Defaults to now.
            max_attempts: Retry budget. Defaults to the configured value.
            tags: Optional labels for operators.

        Returns:
            The created job.
        """
        now = self._clock()
        job = Job(
            payload=payload,
            priority=priority,
            queue=queue or None,
            run_at=to_naive_utc(run_at) if run_at is not None else now,
            max_attempts=max_attempts or get_settings().default_max_attempts,
            tags=tags or [],
            attempts=0,
            run_time=0.0,
            status=JobStatus.PENDING,
            version=1,
            created_at=now,
            updated_at=now,
        )
        self._session.add(job)
        await self._session.flush()

        logger.info(
            "Enqueued job",
            extra={"job_id": str(job.id), "priority": priority, "queue": job.queue},
        )
        return JobRecord.model_validate(job)

    async def get_job(self, job_id: UUID) -> JobRecord | None:
        """
        Get a job by ID.

        Args:
            job_id: The job UUID.

        Returns:
            The job or None if not found.
        """
        stmt = (
            select(Job)
            .where(Job.id == job_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        job = result.scalar_one_or_none()
        return JobRecord.model_validate(job) if job is not None else None

    async def list_jobs(
        self,
        status: JobStatus | None = None,
        queue: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[JobRecord], int]:
        """
        List jobs with optional filtering.

        Args:
            status: Optional status filter.
            queue: Optional queue filter.
            limit: Maximum number of jobs to return.
            offset: Offset for pagination.

        Returns:
            Tuple of (jobs, total_count).
        """
        filters = []
        if status is not None:
            filters.append(Job.status == status)
        if queue is not None:
            filters.append(Job.queue == queue)

        count_stmt = select(func.count()).select_from(Job).where(*filters)
        count_result = await self._session.execute(count_stmt)
        total = count_result.scalar() or 0

        stmt = (
            select(Job)
            .where(*filters)
            .order_by(Job.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        jobs = await self.range_query(stmt)

        return jobs, total

    async def range_query(self, stmt: Select) -> list[JobRecord]:
        """
        Run an ordered query over jobs and return detached snapshots.

        Args:
            stmt: A ``select(Job)`` statement, normally one of the views.

        Returns:
            Jobs in the statement's order. Empty when nothing matches.
        """
        result = await self._session.execute(
            stmt.execution_options(populate_existing=True)
        )
        return [JobRecord.model_validate(job) for job in result.scalars().all()]

    async def conditional_write(self, record: JobRecord) -> WriteResult:
        """
        Persist a job snapshot if nobody changed the row since it was read.

        ``run_time`` is rounded to two decimals and the version token is
        bumped. A row that no longer carries ``record.version`` (or no
        longer exists) is reported as a version conflict.

        Args:
            record: The modified snapshot.

        Returns:
            WriteResult with the stored snapshot on success.
        """
        now = self._clock()
        values = record.model_dump(include=_WRITABLE_FIELDS)
        values["run_time"] = round(record.run_time, 2)
        values["version"] = record.version + 1
        values["updated_at"] = now

        stmt = (
            update(Job)
            .where(Job.id == record.id, Job.version == record.version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            await self._session.rollback()
            logger.warning(
                "Conditional write failed",
                extra={"job_id": str(record.id), "error": str(e)},
            )
            return WriteResult(WriteOutcome.STORE_ERROR, error=e)

        if result.rowcount == 0:
            logger.debug(
                "Version conflict on write",
                extra={"job_id": str(record.id), "version": record.version},
            )
            return WriteResult(WriteOutcome.VERSION_CONFLICT)

        stored = record.model_copy(
            update={
                "run_time": values["run_time"],
                "version": values["version"],
                "updated_at": now,
            }
        )
        return WriteResult(WriteOutcome.OK, record=stored)

    async def bulk_write(self, records: Iterable[JobRecord]) -> list[WriteResult]:
        """
        Conditionally write several snapshots.

        Each record is checked against its own version; one conflict does
        not prevent the other writes. A store error rolls the session back,
        so every record is then reported as failed.

        Returns:
            One WriteResult per record, in order.
        """
        records = list(records)
        results = []
        for record in records:
            result = await self.conditional_write(record)
            if result.outcome == WriteOutcome.STORE_ERROR:
                return [
                    WriteResult(WriteOutcome.STORE_ERROR, error=result.error)
                    for _ in records
                ]
            results.append(result)
        return results

    async def delete_all(self) -> int:
        """
        Delete every job.

        Returns:
            Number of deleted jobs.
        """
        result = await self._session.execute(delete(Job))
        count = result.rowcount
        logger.warning(f"Deleted {count} jobs")
        return count

    async def get_job_stats(self) -> dict[str, int]:
        """
        Get job statistics by status.

        Returns:
            Dictionary of status -> count.
        """
        stmt = select(Job.status, func.count()).group_by(Job.status)
        result = await self._session.execute(stmt)
        return {status.value: count for status, count in result.all()}

    async def get_queue_depth(self, queues: Sequence[str] = ()) -> int:
        """
        Get the number of jobs waiting to run.

        Args:
            queues: Optional queue names to restrict the count to.

        Returns:
            Number of pending or rescheduled jobs.
        """
        filters = [
            Job.status.in_([JobStatus.PENDING, JobStatus.FAILED_RESCHEDULED]),
        ]
        if queues:
            filters.append(Job.queue.in_(queues))

        stmt = select(func.count()).select_from(Job).where(*filters)
        result = await self._session.execute(stmt)
        return result.scalar() or 0
