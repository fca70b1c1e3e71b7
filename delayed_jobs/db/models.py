"""
SQLAlchemy database models.
Defines the delayed jobs table and the two sorted views over it.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    Float,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    and_,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from delayed_jobs.constants import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_PRIORITY,
    INDEX_BY_LOCK_OWNER_AND_RUN_AT,
    INDEX_BY_LOCK_TIME_AND_RUN_AT,
    JOBS_TABLE,
    TERMINAL_STATUSES,
    JobStatus,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Job(Base):
    """
    Job model representing a unit of deferred work.

    This is the authoritative source of truth for job state. Rows are
    never updated in place by the ORM: every write is a single UPDATE
    conditioned on ``version``, which is bumped on each write.

    Key constraints:
    - locked_at and locked_by are set or cleared together
    - a Completed job has no lock and no run_at
    - run_time only grows
    """

    __tablename__ = JOBS_TABLE

    # Primary key
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )

    # Scheduling
    priority: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=DEFAULT_PRIORITY,
    )
    queue: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )
    run_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )

    # Retry tracking
    attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    max_attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=DEFAULT_MAX_ATTEMPTS,
    )

    # Job payload
    payload: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )
    tags: Mapped[list] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    # Lock management
    locked_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )
    locked_by: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    # Outcome tracking
    status: Mapped[JobStatus] = mapped_column(
        Enum(
            JobStatus,
            name="delayed_job_status",
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=JobStatus.PENDING,
        index=True,
    )
    failed_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )
    last_error: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )
    run_time: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
    )

    # Optimistic concurrency token
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"Job(id={self.id}, status={self.status}, "
            f"attempts={self.attempts}/{self.max_attempts}, locked_by={self.locked_by})"
        )


# Rows that may still be reserved. Both views are restricted to them.
RUNNABLE = and_(
    Job.status.notin_(TERMINAL_STATUSES),
    Job.attempts < Job.max_attempts,
)

# Sorted by (locked_by, run_at): ready jobs and jobs held by one worker
by_lock_owner_and_run_at = Index(
    INDEX_BY_LOCK_OWNER_AND_RUN_AT,
    Job.locked_by,
    Job.run_at,
    postgresql_where=RUNNABLE,
    sqlite_where=RUNNABLE,
)

# Sorted by (locked_at, run_at): locks older than the max run time
by_lock_time_and_run_at = Index(
    INDEX_BY_LOCK_TIME_AND_RUN_AT,
    Job.locked_at,
    Job.run_at,
    postgresql_where=RUNNABLE,
    sqlite_where=RUNNABLE,
)
