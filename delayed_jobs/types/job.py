"""
Job-related type definitions for internal use.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from delayed_jobs.clock import to_naive_utc
from delayed_jobs.constants import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_PRIORITY,
    TERMINAL_STATUSES,
    JobStatus,
)


class JobRecord(BaseModel):
    """
    Detached snapshot of one job row.

    The reservation engine and the worker mutate a snapshot in memory and
    persist it with a write conditioned on ``version``, the value read
    together with the snapshot.

    Lock fields are only changed through ``lock`` and ``unlock`` so that
    ``locked_at`` and ``locked_by`` are always set or cleared together.
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    priority: int = DEFAULT_PRIORITY
    attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    payload: dict[str, Any] = Field(default_factory=dict)
    queue: str | None = None
    tags: list[str] = Field(default_factory=list)
    run_at: datetime | None = None
    locked_at: datetime | None = None
    locked_by: str | None = None
    failed_at: datetime | None = None
    last_error: str | None = None
    completed_at: datetime | None = None
    run_time: float = 0.0
    status: JobStatus = JobStatus.PENDING
    version: int = 1
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_locked(self) -> bool:
        return self.locked_by is not None or self.locked_at is not None

    @property
    def is_completed(self) -> bool:
        return self.status == JobStatus.COMPLETED

    @property
    def in_progress(self) -> bool:
        return self.status == JobStatus.WORKING

    @property
    def is_failed(self) -> bool:
        return self.failed_at is not None or self.last_error is not None

    @property
    def is_runnable(self) -> bool:
        """Check if the job can still be reserved."""
        return self.status not in TERMINAL_STATUSES and self.attempts < self.max_attempts

    def locked_by_me(self, worker_id: str) -> bool:
        return self.locked_by is not None and self.locked_by == worker_id

    def locked_by_other(self, worker_id: str) -> bool:
        return self.locked_by is not None and self.locked_by != worker_id

    def lock_expired(self, max_run_time: timedelta, now: datetime) -> bool:
        """
        Check if the lock is older than ``max_run_time``.

        An unlocked job counts as expired.
        """
        if self.locked_at is None:
            return True
        return self.locked_at < now - max_run_time

    def lock(self, worker_id: str, now: datetime) -> None:
        self.locked_at = now
        self.locked_by = worker_id

    def unlock(self) -> None:
        self.locked_at = None
        self.locked_by = None

    def clear_failed(self) -> None:
        self.failed_at = None
        self.last_error = None

    def add_run_time(self, now: datetime) -> None:
        """Add the time elapsed since the lock was taken to ``run_time``."""
        if self.locked_at is None:
            return
        elapsed = (now - self.locked_at).total_seconds()
        self.run_time += max(0.0, elapsed)

    def __repr__(self) -> str:
        return (
            f"JobRecord(id={self.id}, status={self.status.value!r}, "
            f"attempts={self.attempts}/{self.max_attempts}, locked_by={self.locked_by!r})"
        )


class JobPayload(BaseModel):
    """
    Job payload structure.
    Contains the actual work to be executed by workers.
    """

    model_config = ConfigDict(extra="forbid")

    job_type: str
    data: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] | None = None


class JobResult(BaseModel):
    """
    Result of job execution.
    Returned by job handlers after processing.

    A failed result may carry ``retry_at`` to ask for an explicit
    reschedule time instead of the backoff curve.
    """

    success: bool
    output: dict[str, Any] | None = None
    error: str | None = None
    retry_at: datetime | None = None

    @field_validator("retry_at")
    @classmethod
    def normalise_retry_at(cls, value: datetime | None) -> datetime | None:
        return to_naive_utc(value) if value is not None else None


@dataclass
class JobContext:
    """
    Context passed to job handlers during execution.
    Contains job metadata and utilities for the handler.
    """

    job_id: UUID
    attempt: int
    max_attempts: int
    payload: JobPayload
    queue: str | None
    locked_by: str
    locked_at: datetime

    @property
    def data(self) -> dict[str, Any]:
        return self.payload.data

    @property
    def is_last_attempt(self) -> bool:
        """Check if this is the last retry attempt."""
        return self.attempt >= self.max_attempts

    @property
    def remaining_attempts(self) -> int:
        """Get remaining retry attempts."""
        return max(0, self.max_attempts - self.attempt)


class WriteOutcome(StrEnum):
    """Outcome of a version-conditioned write."""

    OK = "ok"
    VERSION_CONFLICT = "version_conflict"
    STORE_ERROR = "store_error"


@dataclass(frozen=True)
class WriteResult:
    """
    Result of a conditional write.

    On ``OK`` the record carries the new version token. Conflicts and
    store errors are ordinary results so callers can branch on them.
    """

    outcome: WriteOutcome
    record: JobRecord | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.outcome == WriteOutcome.OK

    @property
    def conflict(self) -> bool:
        return self.outcome == WriteOutcome.VERSION_CONFLICT
