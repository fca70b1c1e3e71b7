"""
API request and response type definitions.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from delayed_jobs.clock import to_naive_utc
from delayed_jobs.constants import DEFAULT_PRIORITY, JobStatus
from delayed_jobs.types.job import JobPayload, JobRecord


class EnqueueJobRequest(BaseModel):
    """Request body for enqueueing a new job."""

    payload: JobPayload = Field(..., description="Job type and data")
    priority: int = Field(default=DEFAULT_PRIORITY, description="Lower runs first")
    queue: str | None = Field(default=None, description="Queue name, empty for the default queue")
    run_at: datetime | None = Field(
        default=None, description="Earliest execution time (UTC), defaults to now"
    )
    max_attempts: int | None = Field(
        default=None, ge=1, description="Retry budget, defaults to the configured value"
    )
    tags: list[str] = Field(default_factory=list, description="Labels for operators")

    @field_validator("run_at")
    @classmethod
    def normalise_run_at(cls, value: datetime | None) -> datetime | None:
        """Store times as naive UTC; offsets are converted, not dropped."""
        return to_naive_utc(value) if value is not None else None


class JobResponse(BaseModel):
    """Full job details response."""

    id: UUID
    priority: int
    attempts: int
    max_attempts: int
    payload: dict[str, Any]
    queue: str | None
    tags: list[str]
    status: JobStatus
    run_at: datetime | None
    locked_at: datetime | None
    locked_by: str | None
    failed_at: datetime | None
    last_error: str | None
    completed_at: datetime | None
    run_time: float
    version: int
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_record(cls, job: JobRecord) -> "JobResponse":
        return cls.model_validate(job.model_dump())


class JobListResponse(BaseModel):
    """Paginated list of jobs."""

    jobs: list[JobResponse]
    total: int
    page: int
    page_size: int
    has_next: bool


class JobStatsResponse(BaseModel):
    """Job counts by status."""

    stats: dict[str, int]
    queue_depth: int


class ClearLocksResponse(BaseModel):
    """Response body after releasing a worker's locks."""

    worker_id: str
    cleared: int


class DeleteAllResponse(BaseModel):
    """Response body after deleting every job."""

    deleted: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: str
    timestamp: datetime
