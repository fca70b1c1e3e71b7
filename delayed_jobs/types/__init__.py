"""
Type definitions for the job queue.
Contains input/output type definitions for all functions, grouped by module.
"""

from delayed_jobs.types.api import (
    ClearLocksResponse,
    DeleteAllResponse,
    EnqueueJobRequest,
    HealthResponse,
    JobListResponse,
    JobResponse,
    JobStatsResponse,
)
from delayed_jobs.types.job import (
    JobContext,
    JobPayload,
    JobRecord,
    JobResult,
    WriteOutcome,
    WriteResult,
)

__all__ = [
    # API types
    "EnqueueJobRequest",
    "JobResponse",
    "JobListResponse",
    "JobStatsResponse",
    "ClearLocksResponse",
    "DeleteAllResponse",
    "HealthResponse",
    # Job types
    "JobRecord",
    "JobPayload",
    "JobResult",
    "JobContext",
    "WriteOutcome",
    "WriteResult",
]
