"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class JobStatus(StrEnum):
    """
    Job lifecycle states.

    State transitions:
    - PENDING -> WORKING (lock acquired)
    - WORKING -> COMPLETED (success)
    - WORKING -> FAILED_RESCHEDULED (failure, attempts left)
    - WORKING -> FAILED_ATTEMPTS_EXCEEDED (failure, retry budget spent)
    - FAILED_RESCHEDULED -> WORKING (lock acquired after run_at)
    - WORKING -> WORKING (stale lock reclaimed by another worker)
    """

    PENDING = "Pending"
    WORKING = "Working"
    COMPLETED = "Completed"
    FAILED_RESCHEDULED = "Failed - Rescheduled"
    FAILED_ATTEMPTS_EXCEEDED = "Failed - Attempts Exceeded"


# Statuses that are never reserved again
TERMINAL_STATUSES: tuple[JobStatus, ...] = (
    JobStatus.COMPLETED,
    JobStatus.FAILED_ATTEMPTS_EXCEEDED,
)

# Default values
DEFAULT_PRIORITY = 0
DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_READ_AHEAD = 5
DEFAULT_MAX_RUN_TIME_SECONDS = 4 * 60 * 60

# Store names
JOBS_TABLE = "delayed_jobs"
INDEX_BY_LOCK_OWNER_AND_RUN_AT = "ix_delayed_jobs_locked_by_run_at"
INDEX_BY_LOCK_TIME_AND_RUN_AT = "ix_delayed_jobs_locked_at_run_at"

# API constants
API_V1_PREFIX = "/v1"

# Metrics names
METRIC_JOBS_ENQUEUED = "jobs_enqueued_total"
METRIC_JOBS_RESERVED = "jobs_reserved_total"
METRIC_LOCK_CONFLICTS = "lock_conflicts_total"
METRIC_STALE_LOCKS_RECLAIMED = "stale_locks_reclaimed_total"
METRIC_JOBS_COMPLETED = "jobs_completed_total"
METRIC_JOB_DURATION = "job_duration_seconds"
METRIC_API_REQUESTS = "api_requests_total"
METRIC_API_LATENCY = "api_request_latency_seconds"

# Trace span names
SPAN_RESERVE_JOB = "reserve_job"
SPAN_EXECUTE_JOB = "execute_job"
