"""
Job management routes.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from delayed_jobs.constants import API_V1_PREFIX, JobStatus
from delayed_jobs.db import get_async_session
from delayed_jobs.db.maintenance import clear_locks, delete_all
from delayed_jobs.db.repository import JobRepository
from delayed_jobs.observability.metrics import get_metrics
from delayed_jobs.types.api import (
    ClearLocksResponse,
    DeleteAllResponse,
    EnqueueJobRequest,
    JobListResponse,
    JobResponse,
    JobStatsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{API_V1_PREFIX}/jobs", tags=["Jobs"])
workers_router = APIRouter(prefix=f"{API_V1_PREFIX}/workers", tags=["Workers"])


@router.post(
    "",
    response_model=JobResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enqueue a job",
    description="Store a new job. Workers pick it up once run_at has passed.",
)
async def enqueue_job(
    request: EnqueueJobRequest,
    session: AsyncSession = Depends(get_async_session),
) -> JobResponse:
    """
    Enqueue a new job.

    Args:
        request: Job creation request.
        session: Database session.

    Returns:
        JobResponse with the stored job.
    """
    repo = JobRepository(session)
    job = await repo.create_job(
        payload=request.payload.model_dump(exclude_none=True),
        priority=request.priority,
        queue=request.queue,
        run_at=request.run_at,
        max_attempts=request.max_attempts,
        tags=request.tags,
    )
    await session.commit()

    get_metrics().record_job_enqueued(job.queue)

    return JobResponse.from_record(job)


@router.get(
    "/stats/summary",
    response_model=JobStatsResponse,
    summary="Get job statistics",
    description="Get job counts by status and the number of jobs waiting to run.",
)
async def get_job_stats(
    session: AsyncSession = Depends(get_async_session),
) -> JobStatsResponse:
    """
    Get job statistics.

    Args:
        session: Database session.

    Returns:
        JobStatsResponse with status counts and queue depth.
    """
    repo = JobRepository(session)
    return JobStatsResponse(
        stats=await repo.get_job_stats(),
        queue_depth=await repo.get_queue_depth(),
    )


@router.get(
    "/{job_id}",
    response_model=JobResponse,
    summary="Get job details",
    description="Get detailed information about a specific job.",
)
async def get_job(
    job_id: UUID,
    session: AsyncSession = Depends(get_async_session),
) -> JobResponse:
    """
    Get job details by ID.

    Raises:
        HTTPException: If job not found.
    """
    job = await JobRepository(session).get_job(job_id)

    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found",
        )

    return JobResponse.from_record(job)


@router.get(
    "",
    response_model=JobListResponse,
    summary="List jobs",
    description="List jobs with optional status and queue filters.",
)
async def list_jobs(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    status: JobStatus | None = Query(default=None),
    queue: str | None = Query(default=None),
    session: AsyncSession = Depends(get_async_session),
) -> JobListResponse:
    """
    List jobs, newest first.

    Args:
        page: Page number (1-indexed).
        page_size: Number of items per page.
        status: Optional status filter.
        queue: Optional queue filter.
        session: Database session.

    Returns:
        JobListResponse with paginated jobs.
    """
    repo = JobRepository(session)
    offset = (page - 1) * page_size

    jobs, total = await repo.list_jobs(
        status=status,
        queue=queue,
        limit=page_size,
        offset=offset,
    )

    return JobListResponse(
        jobs=[JobResponse.from_record(job) for job in jobs],
        total=total,
        page=page,
        page_size=page_size,
        has_next=(page * page_size) < total,
    )


@router.delete(
    "",
    response_model=DeleteAllResponse,
    summary="Delete all jobs",
    description="Delete every job. Requires confirm=true.",
)
async def delete_all_jobs(
    confirm: bool = Query(default=False),
    session: AsyncSession = Depends(get_async_session),
) -> DeleteAllResponse:
    """
    Delete every job.

    Raises:
        HTTPException: If the request was not confirmed.
    """
    if not confirm:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Deleting all jobs requires confirm=true",
        )

    deleted = await delete_all(session)
    await session.commit()

    return DeleteAllResponse(deleted=deleted)


@workers_router.post(
    "/{worker_id}/clear-locks",
    response_model=ClearLocksResponse,
    summary="Release a worker's locks",
    description="Unlock every job held by a worker, e.g. one that died without shutting down.",
)
async def clear_worker_locks(
    worker_id: str,
    session: AsyncSession = Depends(get_async_session),
) -> ClearLocksResponse:
    """
    Release every lock held by a worker.

    Args:
        worker_id: The worker identity.
        session: Database session.

    Returns:
        ClearLocksResponse with the number of unlocked jobs.
    """
    cleared = await clear_locks(session, worker_id)
    await session.commit()

    logger.info(
        "Cleared worker locks via API",
        extra={"worker_id": worker_id, "cleared": cleared},
    )
    return ClearLocksResponse(worker_id=worker_id, cleared=cleared)
