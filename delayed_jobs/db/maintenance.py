"""
Administrative operations outside the steady-state protocol.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from delayed_jobs.clock import Clock, utcnow
from delayed_jobs.db.repository import JobRepository
from delayed_jobs.db.views import IndexViews

logger = logging.getLogger(__name__)


async def clear_locks(session: AsyncSession, worker_id: str, clock: Clock = utcnow) -> int:
    """
    Release every lock held by a worker.

    Called when a worker exits so its jobs become ready again without
    waiting for the locks to go stale. Jobs that changed concurrently are
    skipped; they are no longer this worker's to release.

    Args:
        session: The async database session.
        worker_id: The worker whose locks are released.
        clock: Time source.

    Returns:
        Number of jobs unlocked.
    """
    jobs = await IndexViews(session, clock=clock).my_jobs(worker_id)
    for job in jobs:
        job.unlock()

    results = await JobRepository(session, clock=clock).bulk_write(jobs)
    cleared = sum(1 for result in results if result.ok)

    logger.info(
        "Cleared worker locks",
        extra={"worker_id": worker_id, "cleared": cleared, "found": len(jobs)},
    )
    return cleared


async def delete_all(session: AsyncSession) -> int:
    """
    Delete every job record.

    Returns:
        Number of jobs deleted.
    """
    return await JobRepository(session).delete_all()
