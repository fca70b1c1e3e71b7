"""
API routes module.
"""

from delayed_jobs.api.routes.health import router as health_router
from delayed_jobs.api.routes.jobs import router as jobs_router
from delayed_jobs.api.routes.jobs import workers_router

__all__ = ["jobs_router", "workers_router", "health_router"]
