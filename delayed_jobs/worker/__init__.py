"""
Worker module.
Contains job reservation, execution and retry handling.
"""

from delayed_jobs.worker.main import Worker, run
from delayed_jobs.worker.reservation import ReservationEngine
from delayed_jobs.worker.retry import RetryPolicy

__all__ = ["Worker", "ReservationEngine", "RetryPolicy", "run"]
