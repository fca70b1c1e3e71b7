"""
Delayed Jobs

A persistent job queue. Workers share nothing but a versioned record store:
they claim jobs with version-conditioned writes, renew their own locks,
reclaim stale ones and record every outcome on the job itself.
"""

__version__ = "1.0.0"
