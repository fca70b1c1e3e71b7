"""
Database module.
Contains database connection, models, views and repository implementations.
"""

from delayed_jobs.db.connection import (
    AsyncSessionLocal,
    close_db,
    create_engine_for_url,
    create_session_factory,
    create_tables,
    get_async_session,
    get_engine,
    get_session_context,
    get_session_factory,
    init_db,
)
from delayed_jobs.db.models import Base, Job

__all__ = [
    "get_async_session",
    "get_session_context",
    "get_session_factory",
    "get_engine",
    "create_engine_for_url",
    "create_session_factory",
    "create_tables",
    "init_db",
    "close_db",
    "AsyncSessionLocal",
    "Job",
    "Base",
]
