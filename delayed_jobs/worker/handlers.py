"""
Job handlers registry and payload invocation.

Job handlers must be idempotent - a job may run more than once when a
worker dies or overruns its max run time and the lock is reclaimed.

Handlers are ``async def handler(context) -> JobResult`` coroutines or
plain functions; plain functions run in a thread.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from delayed_jobs.types.job import JobPayload, JobRecord, JobResult, JobContext
from delayed_jobs.worker.exceptions import DeserializationError

logger = logging.getLogger(__name__)

# Type alias for job handler functions
JobHandler = Callable[[JobContext], Awaitable[JobResult] | JobResult]

# Handler registry
_handlers: dict[str, JobHandler] = {}


def register_handler(job_type: str) -> Callable[[JobHandler], JobHandler]:
    """
    Decorator to register a job handler.

    Args:
        job_type: The job type this handler processes.

    Returns:
        Decorator function.

    Example:
        @register_handler("send_email")
        async def handle_send_email(context: JobContext) -> JobResult:
            ...
    """
    def decorator(handler: JobHandler) -> JobHandler:
        _handlers[job_type] = handler
        logger.debug(f"Registered handler for job type: {job_type}")
        return handler
    return decorator


def get_handler(job_type: str) -> JobHandler | None:
    """
    Get the handler for a job type.

    Args:
        job_type: The job type.

    Returns:
        The handler function or None if not found.
    """
    return _handlers.get(job_type)


def list_handlers() -> list[str]:
    """List all registered job types."""
    return list(_handlers.keys())


def load_payload(job: JobRecord) -> tuple[JobPayload, JobHandler]:
    """
    Rebuild a job's payload and find its handler.

    Args:
        job: The reserved job.

    Returns:
        Tuple of (payload, handler).

    Raises:
        DeserializationError: If the payload is malformed or its job type
            has no handler.
    """
    try:
        payload = JobPayload.model_validate(job.payload)
    except ValidationError as e:
        raise DeserializationError(f"Invalid job payload: {e}", job_id=job.id) from e

    handler = get_handler(payload.job_type)
    if handler is None:
        raise DeserializationError(
            f"No handler registered for job type: {payload.job_type}",
            job_id=job.id,
        )
    return payload, handler


async def invoke(handler: JobHandler, context: JobContext) -> JobResult:
    """
    Call a handler and normalise its return value.

    A handler returning None counts as success.

    Args:
        handler: The handler to call.
        context: The job context.

    Returns:
        JobResult from the handler.
    """
    if inspect.iscoroutinefunction(handler):
        result: Any = await handler(context)
    else:
        result = await asyncio.to_thread(handler, context)

    if result is None:
        return JobResult(success=True)
    return result


# ============================================================================
# Built-in job handlers
# ============================================================================


@register_handler("echo")
async def handle_echo(context: JobContext) -> JobResult:
    """
    Echo handler for testing.

    Simply returns the input data as output.
    """
    logger.info(
        "Echo job executing",
        extra={"job_id": str(context.job_id), "attempt": context.attempt}
    )

    return JobResult(
        success=True,
        output={"echo": context.data},
    )


@register_handler("sleep")
async def handle_sleep(context: JobContext) -> JobResult:
    """
    Sleep handler for testing deadlines.

    Payload data should contain:
    - duration_seconds: How long to sleep
    """
    duration = context.data.get("duration_seconds", 1)

    logger.info(
        "Sleep job starting",
        extra={"job_id": str(context.job_id), "duration": duration}
    )

    await asyncio.sleep(duration)

    return JobResult(
        success=True,
        output={"slept_for": duration},
    )


@register_handler("failing_job")
async def handle_failing_job(context: JobContext) -> JobResult:
    """
    Handler that always fails - for testing retry logic.
    """
    logger.info(
        "Failing job executing (will fail)",
        extra={"job_id": str(context.job_id), "attempt": context.attempt}
    )

    return JobResult(
        success=False,
        error=f"Intentional failure on attempt {context.attempt}",
    )
