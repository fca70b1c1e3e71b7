"""
Exceptions raised while running a job.
"""

from uuid import UUID


class JobError(Exception):
    """Base class for errors raised while running a job.

    Attributes:
        message: Explanation of the error
        job_id: The job being run (if available)
    """

    def __init__(self, message: str, job_id: UUID | None = None):
        self.message = message
        self.job_id = job_id

        full_message = message
        if job_id is not None:
            full_message = f"{message} [job={job_id}]"

        super().__init__(full_message)


class DeserializationError(JobError):
    """Raised when a job's payload cannot be turned back into runnable work.

    This can occur when:
      - The stored payload does not match the payload schema
      - No handler is registered for the payload's job type

    The stored data is unlikely to fix itself, so the job is failed with
    normal retry accounting until its attempts run out.
    """


class JobFailedError(JobError):
    """Raised when a handler reports failure through its result."""


class JobTimeoutError(JobError):
    """Raised when a job runs past the worker's max run time.

    The handler is cancelled, but work it handed to threads or other
    processes may still be running.
    """
