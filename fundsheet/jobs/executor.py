"""Job execution with timing and error handling."""

from __future__ import annotations

import time

from fundsheet.core.exceptions import AppException, JobError
from fundsheet.core.logging import get_logger

from .context import JobContext
from .registry import get_job


logger = get_logger("jobs.executor")


def execute_job(name: str, ctx: JobContext) -> str:
    """
    Execute a job by name.

    Application errors (missing tables or columns, API failures) propagate
    unchanged; anything else is wrapped in JobError.

    Raises:
        JobError: Unknown job or unexpected failure
    """
    job_func = get_job(name)
    if job_func is None:
        raise JobError(message=f"Unknown job: {name}", error_code="UNKNOWN_JOB")

    start_time = time.monotonic()
    try:
        result = job_func(ctx)
    except AppException:
        duration = time.monotonic() - start_time
        logger.error(f"Job {name} failed after {duration:.2f}s")
        raise
    except Exception as e:
        duration = time.monotonic() - start_time
        logger.exception(f"Job {name} failed after {duration:.2f}s")
        raise JobError(
            message=f"Job execution failed: {e!s}",
            error_code="JOB_EXECUTION_FAILED",
            details={"job_name": name, "duration_seconds": duration},
        ) from e

    duration = time.monotonic() - start_time
    message = str(result) if result else "Completed"
    logger.info(f"Job {name} executed in {duration:.2f}s: {message}")
    return message
