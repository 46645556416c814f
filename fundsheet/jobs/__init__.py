"""Batch jobs.

Importing this package registers every job with the registry.
"""

from fundsheet.jobs import definitions, pipelines  # noqa: F401
from fundsheet.jobs.context import JobContext
from fundsheet.jobs.executor import execute_job
from fundsheet.jobs.registry import get_job, list_job_names


__all__ = ["JobContext", "execute_job", "get_job", "list_job_names"]
