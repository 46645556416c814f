"""Shared utilities for job definitions."""

from __future__ import annotations

import time
from typing import Any

from fundsheet.core.logging import get_logger


logger = get_logger("jobs.utils")


def log_job_success(job_name: str, message: str, **metrics: Any) -> None:
    """Log a structured job success message with metrics.

    Args:
        job_name: Name of the job (e.g., "per_share")
        message: Human-readable summary message
        **metrics: Key-value pairs of metrics to include in structured log

    Example:
        log_job_success("per_share", "Rebuilt 120 rows",
            tickers=12, rows=120, duration_ms=85)
    """
    log_data = {
        "job": job_name,
        "status": "success",
        **metrics,
    }
    metrics_str = " ".join(f"{k}={v}" for k, v in metrics.items())
    logger.info(f"{job_name} completed: {message} | {metrics_str}", extra={"extra_fields": log_data})


def job_timer() -> float:
    """Start a job timer (time.monotonic())."""
    return time.monotonic()


def elapsed_ms(start: float) -> int:
    """Elapsed milliseconds since ``start``."""
    return int((time.monotonic() - start) * 1000)
