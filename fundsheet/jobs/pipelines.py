"""Pipeline orchestrator job.

Runs the batch jobs in sequence. Each step consumes the previous step's
output table, so the first failing step stops the pipeline.
"""

from __future__ import annotations

import time

from fundsheet.core.exceptions import JobError
from fundsheet.core.logging import get_logger

from .context import JobContext
from .executor import execute_job
from .registry import register_job
from .utils import log_job_success


logger = get_logger("jobs.pipelines")


# Pipeline steps in execution order
PIPELINE_STEPS = [
    "extract_annual",  # 1. Raw fundamentals - MUST be first
    "per_share",       # 2. Per-share ratios (needs raw annual)
    "cagr",            # 3. Growth profiles (needs Per_Share)
    "prices",          # 4. Prices for tickers with metrics
    "screener",        # 5. Ranked candidates - MUST be last
]


def run_pipeline(ctx: JobContext, steps: list[str], name: str = "PIPELINE") -> list[dict]:
    """Execute jobs in order, returning per-step results.

    Raises:
        JobError: a step failed; later steps are not run
    """
    logger.info("=" * 60)
    logger.info(f"{name} - Starting")
    logger.info("=" * 60)

    results: list[dict] = []
    total_start = time.monotonic()

    for step_num, job_name in enumerate(steps, 1):
        step_start = time.monotonic()
        logger.info(f"[{name}] Step {step_num}/{len(steps)}: {job_name}")
        try:
            message = execute_job(job_name, ctx)
        except Exception as e:
            duration_s = time.monotonic() - step_start
            logger.error(f"[{name}] {job_name} FAILED after {duration_s:.1f}s: {str(e)[:200]}")
            raise JobError(
                message=f"{name} stopped at step {step_num} ({job_name}): {e}",
                details={"step": job_name, "completed": [r["job"] for r in results]},
            ) from e

        duration_s = time.monotonic() - step_start
        results.append({
            "step": step_num,
            "job": job_name,
            "duration_s": round(duration_s, 1),
            "message": message[:100],
        })
        logger.info(f"[{name}] {job_name} completed in {duration_s:.1f}s")

    total = time.monotonic() - total_start
    logger.info("=" * 60)
    logger.info(f"{name} - Completed in {total:.1f}s")
    for r in results:
        logger.info(f"  OK {r['job']}: {r['duration_s']}s - {r['message'][:50]}")
    logger.info("=" * 60)
    return results


@register_job("pipeline")
def pipeline_job(ctx: JobContext) -> str:
    """
    Full refresh: extract_annual -> per_share -> cagr -> prices -> screener.
    """
    start = time.monotonic()
    results = run_pipeline(ctx, PIPELINE_STEPS)
    summary = f"{len(results)}/{len(PIPELINE_STEPS)} steps OK"
    log_job_success(
        "pipeline",
        summary,
        steps_total=len(PIPELINE_STEPS),
        duration_ms=int((time.monotonic() - start) * 1000),
        step_durations={r["job"]: r["duration_s"] for r in results},
    )
    return summary
