"""Job registry for mapping job names to functions."""

from __future__ import annotations

from collections.abc import Callable

from fundsheet.core.logging import get_logger


logger = get_logger("jobs.registry")

# Global job registry
_registry: dict[str, Callable] = {}


def register_job(name: str) -> Callable:
    """
    Decorator to register a job function.

    Usage:
        @register_job("per_share")
        def per_share_job(ctx: JobContext) -> str:
            ...
    """

    def decorator(func: Callable) -> Callable:
        _registry[name] = func
        logger.debug(f"Registered job: {name}")
        return func

    return decorator


def get_job(name: str) -> Callable | None:
    """Get a registered job function by name."""
    return _registry.get(name)


def list_job_names() -> list[str]:
    """List all registered job names."""
    return list(_registry.keys())
