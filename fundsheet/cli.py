"""Command line entry point.

    fundsheet list
    fundsheet run setup
    fundsheet --mock-dir mock_data/fundamentals run seed_mock_data
    fundsheet --mock-dir mock_data/fundamentals run pipeline
"""

from __future__ import annotations

import argparse
import sys
from typing import Any, Sequence

from pydantic import ValidationError

from fundsheet.core.config import Settings, get_settings
from fundsheet.core.exceptions import AppException
from fundsheet.core.logging import get_logger, new_run_id, setup_logging
from fundsheet.jobs import JobContext, execute_job, list_job_names


logger = get_logger("cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fundsheet",
        description="Fundamentals workbook pipeline: extract, per-share, CAGR, screener.",
    )
    parser.add_argument("--workbook", help="Workbook file (excel backend)")
    parser.add_argument("--backend", choices=["excel", "sql", "memory"], help="Table store backend")
    parser.add_argument("--database-url", help="SQLAlchemy URL (sql backend)")
    parser.add_argument("--mock-dir", help="Read fundamentals from this directory instead of EODHD")
    parser.add_argument("--mock-prices-dir", help="Read price bars from this directory")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")

    sub = parser.add_subparsers(dest="command", required=True)
    run = sub.add_parser("run", help="Run a job")
    run.add_argument("job", help="Job name (see 'fundsheet list')")
    sub.add_parser("list", help="List available jobs")
    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    overrides: dict[str, Any] = {}
    if args.workbook:
        overrides["workbook_path"] = args.workbook
    if args.backend:
        overrides["store_backend"] = args.backend
    if args.database_url:
        overrides["database_url"] = args.database_url
    if args.mock_dir:
        overrides["data_mode"] = "mock"
        overrides["mock_fundamentals_dir"] = args.mock_dir
    if args.mock_prices_dir:
        overrides["mock_prices_dir"] = args.mock_prices_dir
    if args.log_level:
        overrides["log_level"] = args.log_level
    if not overrides:
        return get_settings()
    return Settings(**overrides)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "list":
        for name in list_job_names():
            print(name)
        return 0

    try:
        settings = settings_from_args(args)
    except ValidationError as exc:
        print(f"Invalid settings: {exc}", file=sys.stderr)
        return 2

    setup_logging(settings)
    new_run_id()

    try:
        ctx = JobContext.from_settings(settings)
        message = execute_job(args.job, ctx)
    except AppException as exc:
        logger.error(f"{exc.error_code}: {exc.message}")
        return 1

    print(message)
    return 0


if __name__ == "__main__":
    sys.exit(main())
