"""Table storage backends."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fundsheet.database.tables import (
    MISSING_COLUMN,
    ColumnMap,
    MemoryWorkbook,
    Table,
    TabularStore,
    resolve_columns,
)


if TYPE_CHECKING:
    from fundsheet.core.config import Settings


def open_store(settings: "Settings") -> TabularStore:
    """Open the table store selected by ``store_backend``."""
    if settings.store_backend == "sql":
        from fundsheet.database.sql import SqlWorkbook

        return SqlWorkbook(settings.database_url)
    if settings.store_backend == "memory":
        return MemoryWorkbook()
    from fundsheet.database.excel import ExcelWorkbook

    return ExcelWorkbook(settings.workbook_path)


__all__ = [
    "MISSING_COLUMN",
    "ColumnMap",
    "MemoryWorkbook",
    "Table",
    "TabularStore",
    "open_store",
    "resolve_columns",
]
