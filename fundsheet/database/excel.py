"""Excel workbook backend (openpyxl).

One worksheet per table, header in row 1. Workbooks are always loaded with
formulas intact: a formula cell reads back as its formula text ("=B2*2") and
is written back as a formula, so user formula columns and untouched sheets
survive every write. A write updates the target sheet's cells in place
(keeping column widths, styles and data validation), saves the whole
workbook to a temporary file next to the original, then swaps it in with
os.replace, so a crash mid-save never leaves a half-written workbook behind.
"""

from __future__ import annotations

import os
import tempfile
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Sequence

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font

from fundsheet.core.exceptions import MissingStoreError
from fundsheet.core.logging import get_logger
from fundsheet.database.tables import Table, normalize_table


logger = get_logger("database.excel")

_HEADER_FONT = Font(bold=True)


def _to_cell(value: Any) -> Any:
    """Convert a Python value into something openpyxl can store."""
    if isinstance(value, datetime) and value.tzinfo is not None:
        # Excel has no timezone support
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    if isinstance(value, Decimal):
        return float(value)
    return value


class ExcelWorkbook:
    """TabularStore backed by an .xlsx file."""

    def __init__(self, path: str | os.PathLike[str]):
        self.path = Path(path)

    def _load(self, read_only: bool = False):
        # data_only=True would replace every formula with its cached value
        return load_workbook(self.path, read_only=read_only, data_only=False)

    def table_names(self) -> list[str]:
        if not self.path.exists():
            return []
        wb = self._load(read_only=True)
        try:
            return list(wb.sheetnames)
        finally:
            wb.close()

    def has_table(self, name: str) -> bool:
        return name in self.table_names()

    def read_table(self, name: str) -> Table:
        if not self.path.exists():
            raise MissingStoreError(name)
        wb = self._load(read_only=True)
        try:
            if name not in wb.sheetnames:
                raise MissingStoreError(name)
            values = [list(r) for r in wb[name].iter_rows(values_only=True)]
        finally:
            wb.close()
        if not values:
            return Table()
        return normalize_table(values[0], values[1:])

    def write_table(self, name: str, header: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
        table = normalize_table(header, rows)

        if self.path.exists():
            wb = self._load()
        else:
            wb = Workbook()
            wb.remove(wb.active)

        ws = wb[name] if name in wb.sheetnames else wb.create_sheet(title=name)

        for col, title in enumerate(table.header, start=1):
            ws.cell(row=1, column=col, value=title).font = _HEADER_FONT
        for r, row in enumerate(table.rows, start=2):
            for c, value in enumerate(row, start=1):
                ws.cell(row=r, column=c, value=_to_cell(value))

        # Drop whatever the previous contents had beyond the new extent
        last_row = len(table.rows) + 1
        if ws.max_row > last_row:
            ws.delete_rows(last_row + 1, ws.max_row - last_row)
        width = len(table.header)
        if ws.max_column > width:
            ws.delete_cols(width + 1, ws.max_column - width)
        ws.freeze_panes = "A2"

        self._atomic_save(wb)
        logger.debug(f"Wrote {len(table.rows)} rows to sheet '{name}' in {self.path.name}")

    def _atomic_save(self, wb: Workbook) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.stem}-", suffix=".xlsx", dir=self.path.parent
        )
        os.close(fd)
        try:
            wb.save(tmp_name)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
