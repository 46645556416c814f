"""Tabular store abstraction.

Every pipeline stage talks to the workbook through the TabularStore protocol:
read a whole table (header + rows), or replace a whole table atomically.
Backends live in database.excel, database.sql and MemoryWorkbook below.

Usage:
    from fundsheet.database.tables import resolve_columns

    table = store.read_table("Per_Share")
    cols = resolve_columns(table.header, {"Ticker": ["Ticker", "Symbol"]})
    for row in table.rows:
        ticker = cols.value(row, "Ticker")
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Collection, Mapping, Protocol, Sequence, runtime_checkable

from fundsheet.core.data_helpers import is_blank
from fundsheet.core.exceptions import MissingColumnError, MissingStoreError


# Index returned for an unresolved column in lenient mode
MISSING_COLUMN = -1


@dataclass
class Table:
    """A rectangular table: header plus rows of the same width."""

    header: list[str] = field(default_factory=list)
    rows: list[list[Any]] = field(default_factory=list)

    @property
    def width(self) -> int:
        return len(self.header)

    def __len__(self) -> int:
        return len(self.rows)

    def copy(self) -> "Table":
        return Table(list(self.header), [list(r) for r in self.rows])


@runtime_checkable
class TabularStore(Protocol):
    """Read-all / replace-all access to named tables."""

    def table_names(self) -> list[str]: ...

    def has_table(self, name: str) -> bool: ...

    def read_table(self, name: str) -> Table:
        """Return the table, raising MissingStoreError when absent."""
        ...

    def write_table(self, name: str, header: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
        """Atomically replace (or create) the table."""
        ...


def normalize_table(header: Sequence[Any], rows: Sequence[Sequence[Any]]) -> Table:
    """Trim the header, square up rows to its width, drop trailing blank rows.

    Blank rows in the middle of a table are kept; they hold a position.
    """
    names = ["" if h is None else str(h).strip() for h in header]
    while names and not names[-1]:
        names.pop()
    width = len(names)

    squared: list[list[Any]] = []
    for row in rows:
        cells = list(row[:width])
        if len(cells) < width:
            cells.extend([None] * (width - len(cells)))
        squared.append(cells)

    while squared and all(is_blank(c) for c in squared[-1]):
        squared.pop()

    return Table(names, squared)


def read_or_empty(store: TabularStore, name: str) -> Table:
    """Read a table, treating a missing one as empty."""
    if not store.has_table(name):
        return Table()
    return store.read_table(name)


def require_table(store: TabularStore, name: str) -> Table:
    """Read a table that must already exist."""
    if not store.has_table(name):
        raise MissingStoreError(name)
    return store.read_table(name)


def ensure_table(store: TabularStore, name: str, header: Sequence[str]) -> bool:
    """Create an empty table with this header if none exists. Returns True if created."""
    if store.has_table(name):
        return False
    store.write_table(name, list(header), [])
    return True


@dataclass(frozen=True)
class ColumnMap:
    """Logical column name -> header index, resolved once per table read."""

    indices: Mapping[str, int]
    table: str | None = None

    def __getitem__(self, name: str) -> int:
        return self.indices[name]

    def has(self, name: str) -> bool:
        return self.indices.get(name, MISSING_COLUMN) != MISSING_COLUMN

    def value(self, row: Sequence[Any], name: str, default: Any = None) -> Any:
        """Cell for a logical column, or default when unresolved or out of range."""
        idx = self.indices.get(name, MISSING_COLUMN)
        if idx == MISSING_COLUMN or idx >= len(row):
            return default
        return row[idx]

    def missing(self) -> list[str]:
        return [name for name, idx in self.indices.items() if idx == MISSING_COLUMN]


def resolve_columns(
    header: Sequence[Any],
    aliases: Mapping[str, Sequence[str]],
    *,
    strict: bool = True,
    optional: Collection[str] = (),
    table: str | None = None,
) -> ColumnMap:
    """
    Map logical column names to header positions.

    Aliases are tried in order; matching ignores case and surrounding
    whitespace. In strict mode an unresolved column raises MissingColumnError,
    except for names listed in ``optional``. In lenient mode every unresolved
    column maps to MISSING_COLUMN.

    Args:
        header: Header row of the table
        aliases: Logical name -> accepted header names, in priority order
        strict: Raise on unresolved columns
        optional: Logical names tolerated as missing even when strict
        table: Table name for error messages

    Raises:
        MissingColumnError: strict mode and a required column is absent
    """
    positions: dict[str, int] = {}
    for i, h in enumerate(header):
        key = "" if h is None else str(h).strip().lower()
        if key and key not in positions:
            positions[key] = i

    indices: dict[str, int] = {}
    for logical, names in aliases.items():
        idx = MISSING_COLUMN
        for name in names:
            hit = positions.get(name.strip().lower())
            if hit is not None:
                idx = hit
                break
        if idx == MISSING_COLUMN and strict and logical not in optional:
            raise MissingColumnError(logical, names, table=table)
        indices[logical] = idx

    return ColumnMap(indices, table=table)


class MemoryWorkbook:
    """In-memory TabularStore, used for tests and dry runs."""

    def __init__(self, tables: Mapping[str, Table] | None = None):
        self._tables: dict[str, Table] = {}
        for name, table in (tables or {}).items():
            self.write_table(name, table.header, table.rows)

    def table_names(self) -> list[str]:
        return list(self._tables)

    def has_table(self, name: str) -> bool:
        return name in self._tables

    def read_table(self, name: str) -> Table:
        if name not in self._tables:
            raise MissingStoreError(name)
        return self._tables[name].copy()

    def write_table(self, name: str, header: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
        # Build the complete replacement before swapping it in
        table = normalize_table(header, copy.deepcopy([list(r) for r in rows]))
        self._tables[name] = table
