"""Composite-key upsert engine.

Merges a batch of rows into an existing table without discarding anything the
batch does not mention:

* rows whose key already exists are updated in place, and only in the columns
  the batch carries;
* new keys are appended in arrival order, blank outside the batch columns;
* a key appended earlier in the same batch is updated, never duplicated;
* rows and columns the batch does not touch are left as they were.

Rows are held in a TableArena: each row gets a logical row id when it is
loaded or appended, the CompositeKeyIndex maps keys to those ids, and ids are
only turned into storage positions when the table is written back.

Keys are tuples of normalized cell text, so no separator character can ever
make two different keys collide.

Usage:
    result = upsert_records(store, "Calculated_Metrics", ["Ticker"], records)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Sequence

from fundsheet.core.exceptions import MissingColumnError, StaleKeyIndexError
from fundsheet.core.logging import get_logger
from fundsheet.database.tables import Table, TabularStore, read_or_empty


logger = get_logger("services.upsert")

KeyTuple = tuple[str, ...]


def normalize_key_part(value: Any) -> str:
    """Canonical text for one key cell.

    None and whitespace become "", dates become ISO strings (a datetime at
    midnight is treated as a date), integral floats lose their ".0" so a year
    read back as 2020.0 still matches 2020.
    """
    if value is None:
        return ""
    if isinstance(value, datetime):
        if (value.hour, value.minute, value.second, value.microsecond) == (0, 0, 0, 0):
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def make_key(values: Iterable[Any]) -> KeyTuple:
    return tuple(normalize_key_part(v) for v in values)


def is_blank_key(key: KeyTuple) -> bool:
    return all(part == "" for part in key)


class TableArena:
    """Rows of one table addressed by stable logical ids.

    Ids are handed out in load order and never reused; storage order is the
    order list, translated to positions only in to_rows().
    """

    def __init__(self, header: Sequence[str] = (), rows: Iterable[Sequence[Any]] = ()):
        self.header: list[str] = list(header)
        self._rows: dict[int, list[Any]] = {}
        self._order: list[int] = []
        self._next_id = 0
        for row in rows:
            self.append(row)

    @classmethod
    def from_table(cls, table: Table) -> "TableArena":
        return cls(table.header, table.rows)

    @classmethod
    def load(cls, store: TabularStore, name: str) -> "TableArena":
        return cls.from_table(read_or_empty(store, name))

    def __len__(self) -> int:
        return len(self._order)

    def row_ids(self) -> list[int]:
        return list(self._order)

    def row(self, row_id: int) -> list[Any]:
        return self._rows[row_id]

    def append(self, row: Sequence[Any]) -> int:
        cells = list(row[: len(self.header)])
        cells.extend([None] * (len(self.header) - len(cells)))
        row_id = self._next_id
        self._next_id += 1
        self._rows[row_id] = cells
        self._order.append(row_id)
        return row_id

    def column_index(self, name: str) -> int | None:
        try:
            return self.header.index(name)
        except ValueError:
            return None

    def ensure_columns(self, names: Iterable[str]) -> list[str]:
        """Append any missing columns to the header; existing rows get blanks."""
        added = []
        for name in names:
            if name not in self.header:
                self.header.append(name)
                added.append(name)
        if added:
            for cells in self._rows.values():
                cells.extend([None] * len(added))
        return added

    def to_rows(self) -> list[list[Any]]:
        return [list(self._rows[row_id]) for row_id in self._order]

    def to_table(self) -> Table:
        return Table(list(self.header), self.to_rows())


@dataclass
class CompositeKeyIndex:
    """Composite key -> logical row id for one upsert operation."""

    key_columns: tuple[str, ...]
    arena_token: int
    row_count: int
    ids: dict[KeyTuple, int] = field(default_factory=dict)
    duplicate_keys: int = 0

    def __len__(self) -> int:
        return len(self.ids)

    def __contains__(self, key: object) -> bool:
        return key in self.ids

    def lookup(self, key: KeyTuple) -> int | None:
        return self.ids.get(key)

    def register(self, key: KeyTuple, row_id: int) -> None:
        self.ids[key] = row_id


@dataclass
class UpsertResult:
    """Counts from one upsert call."""

    updated: int = 0
    appended: int = 0
    skipped: int = 0

    @property
    def written(self) -> int:
        return self.updated + self.appended


def build_key_index(arena: TableArena, key_columns: Sequence[str]) -> CompositeKeyIndex:
    """
    Index existing rows by composite key.

    If any key column is absent from the header the index is empty and the
    table is treated as new. Rows whose key cells are all blank are not
    indexed. When the same key occurs more than once, the last row wins.
    """
    index = CompositeKeyIndex(
        key_columns=tuple(key_columns),
        arena_token=id(arena),
        row_count=len(arena),
    )
    positions = [arena.column_index(k) for k in key_columns]
    if not key_columns or any(p is None for p in positions):
        return index

    for row_id in arena.row_ids():
        row = arena.row(row_id)
        key = make_key(row[p] for p in positions)
        if is_blank_key(key):
            continue
        if key in index.ids:
            index.duplicate_keys += 1
        index.ids[key] = row_id

    if index.duplicate_keys:
        logger.debug(
            f"{index.duplicate_keys} duplicate key(s) on {list(key_columns)}; last occurrence wins"
        )
    return index


def upsert_rows(
    arena: TableArena,
    index: CompositeKeyIndex,
    header: Sequence[str],
    rows: Iterable[Sequence[Any]],
) -> UpsertResult:
    """
    Merge incoming rows (laid out per ``header``) into the arena.

    Rows are processed in order. Matched keys are updated in the incoming
    columns only; unmatched keys are appended and registered at once so a
    later row with the same key updates the appended row. Rows with an
    all-blank key are skipped.

    Raises:
        StaleKeyIndexError: the index was built for another arena or the
            arena changed size since the index was built
        MissingColumnError: a key column is not part of ``header``
    """
    if index.arena_token != id(arena) or index.row_count != len(arena):
        raise StaleKeyIndexError(
            details={"index_rows": index.row_count, "table_rows": len(arena)}
        )

    incoming = [str(h) for h in header]
    key_pos = []
    for k in index.key_columns:
        if k not in incoming:
            raise MissingColumnError(k, [k])
        key_pos.append(incoming.index(k))

    arena.ensure_columns(list(index.key_columns) + incoming)
    targets = [arena.column_index(h) for h in incoming]

    result = UpsertResult()
    for row in rows:
        cells = list(row) + [None] * max(0, len(incoming) - len(row))
        key = make_key(cells[p] for p in key_pos)
        if is_blank_key(key):
            result.skipped += 1
            continue

        row_id = index.lookup(key)
        if row_id is None:
            row_id = arena.append([])
            index.register(key, row_id)
            index.row_count += 1
            result.appended += 1
        else:
            result.updated += 1

        target = arena.row(row_id)
        for src, dst in enumerate(targets):
            target[dst] = cells[src]

    return result


def upsert_table(
    store: TabularStore,
    name: str,
    key_columns: Sequence[str],
    header: Sequence[str],
    rows: Sequence[Sequence[Any]],
) -> UpsertResult:
    """Upsert row lists into a stored table and write it back in one replace.

    The write-back replaces the whole table atomically rather than touching
    individual rows, so an interrupted run leaves either the old or the new
    table. An empty batch performs no write.
    """
    if not rows:
        return UpsertResult()

    arena = TableArena.load(store, name)
    index = build_key_index(arena, key_columns)
    result = upsert_rows(arena, index, header, rows)
    store.write_table(name, arena.header, arena.to_rows())

    logger.info(
        f"Upserted into {name}: {result.updated} updated, {result.appended} appended"
        + (f", {result.skipped} skipped" if result.skipped else "")
    )
    return result


def upsert_records(
    store: TabularStore,
    name: str,
    key_columns: Sequence[str],
    records: Sequence[Mapping[str, Any]],
    columns: Sequence[str] | None = None,
) -> UpsertResult:
    """Upsert mapping records, writing only ``columns``.

    ``columns`` defaults to every key seen across the records, in first-seen
    order. Key columns are always written.
    """
    if columns is None:
        seen: dict[str, None] = {}
        for record in records:
            for k in record:
                seen.setdefault(k, None)
        columns = list(seen)
    header = list(dict.fromkeys([*key_columns, *columns]))
    rows = [[record.get(c) for c in header] for record in records]
    return upsert_table(store, name, key_columns, header, rows)
