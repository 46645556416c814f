"""SQL backend (SQLAlchemy 2.0 ORM).

Stores each table as a header record plus one JSON row per data row. Dates
are tagged inside the JSON so they round-trip as date objects. A replace
deletes and re-inserts inside one transaction.

Usage:
    store = SqlWorkbook("sqlite:///fundsheet.db")
    store.write_table("Per_Share", header, rows)
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Sequence

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    create_engine,
    delete,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column

from fundsheet.core.exceptions import MissingStoreError
from fundsheet.core.logging import get_logger
from fundsheet.database.tables import Table, normalize_table


logger = get_logger("database.sql")


# Naming convention for constraints and indexes (deterministic names)
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all ORM models with naming convention."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class SheetHeader(Base):
    """One logical table and its header."""

    __tablename__ = "sheet_header"

    name: Mapped[str] = mapped_column(String(100), primary_key=True)
    header: Mapped[list] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )


class SheetRow(Base):
    """One data row of a logical table."""

    __tablename__ = "sheet_row"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    table_name: Mapped[str] = mapped_column(
        String(100), ForeignKey("sheet_header.name", ondelete="CASCADE"), index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    cells: Mapped[list] = mapped_column(JSON, nullable=False)


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return {"__datetime__": value.isoformat()}
    if isinstance(value, date):
        return {"__date__": value.isoformat()}
    if isinstance(value, Decimal):
        return float(value)
    return value


def _decode(value: Any) -> Any:
    if isinstance(value, dict):
        if "__datetime__" in value:
            return datetime.fromisoformat(value["__datetime__"])
        if "__date__" in value:
            return date.fromisoformat(value["__date__"])
    return value


class SqlWorkbook:
    """TabularStore backed by any SQLAlchemy database."""

    def __init__(self, url_or_engine: str | Engine):
        if isinstance(url_or_engine, str):
            self.engine = create_engine(url_or_engine, future=True)
        else:
            self.engine = url_or_engine
        Base.metadata.create_all(self.engine)

    def table_names(self) -> list[str]:
        with Session(self.engine) as session:
            return list(session.scalars(select(SheetHeader.name).order_by(SheetHeader.name)))

    def has_table(self, name: str) -> bool:
        with Session(self.engine) as session:
            return session.get(SheetHeader, name) is not None

    def read_table(self, name: str) -> Table:
        with Session(self.engine) as session:
            sheet = session.get(SheetHeader, name)
            if sheet is None:
                raise MissingStoreError(name)
            rows = session.scalars(
                select(SheetRow.cells)
                .where(SheetRow.table_name == name)
                .order_by(SheetRow.position)
            ).all()
            return normalize_table(sheet.header, [[_decode(c) for c in r] for r in rows])

    def write_table(self, name: str, header: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
        table = normalize_table(header, rows)
        with Session(self.engine) as session, session.begin():
            session.execute(delete(SheetRow).where(SheetRow.table_name == name))
            sheet = session.get(SheetHeader, name)
            if sheet is None:
                session.add(SheetHeader(name=name, header=table.header))
            else:
                sheet.header = table.header
                sheet.updated_at = datetime.now(timezone.utc)
            session.flush()
            session.add_all(
                SheetRow(table_name=name, position=i, cells=[_encode(v) for v in row])
                for i, row in enumerate(table.rows)
            )
        logger.debug(f"Replaced table '{name}' with {len(table.rows)} rows")

    def dispose(self) -> None:
        self.engine.dispose()
