"""Control Center field selection.

The Control Center table lists which vendor fields to extract: for each row,
the value found at ``JSON Path`` inside a statement period is written to the
raw tables under ``Field Name``. Only rows marked Active? = Yes are used.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from fundsheet.core.data_helpers import to_bool
from fundsheet.core.logging import get_logger
from fundsheet.database import schema
from fundsheet.database.tables import TabularStore, read_or_empty, resolve_columns
from fundsheet.domain.fundamentals import FinancialSection


logger = get_logger("services.field_config")

ANNUAL = "annual"
QUARTERLY = "quarterly"

CONTROL_COLUMNS = {
    "Section": ["Section"],
    "JSON Path": ["JSON Path", "JsonPath"],
    "Field Name": ["Field Name", "Field"],
    "Period Type": ["Period Type", "Period"],
    "Active?": ["Active?", "Active"],
}

# (section, vendor key, canonical name): what the per-share builder needs
DEFAULT_FIELDS: tuple[tuple[FinancialSection, str, str], ...] = (
    (FinancialSection.INCOME_STATEMENT, "totalRevenue", "Revenue"),
    (FinancialSection.INCOME_STATEMENT, "grossProfit", "GrossProfit"),
    (FinancialSection.INCOME_STATEMENT, "operatingIncome", "OperatingIncome"),
    (FinancialSection.INCOME_STATEMENT, "netIncome", "NetIncome"),
    (FinancialSection.INCOME_STATEMENT, "weightedAverageShsOutDil", "SharesDiluted"),
    (FinancialSection.BALANCE_SHEET, "totalStockholderEquity", "TotalStockholdersEquity"),
    (FinancialSection.BALANCE_SHEET, "shortLongTermDebtTotal", "TotalDebt"),
    (FinancialSection.BALANCE_SHEET, "totalLiab", "TotalLiab"),
    (FinancialSection.BALANCE_SHEET, "commonStockSharesOutstanding", "SharesDiluted"),
    (FinancialSection.CASH_FLOW, "totalCashFromOperatingActivities", "OperatingCashFlow"),
    (FinancialSection.CASH_FLOW, "capitalExpenditures", "CapitalExpenditures"),
    (FinancialSection.CASH_FLOW, "freeCashFlow", "FreeCashFlow"),
)


@dataclass(frozen=True)
class FieldSpec:
    """One Control Center row."""

    section: FinancialSection
    json_path: str
    field_name: str
    period: str
    active: bool = True

    def to_row(self) -> list:
        return [
            self.section.value,
            self.json_path,
            self.field_name,
            self.period.capitalize(),
            "Yes" if self.active else "No",
            "",
        ]


def default_field_specs() -> list[FieldSpec]:
    """Defaults: every field active for annual, inactive for quarterly."""
    specs = [FieldSpec(s, path, name, ANNUAL, True) for s, path, name in DEFAULT_FIELDS]
    specs += [FieldSpec(s, path, name, QUARTERLY, False) for s, path, name in DEFAULT_FIELDS]
    return specs


def seed_control_center(store: TabularStore) -> bool:
    """Write the default field rows unless the Control Center already has rows."""
    existing = read_or_empty(store, schema.CONTROL_CENTER)
    if existing.rows:
        return False
    store.write_table(
        schema.CONTROL_CENTER,
        schema.CONTROL_CENTER_HEADER,
        [spec.to_row() for spec in default_field_specs()],
    )
    logger.info(f"Seeded {schema.CONTROL_CENTER} with {len(DEFAULT_FIELDS)} fields per period")
    return True


def load_field_specs(store: TabularStore) -> list[FieldSpec]:
    """Read the Control Center, falling back to the defaults when it is absent."""
    if not store.has_table(schema.CONTROL_CENTER):
        logger.info(f"No {schema.CONTROL_CENTER} table; using default field set")
        return default_field_specs()

    table = store.read_table(schema.CONTROL_CENTER)
    cols = resolve_columns(
        table.header, CONTROL_COLUMNS, optional=("JSON Path",), table=schema.CONTROL_CENTER
    )
    specs = []
    for row in table.rows:
        section = FinancialSection.parse(cols.value(row, "Section"))
        name = str(cols.value(row, "Field Name") or "").strip()
        period = str(cols.value(row, "Period Type") or "").strip().lower()
        if section is None or not name or period not in (ANNUAL, QUARTERLY):
            continue
        path = str(cols.value(row, "JSON Path") or "").strip() or name
        specs.append(
            FieldSpec(section, path, name, period, to_bool(cols.value(row, "Active?")))
        )
    return specs


def active_fields(
    specs: Iterable[FieldSpec], period: str
) -> dict[FinancialSection, list[FieldSpec]]:
    """Active specs for one period, grouped by statement."""
    selected: dict[FinancialSection, list[FieldSpec]] = {}
    for spec in specs:
        if spec.active and spec.period == period:
            selected.setdefault(spec.section, []).append(spec)
    return selected
