"""Per-run job context.

Jobs receive everything they touch through a JobContext: the settings, the
table store and (lazily built) data sources. Nothing below the job layer
reads settings on its own.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from fundsheet.database import TabularStore, open_store


if TYPE_CHECKING:
    from fundsheet.core.config import Settings
    from fundsheet.services.fundamentals import FundamentalsSource
    from fundsheet.services.prices import PriceSource


@dataclass
class JobContext:
    settings: "Settings"
    store: TabularStore
    fundamentals_source: "FundamentalsSource | None" = None
    price_source: "PriceSource | None" = None

    @classmethod
    def from_settings(cls, settings: "Settings") -> "JobContext":
        return cls(settings=settings, store=open_store(settings))

    @property
    def fundamentals(self) -> "FundamentalsSource":
        if self.fundamentals_source is None:
            from fundsheet.services.fundamentals import build_fundamentals_source

            self.fundamentals_source = build_fundamentals_source(self.settings)
        return self.fundamentals_source

    @property
    def prices(self) -> "PriceSource":
        if self.price_source is None:
            from fundsheet.services.prices import build_price_source

            self.price_source = build_price_source(self.settings)
        return self.price_source

    @property
    def suffix(self) -> str:
        return self.settings.default_exchange_suffix
