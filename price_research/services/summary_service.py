from decimal import Decimal
from typing import Optional

import pandas as pd
from sqlalchemy.orm import Session

from price_research.errors import ItemNotFoundError
from price_research.models.line_item import LineItem
from price_research.services.line_item_service import LineItemService
from price_research.services.project_service import ProjectService
from price_research.services.source_ledger_service import SourceLedgerService
from price_research.services.statistics_service import Statistics, StatisticsCalculator

SUMMARY_COLUMNS = [
    "item_id",
    "display_order",
    "name",
    "quantity",
    "unit",
    "source_count",
    "included_sources",
    "median",
    "estimated_total",
]


class SummaryService:
    """
    Consolidated view of a price research for reporting.
    Read only: nothing here persists data.
    """

    def __init__(
        self,
        db: Session,
        project_service: ProjectService,
        line_item_service: LineItemService,
        source_ledger_service: SourceLedgerService,
        statistics: Optional[StatisticsCalculator] = None,
    ):
        self.db = db
        self.project_service = project_service
        self.line_item_service = line_item_service
        self.source_ledger_service = source_ledger_service
        self.statistics = statistics or StatisticsCalculator()

    def item_statistics(self, item_id: str) -> Statistics:
        '''Full statistics over the non-excluded prices of an item.'''
        if self.db.get(LineItem, item_id) is None:
            raise ItemNotFoundError(item_id)
        prices = self.source_ledger_service.included_prices(item_id)
        return self.statistics.compute(prices)

    def project_summary_df(self, project_id: str) -> pd.DataFrame:
        """
        One row per item with its aggregate price data. Items without a
        median have NaN median / estimated_total and do not add to
        df.attrs["estimated_total"].
        """
        project = self.project_service.get_project(project_id)
        items = self.line_item_service.list_items(project.id)

        rows = []
        for item in items:
            estimated_total = item.estimated_total()
            rows.append({
                "item_id": item.id,
                "display_order": item.display_order,
                "name": item.name,
                "quantity": float(item.quantity),
                "unit": item.unit,
                "source_count": item.source_count,
                "included_sources": len(self.source_ledger_service.included_prices(item.id)),
                "median": float(item.computed_median) if item.has_computed_median() else None,
                "estimated_total": float(estimated_total) if estimated_total is not None else None,
            })

        df = pd.DataFrame(rows, columns=SUMMARY_COLUMNS)
        df["median"] = df["median"].astype("float64")
        df["estimated_total"] = df["estimated_total"].astype("float64")
        df.attrs["project_id"] = project.id
        df.attrs["project_name"] = project.name
        df.attrs["status"] = project.status.value
        df.attrs["estimated_total"] = float(df["estimated_total"].sum(skipna=True)) if not df.empty else 0.0
        return df

    def project_estimated_total(self, project_id: str) -> Decimal:
        items = self.line_item_service.list_items(project_id)
        total = Decimal("0")
        for item in items:
            estimated = item.estimated_total()
            if estimated is not None:
                total += estimated
        return total
