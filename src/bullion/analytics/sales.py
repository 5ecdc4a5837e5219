"""Sales and purchase analytics: customers, suppliers, profit over time."""

from datetime import date
from typing import Any

import numpy as np
import pandas as pd

from bullion.config.decorators import log_dataframe_operations
from bullion.config.logger import get_logger
from bullion.ledger.store import Ledger

from .frames import filter_transactions, lots_frame, transactions_frame

logger = get_logger(__name__)

BULK_BUYER_GRAMS = 100.0
FREQUENT_BUYER_TX = 5
PRICE_SENSITIVE_MARGIN = 0.5  # percent
HIGH_MARGIN = 2.0  # percent


def behaviour_pattern(avg_qty: float, tx_count: int, margin: float) -> str:
    """Label a customer from average grams per sale, sale count and margin %."""
    if avg_qty > BULK_BUYER_GRAMS:
        pattern = "Bulk Buyer"
    elif tx_count > FREQUENT_BUYER_TX:
        pattern = "Frequent"
    else:
        pattern = "Regular"

    if margin < PRICE_SENSITIVE_MARGIN:
        pattern += " (Price Sensitive)"
    elif margin > HIGH_MARGIN:
        pattern += " (High Margin)"
    return pattern


def _ratio(numerator: pd.Series, denominator: pd.Series) -> pd.Series:
    return (numerator / denominator.replace(0, np.nan)).fillna(0.0)


class SalesAnalytics:
    """Profit and counterparty analytics over a window of a ledger snapshot.

    Args:
        ledger: Committed ledger snapshot
        start: First day of the window (inclusive), None for unbounded
        end: Last day of the window (inclusive), None for unbounded
        query: Counterparty name filter (case-insensitive substring)
    """

    def __init__(
        self,
        ledger: Ledger,
        start: date | None = None,
        end: date | None = None,
        query: str | None = None,
    ):
        """Initialize with a ledger snapshot and window."""
        self.ledger = ledger
        self.start = start
        self.end = end
        self.transactions = filter_transactions(
            list(ledger.transactions), start, end, query
        )
        self.frame = transactions_frame(self.transactions)

    def _sales(self) -> pd.DataFrame:
        sales = self.frame[self.frame["kind"] == "SALE"].copy()
        for column in ("cost_of_goods_sold", "profit"):
            sales[column] = pd.to_numeric(sales[column]).fillna(0.0)
        return sales

    def _purchases(self) -> pd.DataFrame:
        return self.frame[self.frame["kind"] == "PURCHASE"].copy()

    def totals(self) -> dict[str, float]:
        """Turnover (ex tax), COGS, profit, grams sold and margin % over the window."""
        sales = self._sales()
        turnover = float(sales["revenue"].sum())
        profit = float(sales["profit"].sum())
        return {
            "turnover": turnover,
            "cost_of_goods_sold": float(sales["cost_of_goods_sold"].sum()),
            "profit": profit,
            "quantity": float(sales["quantity"].sum()),
            "margin": profit / turnover * 100 if turnover else 0.0,
        }

    @log_dataframe_operations()
    def customer_stats(self) -> pd.DataFrame:
        """Per-customer sales statistics, most profitable first."""
        sales = self._sales()
        columns = [
            "total_grams",
            "total_spend",
            "profit_contribution",
            "tx_count",
            "margin",
            "avg_qty_per_tx",
            "avg_selling_price",
            "avg_profit_per_gram",
            "behaviour_pattern",
        ]
        if sales.empty:
            return pd.DataFrame(columns=columns).rename_axis("customer")

        stats = sales.groupby("counterparty_name").agg(
            total_grams=("quantity", "sum"),
            total_spend=("revenue", "sum"),
            profit_contribution=("profit", "sum"),
            tx_count=("id", "count"),
        )
        stats = stats[stats["total_spend"] > 0].copy()
        stats["margin"] = _ratio(stats["profit_contribution"], stats["total_spend"]) * 100
        stats["avg_qty_per_tx"] = stats["total_grams"] / stats["tx_count"]
        stats["avg_selling_price"] = _ratio(stats["total_spend"], stats["total_grams"])
        stats["avg_profit_per_gram"] = _ratio(
            stats["profit_contribution"], stats["total_grams"]
        )
        stats["behaviour_pattern"] = [
            behaviour_pattern(row.avg_qty_per_tx, row.tx_count, row.margin)
            for row in stats.itertuples()
        ]
        stats.index.name = "customer"
        return stats[columns].sort_values("profit_contribution", ascending=False)

    @log_dataframe_operations()
    def supplier_stats(self) -> pd.DataFrame:
        """Per-supplier purchase statistics, largest volume first."""
        purchases = self._purchases()
        columns = [
            "total_grams",
            "total_spend",
            "tx_count",
            "avg_rate",
            "min_rate",
            "max_rate",
            "last_purchase",
        ]
        if purchases.empty:
            return pd.DataFrame(columns=columns).rename_axis("supplier")

        stats = purchases.groupby("counterparty_name").agg(
            total_grams=("quantity", "sum"),
            total_spend=("revenue", "sum"),
            tx_count=("id", "count"),
            min_rate=("unit_rate", "min"),
            max_rate=("unit_rate", "max"),
            last_purchase=("date", "max"),
        )
        stats["avg_rate"] = _ratio(stats["total_spend"], stats["total_grams"])
        stats.index.name = "supplier"
        return stats[columns].sort_values("total_grams", ascending=False)

    @log_dataframe_operations()
    def daily_profit(
        self, start: date | None = None, end: date | None = None
    ) -> pd.DataFrame:
        """Profit, grams sold and profit per gram for every day of the range.

        Days without sales are included with zeros. The range defaults to
        the analytics window, or to the first and last sale.
        """
        sales = self._sales()
        start = start or self.start or (sales["date"].min() if not sales.empty else None)
        end = end or self.end or (sales["date"].max() if not sales.empty else None)
        if start is None or end is None:
            return pd.DataFrame(columns=["profit", "quantity", "profit_per_gram"])

        index = pd.date_range(pd.Timestamp(start), pd.Timestamp(end), freq="D", name="date")
        daily = (
            sales.groupby("date")[["profit", "quantity"]]
            .sum()
            .reindex(index, fill_value=0.0)
        )
        daily["profit_per_gram"] = _ratio(daily["profit"], daily["quantity"])
        return daily

    @log_dataframe_operations()
    def monthly_ledger(self) -> pd.DataFrame:
        """Turnover, profit, margin % and grams sold per month, newest month first."""
        sales = self._sales()
        if sales.empty:
            return pd.DataFrame(columns=["turnover", "profit", "margin", "quantity"])

        monthly = sales.groupby(sales["date"].dt.to_period("M")).agg(
            turnover=("revenue", "sum"),
            profit=("profit", "sum"),
            quantity=("quantity", "sum"),
        )
        monthly["margin"] = _ratio(monthly["profit"], monthly["turnover"]) * 100
        monthly.index.name = "month"
        return monthly[["turnover", "profit", "margin", "quantity"]].sort_index(
            ascending=False
        )

    def turnover_stats(self) -> dict[str, Any]:
        """How fast stock turns over within the window.

        ``avg_days_to_sell`` averages purchase-to-close days over lots closed
        in the window; ``return_on_cost`` is profit as a percentage of COGS.
        """
        lots = lots_frame(self.ledger)
        closed = lots[lots["closed_date"].notna()]
        if self.start is not None:
            closed = closed[closed["closed_date"] >= pd.Timestamp(self.start)]
        if self.end is not None:
            closed = closed[closed["closed_date"] <= pd.Timestamp(self.end)]

        days = (closed["closed_date"] - closed["date"]).dt.days
        totals = self.totals()
        cogs = totals["cost_of_goods_sold"]
        return {
            "avg_days_to_sell": float(days.mean()) if not days.empty else 0.0,
            "lots_closed": len(closed),
            "total_cogs": cogs,
            "total_revenue": totals["turnover"],
            "return_on_cost": totals["profit"] / cogs * 100 if cogs else 0.0,
        }
