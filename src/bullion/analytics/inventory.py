"""Inventory analytics: stock on hand, FIFO valuation and stock aging."""

from datetime import date
from typing import Any

import numpy as np
import pandas as pd

from bullion.config.decorators import log_dataframe_operations
from bullion.engine.fifo import recompute
from bullion.ledger.models import Lot
from bullion.ledger.store import Ledger

from .frames import filter_transactions, lots_frame

AGING_BUCKETS = ["0-7", "8-15", "16-30", "30+"]
_BUCKET_EDGES = [-np.inf, 7, 15, 30, np.inf]


class InventoryAnalytics:
    """Read-only views over the lots of a ledger snapshot.

    Args:
        ledger: Committed ledger snapshot
        query: Supplier name filter (case-insensitive substring); only lots
            bought from matching suppliers are counted
    """

    def __init__(self, ledger: Ledger, query: str | None = None):
        """Initialize with a committed ledger snapshot."""
        self.ledger = ledger
        self.query = query
        self._lot_ids = None
        if query and query.strip():
            matching = filter_transactions(ledger.purchases(), query=query)
            self._lot_ids = {txn.id for txn in matching}
        self.lots = tuple(self._matching(ledger.lots))

    def _matching(self, lots) -> list[Lot]:
        if self._lot_ids is None:
            return list(lots)
        return [lot for lot in lots if lot.id in self._lot_ids]

    def current_stock(self) -> float:
        """Grams still in stock."""
        return float(sum(lot.remaining_quantity for lot in self.lots))

    def fifo_value(self) -> float:
        """Cost basis of the stock on hand."""
        return float(sum(lot.remaining_value for lot in self.lots))

    @log_dataframe_operations()
    def lots_frame(self) -> pd.DataFrame:
        """Lots as a DataFrame with remaining value added."""
        df = lots_frame(Ledger(self.ledger.transactions, self.lots))
        df["remaining_value"] = df["remaining_quantity"] * df["cost_per_unit"]
        return df

    @log_dataframe_operations()
    def open_lots(self, as_of: date) -> pd.DataFrame:
        """Open lots with their age in days at ``as_of``."""
        df = self.lots_frame()
        df = df[df["remaining_quantity"] > 0].copy()
        df["age_days"] = (pd.Timestamp(as_of) - df["date"]).dt.days
        df["bucket"] = pd.cut(
            df["age_days"], bins=_BUCKET_EDGES, labels=AGING_BUCKETS, right=True
        )
        return df

    def stock_aging(self, as_of: date | None = None) -> dict[str, Any]:
        """Grams in stock per age bucket, and their weighted average age.

        Returns:
            {"buckets": {"0-7": g, "8-15": g, "16-30": g, "30+": g},
             "weighted_avg_days": float, "total_quantity": float}
        """
        as_of = as_of or date.today()
        df = self.open_lots(as_of)
        buckets = {name: 0.0 for name in AGING_BUCKETS}
        if df.empty:
            return {"buckets": buckets, "weighted_avg_days": 0.0, "total_quantity": 0.0}

        grouped = df.groupby("bucket", observed=False)["remaining_quantity"].sum()
        buckets.update({str(k): float(v) for k, v in grouped.items()})

        total = float(df["remaining_quantity"].sum())
        weighted = float(np.average(df["age_days"], weights=df["remaining_quantity"]))
        return {"buckets": buckets, "weighted_avg_days": weighted, "total_quantity": total}

    def value_on_date(self, on: date) -> float:
        """FIFO value of the stock held at the end of day ``on``.

        History is replayed up to that day, so sales recorded later do not count.
        """
        history = [txn for txn in self.ledger.chronological() if txn.date <= on]
        replayed = recompute(history).ledger
        return float(sum(lot.remaining_value for lot in self._matching(replayed.lots)))
