"""High-level ledger analyzer orchestrating the analytics components.

Provides a simple summary while keeping the components reachable for
advanced use.
"""

from datetime import date
import json
from typing import Any

from bullion.config.logger import get_logger
from bullion.ledger.store import Ledger

from .alerts import risk_alerts
from .inventory import InventoryAnalytics
from .sales import SalesAnalytics

logger = get_logger(__name__)


class LedgerAnalyzer:
    """Dashboard-level analytics over one ledger snapshot."""

    def __init__(
        self,
        ledger: Ledger,
        start: date | None = None,
        end: date | None = None,
        query: str | None = None,
        as_of: date | None = None,
        aging_threshold_days: int = 30,
        low_margin: float = 0.005,
    ):
        """Initialize analyzer with a snapshot and an optional window."""
        self.ledger = ledger
        self.as_of = as_of or date.today()
        self.alert_thresholds = {
            "aging_threshold_days": aging_threshold_days,
            "low_margin": low_margin,
        }
        self.inventory = InventoryAnalytics(ledger, query)
        self.sales = SalesAnalytics(ledger, start, end, query)

    def get_summary(self) -> dict[str, Any]:
        """Stock, valuation, profit and alert overview."""
        totals = self.sales.totals()
        aging = self.inventory.stock_aging(self.as_of)
        return {
            "inventory": {
                "current_stock": self.inventory.current_stock(),
                "fifo_value": self.inventory.fifo_value(),
                "open_lots": sum(1 for lot in self.inventory.lots if lot.is_open),
                "aging": aging,
            },
            "sales": totals,
            "turnover": self.sales.turnover_stats(),
            "transactions": {
                "count": len(self.sales.transactions),
                "sales": sum(1 for txn in self.sales.transactions if txn.is_sale),
            },
            "alerts": [
                alert.__dict__
                for alert in risk_alerts(self.ledger, self.as_of, **self.alert_thresholds)
            ],
        }

    def export_data(self, fmt: str = "dict") -> dict[str, Any] | str:
        """Summary plus customer, supplier and monthly tables.

        Args:
            fmt: 'dict' or 'json'
        """
        data = {
            "summary": self.get_summary(),
            "customers": self.sales.customer_stats().reset_index().to_dict("records"),
            "suppliers": self.sales.supplier_stats().reset_index().to_dict("records"),
            "monthly": self.sales.monthly_ledger().reset_index().to_dict("records"),
        }
        if fmt == "json":
            return json.dumps(data, indent=2, default=str)
        return data

    def __repr__(self) -> str:
        return f"LedgerAnalyzer({self.ledger}, as_of={self.as_of})"
