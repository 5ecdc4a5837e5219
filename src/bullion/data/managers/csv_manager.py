"""CSV Manager for reading/writing CSV data and ledger reports."""

import csv
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from bullion.config.decorators import log_calls, log_performance
from bullion.config.logger import get_logger
from bullion.ledger.models import Lot, Transaction

logger = get_logger(__name__)

TRANSACTION_REPORT_COLUMNS = [
    "Date",
    "Type",
    "Party",
    "Qty (g)",
    "Rate (per g)",
    "My Cost (per g)",
    "Taxable (Ex Tax)",
    "Tax",
    "Total (Inc Tax)",
    "My Total Cost (Ex Tax)",
    "Profit (Ex Tax)",
]

LOT_REPORT_COLUMNS = [
    "Lot",
    "Date",
    "Original (g)",
    "Remaining (g)",
    "Cost (per g)",
    "Remaining Value",
    "Revenue Allocated",
    "Closed",
]


class CSVManager:
    """Manager for reading/writing CSV data."""

    @staticmethod
    @log_calls()
    @log_performance()
    def read_csv(
        file_path: str | Path, use_pandas: bool = True, **kwargs: Any
    ) -> list[dict[str, Any]]:
        """Read a CSV file and return a list of dictionaries.

        Args:
            file_path: Path to the CSV file.
            use_pandas: Use pandas for fast loading and type inference.
            **kwargs: Additional arguments to pass to pandas.read_csv.
        """
        path = Path(file_path)
        if not path.exists():
            logger.error("CSV file not found: %s", file_path)
            return []

        if use_pandas:
            df = pd.read_csv(path, **kwargs).replace({np.nan: None})
            logger.info("Read %d rows from %s", len(df), file_path)
            return df.to_dict(orient="records")

        with path.open(newline="", encoding="utf-8") as csvfile:
            rows = [dict(r) for r in csv.DictReader(csvfile)]
        logger.info("Read %d rows from %s", len(rows), file_path)
        return rows

    @staticmethod
    @log_calls(log_args=False)
    def write_csv(items: list[dict[str, Any]], file_path: str | Path) -> None:
        """Write a list of dictionaries to a CSV file."""
        if not items:
            logger.warning("No items to write to CSV.")
            return

        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fieldnames = items[0].keys()

        with path.open(mode="w", newline="", encoding="utf-8") as csvfile:
            writer = csv.DictWriter(csvfile, fieldnames=fieldnames)
            writer.writeheader()
            writer.writerows(items)

        logger.info("Wrote %d items to %s", len(items), file_path)

    @staticmethod
    def transaction_rows(transactions: list[Transaction]) -> list[dict[str, Any]]:
        """Transaction report rows, newest first."""
        rows = []
        for txn in sorted(transactions, key=lambda t: t.date, reverse=True):
            cogs = txn.cost_of_goods_sold or 0.0
            my_cost = cogs / txn.quantity if txn.is_sale and cogs else None
            my_total_cost = cogs if txn.is_sale else txn.revenue
            values = [
                txn.date.isoformat(),
                txn.kind.value,
                txn.counterparty_name,
                txn.quantity,
                txn.unit_rate,
                round(my_cost, 2) if my_cost is not None else "-",
                txn.revenue,
                txn.tax_amount,
                txn.total_amount if txn.total_amount is not None else "",
                my_total_cost,
                txn.profit or 0.0,
            ]
            rows.append(dict(zip(TRANSACTION_REPORT_COLUMNS, values, strict=True)))
        return rows

    @staticmethod
    def lot_rows(lots: list[Lot]) -> list[dict[str, Any]]:
        """Lot report rows, in FIFO order."""
        return [
            dict(
                zip(
                    LOT_REPORT_COLUMNS,
                    [
                        lot.id,
                        lot.date.isoformat(),
                        lot.original_quantity,
                        lot.remaining_quantity,
                        lot.cost_per_unit,
                        round(lot.remaining_value, 2),
                        round(lot.total_revenue_allocated, 2),
                        lot.closed_date.isoformat() if lot.closed_date else "",
                    ],
                    strict=True,
                )
            )
            for lot in lots
        ]

    @staticmethod
    def export_transactions(
        transactions: list[Transaction], file_path: str | Path
    ) -> None:
        """Write the transaction report CSV."""
        CSVManager.write_csv(CSVManager.transaction_rows(transactions), file_path)

    @staticmethod
    def export_lots(lots: list[Lot], file_path: str | Path) -> None:
        """Write the inventory lot report CSV."""
        CSVManager.write_csv(CSVManager.lot_rows(lots), file_path)
