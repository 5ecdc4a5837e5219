"""DataFrame views of a ledger snapshot."""

from datetime import date

import pandas as pd

from bullion.ledger.models import Transaction
from bullion.ledger.store import Ledger

TRANSACTION_COLUMNS = [
    "id",
    "kind",
    "date",
    "counterparty_name",
    "quantity",
    "unit_rate",
    "revenue",
    "tax_amount",
    "total_amount",
    "cost_of_goods_sold",
    "profit",
]

LOT_COLUMNS = [
    "id",
    "date",
    "original_quantity",
    "remaining_quantity",
    "cost_per_unit",
    "closed_date",
    "total_revenue_allocated",
]


def _empty_frame(
    columns: list[str], dates: tuple[str, ...], text: tuple[str, ...]
) -> pd.DataFrame:
    # typed, so .dt and arithmetic still work on zero rows
    dtypes = {
        c: "datetime64[ns]" if c in dates else object if c in text else "float64"
        for c in columns
    }
    return pd.DataFrame({c: pd.Series(dtype=dtypes[c]) for c in columns})


def filter_transactions(
    transactions: list[Transaction],
    start: date | None = None,
    end: date | None = None,
    query: str | None = None,
) -> list[Transaction]:
    """Keep transactions inside [start, end] whose counterparty contains query (case-insensitive)."""
    query = (query or "").strip().lower()
    return [
        txn
        for txn in transactions
        if (start is None or txn.date >= start)
        and (end is None or txn.date <= end)
        and (not query or query in txn.counterparty_name.lower())
    ]


def transactions_frame(transactions: list[Transaction]) -> pd.DataFrame:
    """One row per transaction, ``date`` as datetime64."""
    if not transactions:
        return _empty_frame(
            TRANSACTION_COLUMNS,
            dates=("date",),
            text=("id", "kind", "counterparty_name"),
        )

    df = pd.DataFrame(
        [
            {
                "id": txn.id,
                "kind": txn.kind.value,
                "date": txn.date,
                "counterparty_name": txn.counterparty_name,
                "quantity": txn.quantity,
                "unit_rate": txn.unit_rate,
                "revenue": txn.revenue,
                "tax_amount": txn.tax_amount,
                "total_amount": txn.total_amount,
                "cost_of_goods_sold": txn.cost_of_goods_sold,
                "profit": txn.profit,
            }
            for txn in transactions
        ],
        columns=TRANSACTION_COLUMNS,
    )
    df["date"] = pd.to_datetime(df["date"])
    return df


def lots_frame(ledger: Ledger) -> pd.DataFrame:
    """One row per lot, in FIFO order."""
    if not ledger.lots:
        return _empty_frame(LOT_COLUMNS, dates=("date", "closed_date"), text=("id",))

    df = pd.DataFrame([lot.to_dict() for lot in ledger.lots], columns=LOT_COLUMNS)
    df["date"] = pd.to_datetime(df["date"])
    df["closed_date"] = pd.to_datetime(df["closed_date"])
    return df
