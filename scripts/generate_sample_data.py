#!/usr/bin/env python3
"""Generate sample purchases and sales for ledger demonstration."""

from datetime import date, timedelta
from pathlib import Path

import numpy as np
import pandas as pd

# Set seed for reproducible sample data
RNG = np.random.default_rng(42)

SUPPLIERS = ["Metal Mint", "Refinery Co", "Bullion House"]
CUSTOMERS = ["Asha Jewellers", "Kiran Gold", "City Traders", "Om Ornaments"]
TAX_RATE = 0.03


def price_path(start: date, days: int, start_rate: float = 6200.0) -> pd.Series:
    """Random-walk rate per gram for each day."""
    steps = RNG.normal(0, 0.006, days)
    rates = start_rate * np.exp(np.cumsum(steps))
    index = pd.date_range(start, periods=days, freq="D")
    return pd.Series(rates.round(2), index=index)


def generate_transactions(start: date, days: int) -> pd.DataFrame:
    """Purchases every few days, sales that never exceed stock on hand."""
    rates = price_path(start, days)
    rows = []
    stock = 0.0

    for n, (day, rate) in enumerate(rates.items()):
        if n % 4 == 0 or stock < 50:
            grams = float(RNG.choice([100, 250, 500]))
            rows.append(("PURCHASE", day, RNG.choice(SUPPLIERS), grams, rate * 0.995))
            stock += grams

        for _ in range(RNG.poisson(1.2)):
            grams = float(min(stock, RNG.choice([5, 10, 20, 50, 120])))
            if grams <= 0:
                break
            markup = 1 + RNG.uniform(0.002, 0.025)
            rows.append(("SALE", day, RNG.choice(CUSTOMERS), grams, rate * markup))
            stock -= grams

    df = pd.DataFrame(rows, columns=["type", "date", "party", "qty", "rate"])
    df["date"] = df["date"].dt.strftime("%Y-%m-%d")
    df["rate"] = df["rate"].round(2)
    df["taxable"] = (df["qty"] * df["rate"]).round(2)
    df["tax"] = (df["taxable"] * TAX_RATE).round(2)
    df["total"] = df["taxable"] + df["tax"]
    df.insert(0, "id", [f"T{i:05d}" for i in range(1, len(df) + 1)])
    return df


def main():
    """Generate sample data."""
    data_dir = Path("data")
    data_dir.mkdir(exist_ok=True)

    start = date.today() - timedelta(days=120)
    transactions = generate_transactions(start, 120)
    transactions.to_csv(data_dir / "transactions.csv", index=False)

    sales = transactions[transactions["type"] == "SALE"]
    print(f"\n{'=' * 50}")
    print("SAMPLE DATA SUMMARY")
    print(f"{'=' * 50}")
    print(f"Date Range: {transactions['date'].min()} to {transactions['date'].max()}")
    print(f"  - {len(transactions) - len(sales)} purchases")
    print(f"  - {len(sales)} sales ({sales['qty'].sum():,.0f} g)")
    print(f"\nData saved to: {(data_dir / 'transactions.csv').absolute()}")
    print("Load it with: python scripts/loader.py data/transactions.csv")


if __name__ == "__main__":
    main()
