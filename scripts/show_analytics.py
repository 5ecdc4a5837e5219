#!/usr/bin/env python3
"""Ledger Analytics Display."""

import argparse
from datetime import date
import math

from bullion import LedgerService


def pretty_pct(x):
    """Format a percentage given in percent units."""
    return f"{x:.2f}%" if x is not None and not math.isnan(x) else "n/a"


def pretty_currency(x, currency_sym="₹"):
    """Format currency values with thousands separators."""
    return f"{currency_sym}{x:,.2f}" if x is not None and not math.isnan(x) else "n/a"


def print_header(title):
    """Print a major section header."""
    print(f"\n{'=' * 60}")
    print(f"{title.upper()}")
    print(f"{'=' * 60}")


def print_section(title):
    """Print a section header."""
    print(f"\n{title}")
    print("-" * max(len(title), 30))


def main():
    """Main analytics display function."""
    parser = argparse.ArgumentParser(description="Show ledger analytics.")
    parser.add_argument("--start", type=date.fromisoformat, help="First day (YYYY-MM-DD)")
    parser.add_argument("--end", type=date.fromisoformat, help="Last day (YYYY-MM-DD)")
    parser.add_argument("--party", help="Counterparty name filter")
    parser.add_argument("--as-of", type=date.fromisoformat, default=date.today())
    args = parser.parse_args()

    service = LedgerService()
    service.load()
    analyzer = service.analyzer(args.start, args.end, args.party, args.as_of)
    summary = analyzer.get_summary()

    print_header("Bullion Ledger Analytics")

    print_section("Inventory")
    inventory = summary["inventory"]
    print(f"   Stock on hand:    {inventory['current_stock']:,.3f} g")
    print(f"   FIFO value:       {pretty_currency(inventory['fifo_value'])}")
    print(f"   Open lots:        {inventory['open_lots']}")
    print(f"   Avg age:          {inventory['aging']['weighted_avg_days']:.1f} days")
    for bucket, grams in inventory["aging"]["buckets"].items():
        print(f"     {bucket:>6} days:  {grams:,.3f} g")

    print_section("Sales")
    sales = summary["sales"]
    print(f"   Turnover:         {pretty_currency(sales['turnover'])}")
    print(f"   COGS:             {pretty_currency(sales['cost_of_goods_sold'])}")
    print(f"   Profit:           {pretty_currency(sales['profit'])}")
    print(f"   Margin:           {pretty_pct(sales['margin'])}")
    print(f"   Grams sold:       {sales['quantity']:,.3f} g")
    print(f"   Avg days to sell: {summary['turnover']['avg_days_to_sell']:.1f}")

    print_section("Top Customers")
    customers = analyzer.sales.customer_stats().head(5)
    if customers.empty:
        print("   No sales in range")
    for name, row in customers.iterrows():
        print(
            f"   {name:<20} {pretty_currency(row['profit_contribution']):>14}"
            f"  {row['behaviour_pattern']}"
        )

    print_section("Monthly")
    for month, row in analyzer.sales.monthly_ledger().iterrows():
        print(
            f"   {month}  turnover {pretty_currency(row['turnover']):>16}"
            f"  profit {pretty_currency(row['profit']):>14}  {pretty_pct(row['margin'])}"
        )

    print_section("Alerts")
    if not summary["alerts"]:
        print("   None")
    for alert in summary["alerts"]:
        print(f"   [{alert['severity']}] {alert['context']}: {alert['message']}")


if __name__ == "__main__":
    main()
