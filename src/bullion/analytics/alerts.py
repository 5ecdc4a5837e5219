"""Risk alerts shown on the dashboard."""

from dataclasses import dataclass
from datetime import date

from bullion.ledger.store import Ledger

from .inventory import InventoryAnalytics

RECENT_SALES = 5


@dataclass(frozen=True)
class RiskAlert:
    """One alert line."""

    id: str
    severity: str  # HIGH, MEDIUM
    context: str
    message: str


def risk_alerts(
    ledger: Ledger,
    as_of: date | None = None,
    aging_threshold_days: int = 30,
    low_margin: float = 0.005,
) -> list[RiskAlert]:
    """Old stock and thin recent margins.

    Args:
        ledger: Committed ledger snapshot
        as_of: Day the stock age is measured on (default: today)
        aging_threshold_days: Stock older than this raises a HIGH alert
        low_margin: Fractional margin of the latest sales below which a MEDIUM alert is raised
    """
    alerts = []

    inventory = InventoryAnalytics(ledger)
    lots = inventory.open_lots(as_of or date.today())
    old_grams = float(
        lots.loc[lots["age_days"] > aging_threshold_days, "remaining_quantity"].sum()
    )
    if old_grams > 0:
        alerts.append(
            RiskAlert(
                id="old-stock",
                severity="HIGH",
                context="Inventory",
                message=f"{old_grams:,.3f} g of stock is older than {aging_threshold_days} days.",
            )
        )

    recent = ledger.sales()[:RECENT_SALES]
    revenue = sum(txn.revenue for txn in recent)
    if recent and revenue > 0:
        margin = sum(txn.profit or 0.0 for txn in recent) / revenue
        if margin < low_margin:
            alerts.append(
                RiskAlert(
                    id="low-margin",
                    severity="MEDIUM",
                    context="Profit",
                    message=f"Recent sales margins are critically low (< {low_margin:.1%}).",
                )
            )

    return alerts
