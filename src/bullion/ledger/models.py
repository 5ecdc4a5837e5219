"""Transaction and Lot value types."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import date, datetime
import enum
import math
from typing import Any

from .errors import MalformedInputError


class TransactionKind(enum.Enum):
    """Enum of transaction kinds."""

    PURCHASE = "PURCHASE"
    SALE = "SALE"


def _to_date(value: Any) -> date:
    # datetime (and pandas Timestamp) subclass date; keep day granularity
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _to_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


@dataclass(frozen=True)
class Transaction:
    """A purchase or sale of metal, in grams.

    ``cost_of_goods_sold`` and ``profit`` are only ever set by the costing
    engine, and only on sales.
    """

    id: str
    kind: TransactionKind
    date: date
    counterparty_name: str
    quantity: float
    unit_rate: float
    taxable_amount: float | None = None
    tax_amount: float = 0.0
    total_amount: float | None = None
    cost_of_goods_sold: float | None = None
    profit: float | None = None

    @property
    def is_sale(self) -> bool:
        """True for sales."""
        return self.kind is TransactionKind.SALE

    @property
    def is_purchase(self) -> bool:
        """True for purchases."""
        return self.kind is TransactionKind.PURCHASE

    @property
    def gross_value(self) -> float:
        """Quantity times rate, before tax."""
        return self.quantity * self.unit_rate

    @property
    def revenue(self) -> float:
        """Taxable amount, falling back to quantity x rate when not supplied."""
        if self.taxable_amount is not None:
            return self.taxable_amount
        return self.gross_value

    def with_costs(self, cost_of_goods_sold: float) -> Transaction:
        """Return a copy stamped with COGS and the resulting profit."""
        return replace(
            self,
            cost_of_goods_sold=cost_of_goods_sold,
            profit=self.revenue - cost_of_goods_sold,
        )

    def validate(self) -> None:
        """Raise MalformedInputError if the transaction cannot enter the ledger."""
        if not self.id or not isinstance(self.id, str):
            raise MalformedInputError("missing id")
        if not isinstance(self.kind, TransactionKind):
            raise MalformedInputError(f"unknown kind {self.kind!r}", self.id)
        if not isinstance(self.date, date):
            raise MalformedInputError("missing date", self.id)
        if isinstance(self.date, datetime):
            raise MalformedInputError("date must be a calendar day, not a datetime", self.id)
        if not self.counterparty_name or not str(self.counterparty_name).strip():
            raise MalformedInputError("missing counterparty name", self.id)

        for name in ("quantity", "unit_rate"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise MalformedInputError(f"{name} must be a number", self.id)
            if math.isnan(value) or math.isinf(value) or value <= 0:
                raise MalformedInputError(f"{name} must be positive", self.id)

        for name in ("taxable_amount", "tax_amount", "total_amount"):
            value = getattr(self, name)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise MalformedInputError(f"{name} must be a number", self.id)
            if math.isnan(value) or value < 0:
                raise MalformedInputError(f"{name} must not be negative", self.id)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        data = asdict(self)
        data["kind"] = self.kind.value
        data["date"] = self.date.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Transaction:
        """Create a Transaction from a dictionary, coercing basic types.

        Raises:
            MalformedInputError: if a field is missing or cannot be parsed
        """
        txn_id = data.get("id")
        try:
            return cls(
                id=str(txn_id) if txn_id is not None else "",
                kind=TransactionKind(str(data["kind"]).upper()),
                date=_to_date(data["date"]),
                counterparty_name=str(data.get("counterparty_name") or ""),
                quantity=float(data["quantity"]),
                unit_rate=float(data["unit_rate"]),
                taxable_amount=_to_float(data.get("taxable_amount")),
                tax_amount=_to_float(data.get("tax_amount")) or 0.0,
                total_amount=_to_float(data.get("total_amount")),
                cost_of_goods_sold=_to_float(data.get("cost_of_goods_sold")),
                profit=_to_float(data.get("profit")),
            )
        except KeyError as e:
            raise MalformedInputError(f"missing field {e.args[0]}", txn_id) from e
        except (TypeError, ValueError) as e:
            raise MalformedInputError(str(e), txn_id) from e

    def __str__(self):
        return (
            f"Transaction({self.date}, {self.kind.value}, {self.counterparty_name}, "
            f"{self.quantity}g x {self.unit_rate})"
        )


@dataclass(frozen=True)
class Lot:
    """Grams acquired by one purchase, tracked at the purchase rate.

    ``cost_per_unit`` never changes; only ``remaining_quantity``,
    ``closed_date`` and ``total_revenue_allocated`` move as sales draw on it.
    """

    id: str
    date: date
    original_quantity: float
    remaining_quantity: float
    cost_per_unit: float
    closed_date: date | None = None
    total_revenue_allocated: float = field(default=0.0)

    @classmethod
    def open(cls, purchase: Transaction) -> Lot:
        """Open a new lot for a purchase transaction."""
        return cls(
            id=purchase.id,
            date=purchase.date,
            original_quantity=purchase.quantity,
            remaining_quantity=purchase.quantity,
            cost_per_unit=purchase.unit_rate,
        )

    @property
    def is_open(self) -> bool:
        """True while grams remain."""
        return self.remaining_quantity > 0

    @property
    def sold_quantity(self) -> float:
        """Grams allocated to sales so far."""
        return self.original_quantity - self.remaining_quantity

    @property
    def remaining_value(self) -> float:
        """Cost basis of the unsold grams."""
        return self.remaining_quantity * self.cost_per_unit

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        data = asdict(self)
        data["date"] = self.date.isoformat()
        data["closed_date"] = self.closed_date.isoformat() if self.closed_date else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Lot:
        """Create a Lot from a dictionary.

        Raises:
            MalformedInputError: if a field is missing or cannot be parsed
        """
        closed = data.get("closed_date")
        try:
            return cls(
                id=str(data["id"]),
                date=_to_date(data["date"]),
                original_quantity=float(data["original_quantity"]),
                remaining_quantity=float(data["remaining_quantity"]),
                cost_per_unit=float(data["cost_per_unit"]),
                closed_date=_to_date(closed) if closed else None,
                total_revenue_allocated=float(data.get("total_revenue_allocated") or 0.0),
            )
        except KeyError as e:
            raise MalformedInputError(f"lot is missing field {e.args[0]}") from e
        except (TypeError, ValueError) as e:
            raise MalformedInputError(f"unreadable lot: {e}") from e
