"""In-memory ledger state: transactions (newest first) and lots (oldest first)."""

from __future__ import annotations

from collections.abc import Generator, Iterable
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
import threading
from typing import Any

from bullion.config.logger import get_logger

from .models import Lot, Transaction

logger = get_logger(__name__)


@dataclass(frozen=True)
class Ledger:
    """Immutable snapshot of the ledger.

    ``transactions`` is kept newest first and ``lots`` in FIFO order. Every
    engine call takes a Ledger and returns a new one.
    """

    transactions: tuple[Transaction, ...] = ()
    lots: tuple[Lot, ...] = ()

    @classmethod
    def empty(cls) -> Ledger:
        """An empty ledger."""
        return cls()

    @classmethod
    def of(cls, transactions: Iterable[Transaction], lots: Iterable[Lot]) -> Ledger:
        """Build a ledger from any iterables."""
        return cls(tuple(transactions), tuple(lots))

    @property
    def latest_date(self) -> date | None:
        """Date of the most recent transaction, or None when empty."""
        return self.transactions[0].date if self.transactions else None

    def chronological(self) -> list[Transaction]:
        """Transactions oldest first, same-day entries in the order they were recorded."""
        return list(reversed(self.transactions))

    def sales(self) -> list[Transaction]:
        """Sales, newest first."""
        return [txn for txn in self.transactions if txn.is_sale]

    def purchases(self) -> list[Transaction]:
        """Purchases, newest first."""
        return [txn for txn in self.transactions if txn.is_purchase]

    def get(self, transaction_id: str) -> Transaction | None:
        """Look up a transaction by id."""
        return next((t for t in self.transactions if t.id == transaction_id), None)

    def lot(self, lot_id: str) -> Lot | None:
        """Look up a lot by id."""
        return next((lot for lot in self.lots if lot.id == lot_id), None)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "transactions": [txn.to_dict() for txn in self.transactions],
            "lots": [lot.to_dict() for lot in self.lots],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Ledger:
        """Create a ledger from a dictionary produced by to_dict()."""
        return cls(
            tuple(Transaction.from_dict(t) for t in data.get("transactions") or []),
            tuple(Lot.from_dict(lot) for lot in data.get("lots") or []),
        )

    def __str__(self):
        return f"Ledger({len(self.transactions)} transactions, {len(self.lots)} lots)"


class LedgerStore:
    """Holds the committed ledger.

    Readers get a consistent snapshot through a single reference read.
    Writers serialize through writer() and publish with replace()/commit(),
    which swap the whole snapshot at once.
    """

    def __init__(self, ledger: Ledger | None = None):
        """Initialize the store, empty by default."""
        self._ledger = ledger or Ledger.empty()
        self._write_lock = threading.RLock()

    def snapshot(self) -> Ledger:
        """Current committed ledger."""
        return self._ledger

    def all_transactions(self) -> tuple[Transaction, ...]:
        """Committed transactions, newest first."""
        return self._ledger.transactions

    def all_lots(self) -> tuple[Lot, ...]:
        """Committed lots, oldest first."""
        return self._ledger.lots

    @contextmanager
    def writer(self) -> Generator[Ledger, None, None]:
        """Hold the writer lock; yields the snapshot the write should start from."""
        with self._write_lock:
            yield self._ledger

    def commit(self, ledger: Ledger) -> Ledger:
        """Publish a new ledger snapshot."""
        with self._write_lock:
            self._ledger = ledger
        logger.debug("Committed %s", ledger)
        return ledger

    def replace(
        self, transactions: Iterable[Transaction], lots: Iterable[Lot]
    ) -> Ledger:
        """Atomically replace transactions and lots together."""
        return self.commit(Ledger.of(transactions, lots))

    def clear(self) -> None:
        """Drop all state."""
        self.commit(Ledger.empty())
