"""Result value returned by every costing engine call."""

from __future__ import annotations

from dataclasses import dataclass

from bullion.ledger.errors import DataIntegrityWarning, LedgerError
from bullion.ledger.models import Lot, Transaction
from bullion.ledger.store import Ledger


@dataclass(frozen=True)
class EngineResult:
    """Outcome of apply_transaction, recompute or delete_transactions.

    On failure ``error`` is set and ``ledger`` is the caller's ledger, untouched.
    """

    ledger: Ledger
    error: LedgerError | None = None
    warnings: tuple[DataIntegrityWarning, ...] = ()
    recomputed: bool = False

    @property
    def ok(self) -> bool:
        """True when the call succeeded."""
        return self.error is None

    @property
    def transactions(self) -> list[Transaction]:
        """Resulting transactions in replay order (oldest first)."""
        return self.ledger.chronological()

    @property
    def lots(self) -> tuple[Lot, ...]:
        """Resulting lots in FIFO order."""
        return self.ledger.lots

    def unwrap(self) -> Ledger:
        """Return the ledger, or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.ledger
