"""Errors and warnings raised or reported by the costing engine and ledger service."""

from datetime import date


class LedgerError(Exception):
    """Base class for ledger errors surfaced to the operator."""


class InsufficientStockError(LedgerError):
    """A sale asks for more grams than the open lots hold."""

    def __init__(self, transaction_id: str, requested: float, available: float):
        self.transaction_id = transaction_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Sale {transaction_id} needs {requested:.4f} g but only "
            f"{available:.4f} g is in stock"
        )


class MalformedInputError(LedgerError):
    """A transaction is missing fields or carries invalid values."""

    def __init__(self, message: str, transaction_id: str | None = None):
        self.transaction_id = transaction_id
        prefix = f"Transaction {transaction_id}: " if transaction_id else ""
        super().__init__(f"{prefix}{message}")


class PeriodLockedError(LedgerError):
    """A change would alter history on or before the locked period."""

    def __init__(self, transaction_id: str, txn_date: date, lock_date: date):
        self.transaction_id = transaction_id
        self.date = txn_date
        self.lock_date = lock_date
        super().__init__(
            f"Transaction {transaction_id} dated {txn_date.isoformat()} falls "
            f"before the lock date {lock_date.isoformat()}"
        )


class DataIntegrityWarning(UserWarning):
    """Replayed history sold more grams than had been purchased at that point."""

    def __init__(self, transaction_id: str, requested: float, unallocated: float):
        self.transaction_id = transaction_id
        self.requested = requested
        self.unallocated = unallocated
        super().__init__(
            f"Sale {transaction_id} requested {requested:.4f} g; "
            f"{unallocated:.4f} g could not be allocated to any lot"
        )


class PersistenceWarning(UserWarning):
    """Saving or loading the ledger failed; in-memory state is unaffected."""
