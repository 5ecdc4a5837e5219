"""FIFO costing engine.

Sales draw on the oldest open lots first. recompute() replays a whole
transaction set and is the reference result; apply_transaction() is the
fast path for transactions that arrive in date order and falls back to
recompute() for anything back-dated.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace

from bullion.config.decorators import log_performance
from bullion.config.logger import get_logger
from bullion.ledger.errors import (
    DataIntegrityWarning,
    InsufficientStockError,
    LedgerError,
    MalformedInputError,
)
from bullion.ledger.models import Lot, Transaction
from bullion.ledger.store import Ledger

from .result import EngineResult

logger = get_logger(__name__)

EPSILON = 1e-4


@dataclass
class Allocation:
    """Outcome of allocating one sale across lots."""

    lots: list[Lot]
    cost_of_goods_sold: float = 0.0
    unallocated: float = 0.0
    draws: list[tuple[str, float]] = field(default_factory=list)


class FIFO:
    """FIFO (First In, First Out) lot accounting."""

    def __init__(self, epsilon: float = EPSILON):
        """Initialize with the threshold below which a lot counts as empty."""
        self.epsilon = epsilon

    def open_lot(self, lots: Iterable[Lot], purchase: Transaction) -> list[Lot]:
        """Return lots with a new lot for the purchase, in FIFO order."""
        # sorted() is stable, so same-day lots keep purchase order
        return sorted([*lots, Lot.open(purchase)], key=lambda lot: lot.date)

    def allocate(self, lots: Iterable[Lot], sale: Transaction) -> Allocation:
        """Take the sale's grams from the oldest lots with stock.

        Lots are immutable, so the input sequence is never modified; the
        returned Allocation carries the updated lots.
        """
        needed = sale.quantity
        result = Allocation(lots=[])

        for lot in lots:
            if needed <= 0 or lot.remaining_quantity <= 0:
                result.lots.append(lot)
                continue

            take = min(lot.remaining_quantity, needed)
            remaining = lot.remaining_quantity - take
            closed_date = lot.closed_date
            if remaining < self.epsilon:
                remaining = 0.0
                closed_date = sale.date

            needed -= take
            result.cost_of_goods_sold += take * lot.cost_per_unit
            result.draws.append((lot.id, take))
            result.lots.append(
                replace(
                    lot,
                    remaining_quantity=remaining,
                    closed_date=closed_date,
                    total_revenue_allocated=lot.total_revenue_allocated
                    + take * sale.unit_rate,
                )
            )

        result.unallocated = max(needed, 0.0)
        logger.debug(
            "Allocated sale %s across %d lot(s): %s (COGS %.2f)",
            sale.id,
            len(result.draws),
            result.draws,
            result.cost_of_goods_sold,
        )
        return result

    def available(self, lots: Iterable[Lot]) -> float:
        """Total grams left in open lots."""
        return sum(lot.remaining_quantity for lot in lots)

    def replay(
        self, transactions: Iterable[Transaction]
    ) -> tuple[Ledger, list[DataIntegrityWarning]]:
        """Rebuild lots and sale costs from scratch, oldest transaction first."""
        ordered = sorted(transactions, key=lambda txn: txn.date)
        lots: list[Lot] = []
        processed: list[Transaction] = []
        warnings: list[DataIntegrityWarning] = []

        for txn in ordered:
            if txn.is_purchase:
                lots.append(Lot.open(txn))
                processed.append(txn)
                continue

            allocation = self.allocate(lots, txn)
            lots = allocation.lots
            if allocation.unallocated > self.epsilon:
                warning = DataIntegrityWarning(
                    txn.id, txn.quantity, allocation.unallocated
                )
                logger.warning("Recompute shortfall: %s", warning)
                warnings.append(warning)
            processed.append(txn.with_costs(allocation.cost_of_goods_sold))

        processed.reverse()
        return Ledger.of(processed, lots), warnings


_default = FIFO()


def _engine(epsilon: float | None) -> FIFO:
    return _default if epsilon is None else FIFO(epsilon)


def _check_new(ledger: Ledger, txn: Transaction) -> None:
    txn.validate()
    if ledger.get(txn.id) is not None:
        raise MalformedInputError("duplicate id", txn.id)


@log_performance(warn_threshold=0.5)
def recompute(
    transactions: Iterable[Transaction], epsilon: float | None = None
) -> EngineResult:
    """Replay transactions in date order and rebuild the whole ledger.

    Same-day transactions keep the order they are given in, so pass them
    oldest first (``Ledger.chronological()`` / ``EngineResult.transactions``).
    A sale that finds too little stock takes what there is; the shortfall is
    reported as a DataIntegrityWarning instead of an error.
    """
    transactions = list(transactions)
    ledger, warnings = _engine(epsilon).replay(transactions)
    logger.info(
        "Recomputed ledger from %d transactions (%d lots, %d shortfall warnings)",
        len(transactions),
        len(ledger.lots),
        len(warnings),
    )
    return EngineResult(ledger, warnings=tuple(warnings), recomputed=True)


def apply_transaction(
    ledger: Ledger, txn: Transaction, epsilon: float | None = None
) -> EngineResult:
    """Add one transaction to the ledger.

    In-order purchases open a lot and in-order sales are allocated directly.
    A transaction dated before the latest one forces a full recompute; if
    that leaves any sale short of stock that was not short before, the
    insert is rejected.

    Errors (MalformedInputError, InsufficientStockError) come back on the
    result with the original ledger untouched.
    """
    engine = _engine(epsilon)
    try:
        _check_new(ledger, txn)
    except LedgerError as e:
        logger.warning("Rejected transaction: %s", e)
        return EngineResult(ledger, error=e)

    latest = ledger.latest_date
    if latest is not None and txn.date < latest:
        return _apply_back_dated(ledger, txn, engine)

    if txn.is_purchase:
        lots = engine.open_lot(ledger.lots, txn)
        logger.info("Purchase %s opened lot of %.4f g", txn.id, txn.quantity)
        return EngineResult(Ledger((txn, *ledger.transactions), tuple(lots)))

    allocation = engine.allocate(ledger.lots, txn)
    if allocation.unallocated > engine.epsilon:
        error = InsufficientStockError(
            txn.id, txn.quantity, engine.available(ledger.lots)
        )
        logger.warning("Rejected sale: %s", error)
        return EngineResult(ledger, error=error)

    costed = txn.with_costs(allocation.cost_of_goods_sold)
    logger.info(
        "Sale %s recorded: COGS %.2f, profit %.2f",
        txn.id,
        costed.cost_of_goods_sold,
        costed.profit,
    )
    return EngineResult(
        Ledger((costed, *ledger.transactions), tuple(allocation.lots))
    )


def _apply_back_dated(ledger: Ledger, txn: Transaction, engine: FIFO) -> EngineResult:
    logger.info(
        "Transaction %s dated %s precedes latest %s; recomputing history",
        txn.id,
        txn.date,
        ledger.latest_date,
    )
    history = ledger.chronological()
    _, before = engine.replay(history)
    updated, after = engine.replay([*history, txn])

    already_short = {w.transaction_id for w in before}
    new_shortfalls = [w for w in after if w.transaction_id not in already_short]
    if new_shortfalls:
        short = new_shortfalls[0]
        error = InsufficientStockError(
            short.transaction_id, short.requested, short.requested - short.unallocated
        )
        logger.warning("Rejected back-dated transaction %s: %s", txn.id, error)
        return EngineResult(ledger, error=error)

    return EngineResult(updated, warnings=tuple(after), recomputed=True)


def delete_transactions(
    ledger: Ledger, ids: Iterable[str], epsilon: float | None = None
) -> EngineResult:
    """Remove transactions by id and rebuild the ledger from what is left."""
    ids = set(ids)
    unknown = ids - {txn.id for txn in ledger.transactions}
    if unknown:
        logger.warning("Ignoring unknown transaction ids: %s", sorted(unknown))

    remaining = [txn for txn in ledger.chronological() if txn.id not in ids]
    logger.info(
        "Deleting %d transaction(s); %d remain",
        len(ids) - len(unknown),
        len(remaining),
    )
    return recompute(remaining, epsilon)
