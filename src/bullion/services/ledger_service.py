"""Ledger service: every change to the ledger goes through here.

Each mutation runs the read-compute-commit sequence under the store's writer
lock and saves the committed snapshot afterwards. Saving never changes what
was committed; a failed save only leaves PersistenceWarning entries on
``last_warnings``.
"""

from collections.abc import Iterable
from datetime import date
from pathlib import Path
from typing import Any

from bullion.analytics.alerts import RiskAlert, risk_alerts
from bullion.analytics.analyzer import LedgerAnalyzer
from bullion.config.decorators import audit_log, log_performance
from bullion.config.logger import get_logger
from bullion.config.settings import LedgerSettings
from bullion.data.managers.csv_manager import CSVManager
from bullion.data.managers.json_manager import JSONManager
from bullion.data.repos.ledger_repo import LedgerRepository
from bullion.data.transfers import normalize_record, transactions_from_records
from bullion.engine import fifo
from bullion.engine.result import EngineResult
from bullion.ledger.errors import (
    LedgerError,
    MalformedInputError,
    PeriodLockedError,
    PersistenceWarning,
)
from bullion.ledger.models import Transaction
from bullion.ledger.store import Ledger, LedgerStore

from .service import Service

logger = get_logger(__name__)


def _check_batch(transactions: list[Transaction], ledger: Ledger) -> None:
    seen = {txn.id for txn in ledger.transactions}
    for txn in transactions:
        txn.validate()
        if txn.id in seen:
            raise MalformedInputError("duplicate id", txn.id)
        seen.add(txn.id)


class LedgerService(Service):
    """Records purchases and sales and keeps the FIFO ledger consistent.

    Args:
        store: In-memory ledger store (a fresh empty one by default)
        settings: Runtime settings (read from the environment by default)
        repository: Persistence backend (built from settings by default)
        operator: Name written to the audit log for history-altering actions
    """

    def __init__(
        self,
        store: LedgerStore | None = None,
        settings: LedgerSettings | None = None,
        repository: LedgerRepository | None = None,
        operator: str | None = None,
    ):
        """Initialize the service; nothing is loaded until load() is called."""
        super().__init__(settings, repository)
        self.store = store or LedgerStore()
        self.operator = operator
        self.lock_date: date | None = self.settings.lock_date
        self.last_warnings: list[UserWarning] = []

    @property
    def epsilon(self) -> float:
        """Grams below which a lot counts as empty."""
        return self.settings.epsilon

    def snapshot(self) -> Ledger:
        """Current committed ledger."""
        return self.store.snapshot()

    def _locked(self, txn: Transaction) -> PeriodLockedError | None:
        if self.lock_date is not None and txn.date < self.lock_date:
            return PeriodLockedError(txn.id, txn.date, self.lock_date)
        return None

    def _persist(self, ledger: Ledger) -> None:
        if self.repository is None:
            return
        try:
            self.repository.save(ledger)
            warnings = self.repository.last_warnings
        except Exception as e:
            logger.error(f"Saving {ledger} failed: {type(e).__name__}: {e}")
            warnings = [PersistenceWarning(f"save failed: {e}")]
        self.last_warnings.extend(warnings)

    def _commit(self, result: EngineResult) -> EngineResult:
        # caller holds the writer lock
        self.last_warnings = list(result.warnings)
        if result.ok:
            self.store.commit(result.ledger)
            self._persist(result.ledger)
        return result

    @log_performance(warn_threshold=2.0)
    def load(self) -> EngineResult:
        """Load the stored ledger and rebuild its lots from the transactions.

        Stored lots are only compared against the rebuilt ones; a mismatch is
        logged and the rebuilt lots win.
        """
        with self.store.writer():
            if self.repository is None:
                return EngineResult(self.store.snapshot())

            stored = self.repository.load()
            load_warnings = list(self.repository.last_warnings)
            result = fifo.recompute(stored.chronological(), self.epsilon)
            if stored.lots and result.ledger.lots != stored.lots:
                logger.warning(
                    "Stored lots disagree with the transactions; using rebuilt lots"
                )
            self.store.commit(result.ledger)

        self.last_warnings = [*load_warnings, *result.warnings]
        logger.info(
            "Ledger loaded from %s: %s", self.repository.source, result.ledger
        )
        return result

    def add_transaction(self, txn: Transaction) -> EngineResult:
        """Record one purchase or sale.

        Business errors (insufficient stock, malformed input, locked period)
        come back on the result and leave the ledger unchanged.
        """
        with self.store.writer() as ledger:
            try:
                txn.validate()
            except LedgerError as e:
                logger.warning("Rejected transaction: %s", e)
                self.last_warnings = []
                return EngineResult(ledger, error=e)
            error = self._locked(txn)
            if error is not None:
                logger.warning("Rejected transaction: %s", error)
                self.last_warnings = []
                return EngineResult(ledger, error=error)
            return self._commit(fifo.apply_transaction(ledger, txn, self.epsilon))

    def record(self, **fields: Any) -> EngineResult:
        """Build a transaction from keyword fields and add it.

        Accepts the same field names and aliases as CSV import; an id is
        generated when none is given.
        """
        try:
            txn = Transaction.from_dict(normalize_record(fields))
        except MalformedInputError as e:
            logger.warning("Rejected transaction: %s", e)
            return EngineResult(self.snapshot(), error=e)
        return self.add_transaction(txn)

    @audit_log("DELETE_TRANSACTIONS")
    def delete_transactions(self, ids: Iterable[str]) -> EngineResult:
        """Delete transactions and rebuild the ledger from the rest."""
        ids = list(ids)
        with self.store.writer() as ledger:
            for txn_id in ids:
                txn = ledger.get(txn_id)
                error = self._locked(txn) if txn is not None else None
                if error is not None:
                    logger.warning("Rejected deletion: %s", error)
                    self.last_warnings = []
                    return EngineResult(ledger, error=error)
            return self._commit(fifo.delete_transactions(ledger, ids, self.epsilon))

    def rebuild(self) -> EngineResult:
        """Replay the whole history and commit the result."""
        with self.store.writer() as ledger:
            return self._commit(fifo.recompute(ledger.chronological(), self.epsilon))

    @audit_log("IMPORT_CSV")
    def import_csv(self, file_path: str | Path) -> EngineResult:
        """Add every row of a transactions CSV, then rebuild the ledger.

        The import is all or nothing: one bad, duplicate or locked row
        rejects the whole file. An unreadable file is rejected the same way.

        Raises:
            FileNotFoundError: if the CSV file does not exist
        """
        if not Path(file_path).exists():
            raise FileNotFoundError(file_path)

        with self.store.writer() as ledger:
            try:
                records = CSVManager.read_csv(file_path)
            except ValueError as e:
                error = MalformedInputError(f"cannot read {file_path}: {e}")
                logger.warning("Rejected import of %s: %s", file_path, error)
                return EngineResult(ledger, error=error)
            try:
                new = transactions_from_records(records)
                _check_batch(new, ledger)
            except LedgerError as e:
                logger.warning("Rejected import of %s: %s", file_path, e)
                return EngineResult(ledger, error=e)

            for txn in new:
                error = self._locked(txn)
                if error is not None:
                    logger.warning("Rejected import of %s: %s", file_path, error)
                    return EngineResult(ledger, error=error)

            merged = [*ledger.chronological(), *new]
            return self._commit(fifo.recompute(merged, self.epsilon))

    def export_csv(
        self, transactions_path: str | Path, lots_path: str | Path | None = None
    ) -> None:
        """Write the transaction report and, optionally, the lot report."""
        ledger = self.snapshot()
        CSVManager.export_transactions(list(ledger.transactions), transactions_path)
        if lots_path is not None:
            CSVManager.export_lots(list(ledger.lots), lots_path)

    def backup(self, file_path: str | Path) -> Path:
        """Write a JSON backup of the committed ledger."""
        return JSONManager.write_backup(self.snapshot(), file_path)

    @audit_log("RESTORE_BACKUP")
    def restore(self, file_path: str | Path) -> EngineResult:
        """Replace the ledger with a backup, rebuilding lots from its transactions.

        Lots stored in the backup are ignored. A malformed backup comes back
        as an error on the result and the current ledger is kept.

        Raises:
            FileNotFoundError: if the backup file does not exist
        """
        with self.store.writer() as ledger:
            try:
                backup = JSONManager.read_backup(file_path)
                transactions = backup.chronological()
                _check_batch(transactions, Ledger.empty())
            except LedgerError as e:
                logger.warning("Rejected backup %s: %s", file_path, e)
                return EngineResult(ledger, error=e)
            return self._commit(fifo.recompute(transactions, self.epsilon))

    @audit_log("RESET_LEDGER")
    def reset(self) -> None:
        """Drop every transaction and lot, in memory and in storage."""
        with self.store.writer():
            self.store.clear()
            self.last_warnings = []
            if self.repository is not None:
                self.repository.reset()
                self.last_warnings.extend(self.repository.last_warnings)

    @audit_log("SET_LOCK_DATE")
    def set_lock_date(self, lock_date: date | None) -> None:
        """Lock (or with None, unlock) all history before ``lock_date``."""
        with self.store.writer():
            self.lock_date = lock_date
        logger.info("Lock date set to %s", lock_date)

    def analyzer(
        self,
        start: date | None = None,
        end: date | None = None,
        query: str | None = None,
        as_of: date | None = None,
    ) -> LedgerAnalyzer:
        """Analytics over the committed ledger."""
        return LedgerAnalyzer(
            self.snapshot(),
            start,
            end,
            query,
            as_of,
            aging_threshold_days=self.settings.aging_threshold_days,
            low_margin=self.settings.low_margin,
        )

    def alerts(self, as_of: date | None = None) -> list[RiskAlert]:
        """Risk alerts with the configured thresholds."""
        return risk_alerts(
            self.snapshot(),
            as_of,
            aging_threshold_days=self.settings.aging_threshold_days,
            low_margin=self.settings.low_margin,
        )
