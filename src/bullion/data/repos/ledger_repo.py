"""Ledger persistence: database first, local JSON file as fallback.

Nothing here raises on I/O failure. Failures are logged and kept as
PersistenceWarning entries on ``last_warnings`` so the caller can show them.
"""

from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

from bullion.config.decorators import LoggerMixin
from bullion.data.managers.db_manager import DBManager
from bullion.data.managers.json_manager import JSONManager
from bullion.ledger.errors import LedgerError, PersistenceWarning
from bullion.ledger.store import Ledger

from .kv_repo import KeyValueRepository


class LedgerRepository(LoggerMixin):
    """Loads and saves the ledger.

    Args:
        local_file: Path of the local JSON copy
        use_db: Whether to talk to the database at all
        db_manager: Optional DBManager (defaults to the singleton)
    """

    def __init__(
        self,
        local_file: str | Path = "data/ledger.json",
        use_db: bool = True,
        db_manager: DBManager | None = None,
    ):
        """Initialize the repository; the database is connected lazily."""
        super().__init__()
        self.local_file = Path(local_file)
        self.use_db = use_db
        self._db_manager = db_manager
        self._kv_repo: KeyValueRepository | None = None
        self.last_warnings: list[PersistenceWarning] = []
        self.source: str | None = None

    def _warn(self, message: str) -> None:
        self.logger.warning(message)
        self.last_warnings.append(PersistenceWarning(message))

    def _repo(self) -> KeyValueRepository:
        if self._kv_repo is None:
            db_manager = self._db_manager or DBManager()
            db_manager.create_schema()
            self._kv_repo = KeyValueRepository(db_manager)
        return self._kv_repo

    def load(self) -> Ledger:
        """Load from the database, else the local file, else an empty ledger."""
        self.last_warnings = []

        if self.use_db:
            try:
                data = self._repo().read_ledger()
                if data is not None:
                    ledger = Ledger.from_dict(data)
                    self._write_local(ledger)
                    self.source = "db"
                    self.logger.info("Loaded %s from database", ledger)
                    return ledger
                self.logger.info("Database holds no ledger yet")
            except (SQLAlchemyError, LedgerError) as e:
                self._warn(f"Database load failed, switching to local file: {e}")

        try:
            data = JSONManager.read_json(self.local_file)
            if data is not None:
                ledger = Ledger.from_dict(data)
                self.source = "local"
                self.logger.info("Loaded %s from %s", ledger, self.local_file)
                return ledger
        except (OSError, ValueError, LedgerError) as e:
            self._warn(f"Local ledger file {self.local_file} is unreadable: {e}")

        self.source = "empty"
        return Ledger.empty()

    def save(self, ledger: Ledger) -> bool:
        """Write the local file, then the database. Returns True if everything succeeded."""
        self.last_warnings = []
        self._write_local(ledger)

        if self.use_db:
            data = ledger.to_dict()
            try:
                self._repo().write_ledger(data["transactions"], data["lots"])
            except SQLAlchemyError as e:
                self._warn(f"Database save failed: {e}")

        return not self.last_warnings

    def reset(self) -> None:
        """Delete the stored ledger everywhere."""
        self.last_warnings = []
        try:
            self.local_file.unlink(missing_ok=True)
        except OSError as e:
            self._warn(f"Could not remove {self.local_file}: {e}")

        if self.use_db:
            try:
                self._repo().delete_all()
            except SQLAlchemyError as e:
                self._warn(f"Database reset failed: {e}")

    def _write_local(self, ledger: Ledger) -> None:
        try:
            JSONManager.write_json(ledger.to_dict(), self.local_file)
        except OSError as e:
            self._warn(f"Local save to {self.local_file} failed: {e}")
