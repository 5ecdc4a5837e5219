"""Repository for the key/value documents that hold the ledger."""

from typing import Any

from bullion.config.logger import get_logger
from bullion.data.managers.db_manager import DBManager
from bullion.data.orm.key_value import LOTS_KEY, TRANSACTIONS_KEY, KeyValueEntry

from .repository import Repository

logger = get_logger(__name__)


class KeyValueRepository(Repository[KeyValueEntry]):
    """Reads and writes the "transactions" and "lots" documents."""

    def __init__(self, db_manager: DBManager | None = None):
        """Initialize KeyValueRepository with DBManager."""
        super().__init__(KeyValueEntry, db_manager)

    def read_ledger(self) -> dict[str, list[dict[str, Any]]] | None:
        """Return {"transactions": [...], "lots": [...]}, or None if nothing is stored."""
        entries = self.get(key={"in": [TRANSACTIONS_KEY, LOTS_KEY]})
        if not entries:
            return None

        values = {entry.key: entry.value for entry in entries}
        return {
            TRANSACTIONS_KEY: values.get(TRANSACTIONS_KEY) or [],
            LOTS_KEY: values.get(LOTS_KEY) or [],
        }

    def write_ledger(
        self, transactions: list[dict[str, Any]], lots: list[dict[str, Any]]
    ) -> None:
        """Store both documents in one database transaction."""
        self.upsert_many(
            [
                {"key": TRANSACTIONS_KEY, "value": transactions},
                {"key": LOTS_KEY, "value": lots},
            ]
        )
        logger.debug(
            "Stored %d transactions and %d lots", len(transactions), len(lots)
        )
