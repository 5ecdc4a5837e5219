"""Service layer for higher-level operations."""

from bullion.config.logger import get_logger
from bullion.config.settings import LedgerSettings
from bullion.data.repos.ledger_repo import LedgerRepository

logger = get_logger(__name__)


class Service:
    """Base class for services."""

    def __init__(
        self,
        settings: LedgerSettings | None = None,
        repository: LedgerRepository | None = None,
    ):
        """Initialize the service.

        Without an explicit repository one is built from
        ``settings.persistence``; mode "none" keeps the ledger in memory only.
        """
        self.settings = settings or LedgerSettings.from_env()
        self.repository = (
            repository if repository is not None else self._build_repository()
        )

    def _build_repository(self) -> LedgerRepository | None:
        mode = self.settings.persistence
        if mode == "none":
            logger.info("Persistence disabled; ledger lives in memory only")
            return None
        return LedgerRepository(
            local_file=self.settings.local_file, use_db=mode == "db"
        )
