"""JSON files: the local ledger copy and downloadable backups."""

from datetime import datetime, timezone
import json
from pathlib import Path
from typing import Any

from bullion.config.decorators import log_calls
from bullion.config.logger import get_logger
from bullion.ledger.errors import MalformedInputError
from bullion.ledger.store import Ledger

logger = get_logger(__name__)

BACKUP_APP_MARKER = "BullionLedger"


class JSONManager:
    """Manager for reading/writing ledger JSON files."""

    @staticmethod
    def read_json(file_path: str | Path) -> dict[str, Any] | None:
        """Read a JSON object from disk; None if the file does not exist."""
        path = Path(file_path)
        if not path.exists():
            logger.debug("JSON file not found: %s", path)
            return None

        try:
            with path.open(encoding="utf-8") as f:
                data = json.load(f)
        except UnicodeDecodeError as e:
            raise MalformedInputError(f"{path} is not UTF-8 text: {e}") from e
        if not isinstance(data, dict):
            raise MalformedInputError(f"{path} does not hold a JSON object")
        return data

    @staticmethod
    def write_json(data: dict[str, Any], file_path: str | Path) -> None:
        """Write a JSON object, replacing the file atomically."""
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        tmp_path.replace(path)
        logger.debug("Wrote %s", path)

    @staticmethod
    @log_calls(log_result=False)
    def write_backup(ledger: Ledger, file_path: str | Path) -> Path:
        """Write a backup file of the whole ledger."""
        data = {
            "app": BACKUP_APP_MARKER,
            "timestamp": datetime.now(tz=timezone.utc).isoformat(),
            **ledger.to_dict(),
        }
        JSONManager.write_json(data, file_path)
        logger.info(
            "Backup written to %s (%d transactions)",
            file_path,
            len(ledger.transactions),
        )
        return Path(file_path)

    @staticmethod
    @log_calls(log_result=False)
    def read_backup(file_path: str | Path) -> Ledger:
        """Read a backup file.

        Raises:
            FileNotFoundError: if the file does not exist
            MalformedInputError: if the file is not a ledger backup
        """
        try:
            data = JSONManager.read_json(file_path)
        except json.JSONDecodeError as e:
            raise MalformedInputError(f"cannot parse backup {file_path}: {e}") from e
        if data is None:
            raise FileNotFoundError(file_path)

        if not isinstance(data.get("transactions"), list) or not isinstance(
            data.get("lots"), list
        ):
            raise MalformedInputError(
                f"{file_path} is not a ledger backup (transactions/lots missing)"
            )
        if data.get("app") != BACKUP_APP_MARKER:
            logger.warning(
                "Backup %s has app marker %r; importing anyway",
                file_path,
                data.get("app"),
            )

        return Ledger.from_dict(data)
