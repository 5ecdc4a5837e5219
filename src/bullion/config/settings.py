"""Ledger settings loaded from the environment (and a .env file, if present)."""

from dataclasses import dataclass
from datetime import date
import os
from pathlib import Path

from dotenv import load_dotenv

PERSISTENCE_MODES = ("db", "local", "none")


@dataclass
class LedgerSettings:
    """Runtime settings for the costing engine and the ledger service."""

    epsilon: float = 1e-4
    lock_date: date | None = None
    local_file: Path = Path("data/ledger.json")
    persistence: str = "db"
    aging_threshold_days: int = 30
    low_margin: float = 0.005

    @classmethod
    def from_env(cls) -> "LedgerSettings":
        """Build settings from LEDGER_* environment variables."""
        load_dotenv()

        lock_date = os.getenv("LEDGER_LOCK_DATE", "").strip()
        persistence = os.getenv("LEDGER_PERSISTENCE", "db").lower()
        if persistence not in PERSISTENCE_MODES:
            raise ValueError(
                f"Unknown LEDGER_PERSISTENCE: {persistence}. "
                f"Available modes: {list(PERSISTENCE_MODES)}"
            )

        return cls(
            epsilon=float(os.getenv("LEDGER_EPSILON", "1e-4")),
            lock_date=date.fromisoformat(lock_date) if lock_date else None,
            local_file=Path(os.getenv("LEDGER_LOCAL_FILE", "data/ledger.json")),
            persistence=persistence,
            aging_threshold_days=int(os.getenv("LEDGER_AGING_THRESHOLD_DAYS", "30")),
            low_margin=float(os.getenv("LEDGER_LOW_MARGIN", "0.005")),
        )
