"""Logging setup for the bullion ledger.

Call setup_logging() once at startup and get_logger(__name__) everywhere
else. Log files, rotation and cleanup are driven by LOG_* environment
variables (a .env file is honoured).
"""

from collections import defaultdict, deque
from datetime import datetime, timezone
import logging
import logging.handlers
import os
from pathlib import Path
import time

from dotenv import load_dotenv

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"
)

_SIZE_UNITS = {"KB": 1024, "MB": 1024**2, "GB": 1024**3}


class LogFileConfig:
    """Where log files go, how they rotate and when they are cleaned up."""

    def __init__(self):
        """Read LOG_* environment variables."""
        load_dotenv()

        self.log_dir = Path(os.getenv("LOG_DIR", "logs"))
        self.base_filename = os.getenv("LOG_BASE_FILENAME", "bullion")
        self.file_pattern = os.getenv("LOG_FILE_PATTERN", "{base}.log")

        self.rotation_type = os.getenv("LOG_ROTATION_TYPE", "size").lower()
        self.rotation_interval = os.getenv("LOG_ROTATION_INTERVAL", "daily").lower()
        self.max_file_size = self._parse_size(os.getenv("LOG_MAX_FILE_SIZE", "10MB"))
        self.backup_count = int(os.getenv("LOG_BACKUP_COUNT", "5"))

        self.auto_cleanup_days = int(os.getenv("LOG_AUTO_CLEANUP_DAYS", "30"))
        self.archive_old_logs = os.getenv("LOG_ARCHIVE_OLD_LOGS", "false").lower() == "true"
        self.archive_dir = Path(
            os.getenv("LOG_ARCHIVE_DIR", str(self.log_dir / "archive"))
        )

    @staticmethod
    def _parse_size(size_str: str) -> int:
        """'10MB' -> bytes; a bare number is already bytes."""
        size_str = size_str.strip().upper()
        for unit, factor in _SIZE_UNITS.items():
            if size_str.endswith(unit):
                return int(size_str[: -len(unit)]) * factor
        return int(size_str)

    def get_log_file_path(self) -> Path:
        """Path of the active log file ({date} in the pattern is today's UTC date)."""
        today = datetime.now(tz=timezone.utc).strftime("%Y-%m-%d")
        return self.log_dir / self.file_pattern.format(base=self.base_filename, date=today)


class RateLimitFilter(logging.Filter):
    """In production, pass at most ``max_rate`` records per function and level per window."""

    def __init__(self, max_rate: int = 10, window_seconds: int = 60):
        """Initialize the filter."""
        super().__init__()
        self.max_rate = max_rate
        self.window_seconds = window_seconds
        self._recent: dict[str, deque[float]] = defaultdict(deque)

    def filter(self, record):
        """Return True if the record should be emitted."""
        if os.getenv("ENVIRONMENT", "development").lower() != "production":
            return True

        now = time.monotonic()
        recent = self._recent[f"{record.funcName}:{record.levelname}"]
        while recent and recent[0] <= now - self.window_seconds:
            recent.popleft()
        if len(recent) >= self.max_rate:
            return False
        recent.append(now)
        return True


class LogFileManager:
    """Creates the rotating file handler and prunes old log files."""

    def __init__(self, config: LogFileConfig):
        """Initialize with a LogFileConfig instance."""
        self.config = config

    def create_file_handler(self) -> logging.Handler:
        """Size- or time-rotating handler on the configured log file."""
        config = self.config
        config.log_dir.mkdir(parents=True, exist_ok=True)
        path = config.get_log_file_path()

        if config.rotation_type == "time":
            return logging.handlers.TimedRotatingFileHandler(
                path,
                when="W0" if config.rotation_interval == "weekly" else "midnight",
                backupCount=config.backup_count,
            )
        return logging.handlers.RotatingFileHandler(
            path, maxBytes=config.max_file_size, backupCount=config.backup_count
        )

    def cleanup_old_logs(self) -> int:
        """Delete, or archive, log files older than auto_cleanup_days.

        Archived files get a fresh timestamp so they live another full period.
        Returns the number of files handled.
        """
        config = self.config
        if config.auto_cleanup_days <= 0:
            return 0

        cutoff = time.time() - config.auto_cleanup_days * 24 * 3600
        handled = 0
        for directory in (config.archive_dir, config.log_dir):
            if not directory.exists():
                continue
            for log_file in directory.glob("*.log*"):
                try:
                    if log_file.stat().st_mtime >= cutoff:
                        continue
                    if config.archive_old_logs and directory == config.log_dir:
                        config.archive_dir.mkdir(parents=True, exist_ok=True)
                        archived = log_file.rename(config.archive_dir / log_file.name)
                        archived.touch()
                    else:
                        log_file.unlink()
                    handled += 1
                except OSError:
                    continue
        return handled


def _console_level(environment: str) -> int:
    requested = logging.getLevelName(os.getenv("LOG_LEVEL", "").upper())
    if isinstance(requested, int):
        return requested
    return logging.INFO if environment == "production" else logging.DEBUG


def setup_logging(config: LogFileConfig = None):
    """Configure the root logger: console plus rotating file.

    The file always receives DEBUG; the console level comes from LOG_LEVEL,
    else INFO in production and DEBUG elsewhere.
    """
    load_dotenv()
    config = config or LogFileConfig()
    environment = os.getenv("ENVIRONMENT", "development").lower()
    level = _console_level(environment)

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))

    manager = LogFileManager(config)
    file_handler = manager.create_file_handler()
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    if environment == "production":
        console.addFilter(RateLimitFilter(max_rate=5))
        file_handler.addFilter(RateLimitFilter(max_rate=20))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG)
    root.addHandler(file_handler)
    root.addHandler(console)
    logging.getLogger("sqlalchemy.engine").setLevel(
        os.getenv("LOG_THIRD_PARTY_LEVEL", "WARNING").upper()
    )

    cleaned = manager.cleanup_old_logs()
    get_logger("config").info(
        "Logging ready: environment=%s console=%s file=%s (%d old files cleaned)",
        environment,
        logging.getLevelName(level),
        config.get_log_file_path(),
        cleaned,
    )


def get_logger(name: str | None = None) -> logging.Logger:
    """Logger under the ``bullion`` hierarchy.

    Example:
        logger = get_logger(__name__)
        logger.info("Sale recorded")
    """
    name = str(name or "bullion")
    if name != "bullion" and not name.startswith("bullion."):
        name = f"bullion.{name}"
    return logging.getLogger(name)


def cleanup_logs(config: LogFileConfig = None) -> int:
    """Run log cleanup now; returns the number of files handled."""
    cleaned = LogFileManager(config or LogFileConfig()).cleanup_old_logs()
    get_logger("config").info("Manual log cleanup handled %d files", cleaned)
    return cleaned


def get_log_stats(config: LogFileConfig = None) -> dict:
    """Log directory, file count, total size (MB) and per-file details."""
    config = config or LogFileConfig()
    files = []
    total_bytes = 0

    if config.log_dir.exists():
        for log_file in sorted(config.log_dir.glob("*.log*")):
            try:
                stat = log_file.stat()
            except OSError:
                continue
            total_bytes += stat.st_size
            files.append(
                {
                    "name": log_file.name,
                    "size_mb": round(stat.st_size / 1024**2, 2),
                    "modified": datetime.fromtimestamp(
                        stat.st_mtime, tz=timezone.utc
                    ).isoformat(),
                }
            )

    return {
        "log_dir": str(config.log_dir),
        "total_files": len(files),
        "total_size_mb": round(total_bytes / 1024**2, 2),
        "files": files,
    }
