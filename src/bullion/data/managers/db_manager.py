"""Engine, sessions and schema for the ledger's key/value database.

Connection settings come from DB_* environment variables (a .env file is
honoured). SQLite is the default; set DB_DRIVER=postgresql+psycopg2 and the
host/user variables to use a server database instead.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
import os
import threading

from dotenv import load_dotenv
from sqlalchemy import Engine, create_engine, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from bullion.config.decorators import log_calls, log_performance
from bullion.config.logger import get_logger
from bullion.data.orm.base import Base

logger = get_logger(__name__)


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class DBConfig:
    """Connection and pool settings."""

    driver: str = "sqlite"
    database: str = "bullion.db"
    host: str = "localhost"
    port: str = "5432"
    username: str = "bullion"
    password: str = field(default="bullion", repr=False)
    echo: bool = False
    pool: dict = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> "DBConfig":
        load_dotenv()
        return cls(
            driver=os.getenv("DB_DRIVER", "sqlite"),
            database=os.getenv("DB_NAME", "bullion.db"),
            host=os.getenv("DB_HOST", "localhost"),
            port=os.getenv("DB_PORT", "5432"),
            username=os.getenv("DB_USER", "bullion"),
            password=os.getenv("DB_PASSWORD", "bullion"),
            echo=_flag("DB_ECHO", "false"),
            pool={
                "pool_size": int(os.getenv("DB_POOL_SIZE", "5")),
                "max_overflow": int(os.getenv("DB_POOL_MAX_OVERFLOW", "10")),
                "pool_timeout": int(os.getenv("DB_POOL_TIMEOUT", "30")),
                "pool_recycle": int(os.getenv("DB_POOL_RECYCLE", "3600")),
                "pool_pre_ping": _flag("DB_POOL_PRE_PING", "true"),
            },
        )

    @property
    def is_sqlite(self) -> bool:
        return self.driver.startswith("sqlite")

    @property
    def url(self) -> str:
        """SQLAlchemy URL for the configured driver."""
        if self.is_sqlite:
            return f"{self.driver}:///{self.database}"
        if self.driver.startswith("postgresql"):
            return (
                f"{self.driver}://{self.username}:{self.password}"
                f"@{self.host}:{self.port}/{self.database}"
            )
        raise ValueError(f"Unsupported DB_DRIVER: {self.driver}")

    def engine_kwargs(self) -> dict:
        # SQLite keeps SQLAlchemy's own pool defaults
        kwargs = {"echo": self.echo}
        if not self.is_sqlite:
            kwargs.update(self.pool)
        return kwargs


class DBManager:
    """Process-wide owner of the engine and session factory.

    DBManager() always returns the same instance until reset_instance() is
    called, which is how tests and scripts switch databases.
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        with cls._lock:
            if cls._instance is None:
                instance = super().__new__(cls)
                instance._ready = False
                cls._instance = instance
        return cls._instance

    def __init__(self):
        if self._ready:
            return

        self.config = DBConfig.from_env()
        try:
            self._engine = create_engine(self.config.url, **self.config.engine_kwargs())
        except SQLAlchemyError as e:
            logger.error("Could not create engine for %s: %s", self.config.database, e)
            raise
        self._sessions = sessionmaker(bind=self._engine, expire_on_commit=False)

        @event.listens_for(self._engine, "connect")
        def _on_connect(_dbapi_connection, _connection_record):
            logger.debug("Opened connection to %s", self.config.database)

        logger.info("Database engine ready: %s (%s)", self.config.database, self.config.driver)
        self._ready = True

    @property
    def is_sqlite(self) -> bool:
        """True when the configured driver is SQLite."""
        return self.config.is_sqlite

    @property
    def engine(self) -> Engine:
        """The SQLAlchemy engine."""
        return self._engine

    @contextmanager
    def get_session(self, readonly: bool = False):
        """Session scope: commit on success (rollback when readonly), rollback on error."""
        session: Session = self._sessions()
        try:
            yield session
        except Exception as e:
            session.rollback()
            logger.error("Rolled back session: %r", e)
            raise
        else:
            if readonly:
                session.rollback()
            else:
                session.commit()
        finally:
            session.close()

    @log_performance()
    def create_schema(self):
        """Create every table known to the ORM (existing tables are kept)."""
        Base.metadata.create_all(self._engine)
        logger.info("Schema ready on %s", self.config.database)

    @log_performance()
    def drop_schema(self):
        """Drop every table known to the ORM."""
        Base.metadata.drop_all(self._engine, checkfirst=True)
        logger.info("Schema dropped on %s", self.config.database)

    @log_calls()
    def ping(self) -> bool:
        """True if the database answers SELECT 1."""
        try:
            with self._engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.warning("Database ping failed: %s", e)
            return False
        return True

    def close(self):
        """Dispose the engine's connection pool."""
        self._engine.dispose()
        logger.info("Database engine disposed")

    @classmethod
    def reset_instance(cls):
        """Dispose and forget the singleton so the next DBManager() rereads DB_*."""
        with cls._lock:
            if cls._instance is not None and cls._instance._ready:
                cls._instance.close()
            cls._instance = None
