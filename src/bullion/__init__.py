"""Bullion Ledger - FIFO costing and analytics for a precious-metal trading desk."""

__version__ = "0.1.0"
__description__ = "FIFO inventory costing, profit and stock analytics for bullion trading"

# Analytics - read-only views over a ledger snapshot
from .analytics.alerts import RiskAlert, risk_alerts
from .analytics.analyzer import LedgerAnalyzer
from .analytics.frames import filter_transactions
from .analytics.inventory import InventoryAnalytics
from .analytics.sales import SalesAnalytics

# Configuration - logging and settings
from .config.decorators import (
    LoggerMixin,
    audit_log,
    log_calls,
    log_database_operations,
    log_dataframe_operations,
    log_performance,
)
from .config.logger import (
    LogFileConfig,
    cleanup_logs,
    get_log_stats,
    get_logger,
    setup_logging,
)
from .config.settings import LedgerSettings

# Data - persistence, import and export
from .data.managers.csv_manager import CSVManager
from .data.managers.db_manager import DBManager
from .data.managers.json_manager import JSONManager
from .data.orm.base import Base
from .data.orm.key_value import KeyValueEntry
from .data.repos.kv_repo import KeyValueRepository
from .data.repos.ledger_repo import LedgerRepository
from .data.repos.repository import Repository
from .data.transfers import transactions_from_records

# Engine - FIFO costing
from .engine.fifo import (
    EPSILON,
    FIFO,
    apply_transaction,
    delete_transactions,
    recompute,
)
from .engine.result import EngineResult

# Ledger - value types, store and errors
from .ledger.errors import (
    DataIntegrityWarning,
    InsufficientStockError,
    LedgerError,
    MalformedInputError,
    PeriodLockedError,
    PersistenceWarning,
)
from .ledger.models import Lot, Transaction, TransactionKind
from .ledger.store import Ledger, LedgerStore

# Services - higher-level operations
from .services.ledger_service import LedgerService
from .services.service import Service

__all__ = [
    "EPSILON",
    "FIFO",
    "Base",
    "CSVManager",
    "DBManager",
    "DataIntegrityWarning",
    "EngineResult",
    "InsufficientStockError",
    "InventoryAnalytics",
    "JSONManager",
    "KeyValueEntry",
    "KeyValueRepository",
    "Ledger",
    "LedgerAnalyzer",
    "LedgerError",
    "LedgerRepository",
    "LedgerService",
    "LedgerSettings",
    "LedgerStore",
    "LogFileConfig",
    "LoggerMixin",
    "Lot",
    "MalformedInputError",
    "PeriodLockedError",
    "PersistenceWarning",
    "Repository",
    "RiskAlert",
    "SalesAnalytics",
    "Service",
    "Transaction",
    "TransactionKind",
    "apply_transaction",
    "audit_log",
    "cleanup_logs",
    "delete_transactions",
    "filter_transactions",
    "get_log_stats",
    "get_logger",
    "log_calls",
    "log_database_operations",
    "log_dataframe_operations",
    "log_performance",
    "recompute",
    "risk_alerts",
    "setup_logging",
    "transactions_from_records",
]
