"""Shared fixtures: transaction factories and an isolated SQLite database."""

from datetime import date, timedelta
import functools

import pytest

from bullion import DBManager, LedgerSettings, Transaction, TransactionKind

START = date(2024, 1, 1)


def day(n: int) -> date:
    """Calendar date of trading day n (day 1 is 2024-01-01)."""
    return START + timedelta(days=n - 1)


def make_txn(kind, txn_id, on, quantity, rate, party=None, **extra) -> Transaction:
    """Build a transaction; ``on`` is a day number or a date."""
    return Transaction(
        id=txn_id,
        kind=kind,
        date=day(on) if isinstance(on, int) else on,
        counterparty_name=party
        or ("Supplier" if kind is TransactionKind.PURCHASE else "Customer"),
        quantity=quantity,
        unit_rate=rate,
        **extra,
    )


@pytest.fixture(name="purchase")
def fixture_purchase():
    """Factory: purchase(id, day, grams, rate)."""
    return functools.partial(make_txn, TransactionKind.PURCHASE)


@pytest.fixture(name="sale")
def fixture_sale():
    """Factory: sale(id, day, grams, rate)."""
    return functools.partial(make_txn, TransactionKind.SALE)


@pytest.fixture(name="memory_settings")
def fixture_memory_settings():
    """Settings with persistence switched off."""
    return LedgerSettings(persistence="none")


@pytest.fixture(name="sqlite_env")
def fixture_sqlite_env(tmp_path, monkeypatch):
    """Point DBManager at a throwaway SQLite file for the duration of a test."""
    db_path = tmp_path / "ledger.db"
    monkeypatch.setenv("DB_DRIVER", "sqlite")
    monkeypatch.setenv("DB_NAME", str(db_path))
    monkeypatch.setenv("DB_ECHO", "false")
    DBManager.reset_instance()
    yield db_path
    DBManager.reset_instance()
