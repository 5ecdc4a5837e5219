"""Tests for LedgerService: locking, audit, persistence isolation, backup and import."""

from datetime import datetime
import json
import logging
import threading

import pytest

from bullion import (
    InsufficientStockError,
    JSONManager,
    Ledger,
    LedgerRepository,
    LedgerService,
    LedgerSettings,
    MalformedInputError,
    PeriodLockedError,
    PersistenceWarning,
    recompute,
)
from conftest import day


class BrokenRepository(LedgerRepository):
    """Repository whose saves always blow up."""

    def save(self, ledger):
        raise OSError("disk full")


@pytest.fixture(name="service")
def fixture_service(memory_settings):
    """Service with no persistence."""
    return LedgerService(settings=memory_settings, operator="alice")


@pytest.fixture(name="local_service")
def fixture_local_service(tmp_path):
    """Service persisting to a local JSON file only."""
    settings = LedgerSettings(persistence="local", local_file=tmp_path / "ledger.json")
    return LedgerService(settings=settings, operator="alice")


@pytest.fixture(name="stocked")
def fixture_stocked(service, purchase, sale):
    """Two purchases and one sale."""
    for txn in (
        purchase("p1", 1, 10, 100),
        purchase("p2", 2, 10, 200),
        sale("s1", 3, 15, 300),
    ):
        service.add_transaction(txn).unwrap()
    return service


class TestAddTransaction:
    """Recording purchases and sales."""

    def test_add_commits(self, stocked):
        ledger = stocked.snapshot()

        assert [t.id for t in ledger.transactions] == ["s1", "p2", "p1"]
        assert ledger.get("s1").profit == pytest.approx(2500)

    def test_rejected_sale_leaves_store(self, stocked, sale):
        before = stocked.snapshot()

        result = stocked.add_transaction(sale("s2", 4, 50, 300))

        assert isinstance(result.error, InsufficientStockError)
        assert stocked.snapshot() is before

    def test_record_builds_transaction(self, service):
        result = service.record(
            type="purchase", date="2024-01-05", party="Mint", qty="12.5", rate=101
        )

        assert result.ok
        (txn,) = service.snapshot().transactions
        assert txn.quantity == 12.5
        assert txn.counterparty_name == "Mint"
        assert txn.id

    def test_record_keeps_day_granularity(self, service):
        service.record(id="p1", kind="PURCHASE", date="2024-01-01", party="Mint", qty=10, rate=100)

        result = service.record(
            id="s1", kind="SALE", date=datetime(2024, 1, 2, 10, 30), party="Bob", qty=4, rate=120
        )

        assert result.ok
        assert service.snapshot().get("s1").date == day(2)

    def test_datetime_rejected_before_lock_check(self, stocked, purchase):
        stocked.set_lock_date(day(2))

        result = stocked.add_transaction(purchase("p9", datetime(2024, 1, 5, 9), 1, 100))

        assert isinstance(result.error, MalformedInputError)

    def test_record_rejects_garbage(self, service):
        result = service.record(type="gift", date="2024-01-05", qty=1, rate=1)

        assert isinstance(result.error, MalformedInputError)
        assert service.snapshot() == Ledger.empty()


class TestPeriodLock:
    """History before the lock date cannot change."""

    def test_add_before_lock_rejected(self, stocked, purchase):
        stocked.set_lock_date(day(3))
        before = stocked.snapshot()

        result = stocked.add_transaction(purchase("p0", 2, 5, 90))

        assert isinstance(result.error, PeriodLockedError)
        assert result.error.lock_date == day(3)
        assert stocked.snapshot() is before

    def test_add_on_lock_date_allowed(self, stocked, purchase):
        stocked.set_lock_date(day(3))

        assert stocked.add_transaction(purchase("p3", 3, 5, 90)).ok

    def test_delete_before_lock_rejected(self, stocked):
        stocked.set_lock_date(day(2))

        result = stocked.delete_transactions(["p1"])

        assert isinstance(result.error, PeriodLockedError)
        assert stocked.snapshot().get("p1") is not None

    def test_unlock(self, stocked):
        stocked.set_lock_date(day(2))
        stocked.set_lock_date(None)

        assert stocked.delete_transactions(["p1"]).ok

    def test_lock_change_waits_for_writer(self, stocked):
        changer = threading.Thread(target=stocked.set_lock_date, args=(day(2),))

        with stocked.store.writer():
            changer.start()
            changer.join(timeout=0.2)
            assert changer.is_alive()
            assert stocked.lock_date is None

        changer.join(timeout=5)
        assert stocked.lock_date == day(2)

    def test_lock_from_settings(self, purchase):
        settings = LedgerSettings(persistence="none", lock_date=day(5))
        service = LedgerService(settings=settings)

        result = service.add_transaction(purchase("p1", 1, 1, 1))

        assert isinstance(result.error, PeriodLockedError)


class TestDelete:
    """Deleting through the service."""

    def test_delete_recomputes(self, stocked):
        result = stocked.delete_transactions(["p1"])

        assert result.recomputed
        assert stocked.snapshot().lot("p1") is None
        assert stocked.last_warnings
        assert stocked.last_warnings[0].transaction_id == "s1"

    def test_delete_is_audited(self, stocked, caplog):
        caplog.set_level(logging.INFO, logger="bullion.audit")

        stocked.delete_transactions(["s1"])

        messages = [r.getMessage() for r in caplog.records if r.name == "bullion.audit"]
        assert any("ACTION=DELETE_TRANSACTIONS" in m and "USER=alice" in m for m in messages)


class TestPersistence:
    """Saving happens after commit and never undoes it."""

    def test_save_failure_keeps_commit(self, tmp_path, memory_settings, purchase):
        repo = BrokenRepository(local_file=tmp_path / "ledger.json", use_db=False)
        service = LedgerService(settings=memory_settings, repository=repo)

        result = service.add_transaction(purchase("p1", 1, 10, 100))

        assert result.ok
        assert service.snapshot().get("p1") is not None
        assert any(isinstance(w, PersistenceWarning) for w in service.last_warnings)

    def test_saves_local_file(self, local_service, purchase):
        local_service.add_transaction(purchase("p1", 1, 10, 100))

        data = json.loads(local_service.settings.local_file.read_text())
        assert [t["id"] for t in data["transactions"]] == ["p1"]

    def test_load_rebuilds_lots(self, local_service, purchase, sale):
        local_service.add_transaction(purchase("p1", 1, 10, 100))
        local_service.add_transaction(sale("s1", 2, 4, 150))
        path = local_service.settings.local_file
        data = json.loads(path.read_text())
        data["lots"][0]["remaining_quantity"] = 999
        path.write_text(json.dumps(data))

        reloaded = LedgerService(settings=local_service.settings)
        result = reloaded.load()

        assert result.ok
        assert reloaded.snapshot().lot("p1").remaining_quantity == pytest.approx(6)
        assert reloaded.repository.source == "local"

    def test_load_survives_undecodable_file(self, local_service):
        local_service.settings.local_file.write_bytes(b'{"transactions": ["\xff"]}')

        result = local_service.load()

        assert result.ok
        assert local_service.snapshot() == Ledger.empty()
        assert any(isinstance(w, PersistenceWarning) for w in local_service.last_warnings)

    def test_load_without_storage(self, service):
        assert service.load().ledger == Ledger.empty()


class TestBackupRestore:
    """JSON backups and full restores."""

    def test_backup_then_restore(self, stocked, tmp_path):
        path = stocked.backup(tmp_path / "backup.json")
        original = stocked.snapshot()
        stocked.reset()
        assert stocked.snapshot() == Ledger.empty()

        result = stocked.restore(path)

        assert result.ok
        assert result.recomputed
        assert stocked.snapshot() == recompute(original.chronological()).ledger

    def test_restore_ignores_stored_lots(self, stocked, tmp_path):
        path = stocked.backup(tmp_path / "backup.json")
        data = json.loads(path.read_text())
        data["lots"] = []
        path.write_text(json.dumps(data))

        stocked.restore(path)

        assert len(stocked.snapshot().lots) == 2

    def test_restore_malformed(self, stocked, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"app": "BullionLedger", "transactions": "x"}))
        before = stocked.snapshot()

        result = stocked.restore(path)

        assert isinstance(result.error, MalformedInputError)
        assert stocked.snapshot() is before

    def test_restore_not_utf8(self, stocked, tmp_path):
        path = tmp_path / "backup.json"
        path.write_bytes(b'{"transactions": ["\xff\xfe"], "lots": []}')
        before = stocked.snapshot()

        result = stocked.restore(path)

        assert isinstance(result.error, MalformedInputError)
        assert stocked.snapshot() is before

    def test_restore_duplicate_ids(self, stocked, tmp_path):
        path = stocked.backup(tmp_path / "backup.json")
        data = json.loads(path.read_text())
        data["transactions"].append(data["transactions"][0])
        path.write_text(json.dumps(data))

        assert isinstance(stocked.restore(path).error, MalformedInputError)

    def test_restore_missing_file(self, stocked, tmp_path):
        with pytest.raises(FileNotFoundError):
            stocked.restore(tmp_path / "nope.json")

    def test_reset_clears_local_file(self, local_service, purchase):
        local_service.add_transaction(purchase("p1", 1, 10, 100))
        assert local_service.settings.local_file.exists()

        local_service.reset()

        assert not local_service.settings.local_file.exists()
        assert local_service.snapshot() == Ledger.empty()

    def test_backup_marker(self, stocked, tmp_path):
        path = stocked.backup(tmp_path / "backup.json")

        assert json.loads(path.read_text())["app"] == "BullionLedger"
        assert JSONManager.read_backup(path).get("s1") is not None


class TestCsv:
    """Import and export."""

    def test_import_merges_and_recomputes(self, stocked, tmp_path):
        path = tmp_path / "import.csv"
        path.write_text(
            "id,type,date,party,qty,rate\n"
            "p0,PURCHASE,2023-12-31,Mint,5,50\n"
            "s9,SALE,2024-01-04,Bob,2,320\n"
        )

        result = stocked.import_csv(path)

        assert result.ok
        assert result.recomputed
        ledger = stocked.snapshot()
        assert [lot.id for lot in ledger.lots] == ["p0", "p1", "p2"]
        # s1 now draws 5 g from p0 and 10 g from p1
        assert ledger.get("s1").cost_of_goods_sold == pytest.approx(1250)

    def test_import_rejects_duplicate(self, stocked, tmp_path):
        path = tmp_path / "import.csv"
        path.write_text("id,type,date,party,qty,rate\np1,PURCHASE,2024-01-09,Mint,5,50\n")
        before = stocked.snapshot()

        result = stocked.import_csv(path)

        assert isinstance(result.error, MalformedInputError)
        assert stocked.snapshot() is before

    def test_import_respects_lock(self, stocked, tmp_path):
        stocked.set_lock_date(day(2))
        path = tmp_path / "import.csv"
        path.write_text("id,type,date,party,qty,rate\np0,PURCHASE,2024-01-01,Mint,5,50\n")

        assert isinstance(stocked.import_csv(path).error, PeriodLockedError)

    def test_import_missing_file(self, stocked, tmp_path):
        before = stocked.snapshot()

        with pytest.raises(FileNotFoundError):
            stocked.import_csv(tmp_path / "nope.csv")

        assert stocked.snapshot() is before

    def test_import_undecodable_file(self, stocked, tmp_path):
        path = tmp_path / "import.csv"
        path.write_bytes(b"id,type,date,party,qty,rate\np0,PURCHASE,2024-01-01,M\xff\xfe,5,50\n")
        before = stocked.snapshot()

        result = stocked.import_csv(path)

        assert isinstance(result.error, MalformedInputError)
        assert stocked.snapshot() is before

    def test_export(self, stocked, tmp_path):
        stocked.export_csv(tmp_path / "tx.csv", tmp_path / "lots.csv")

        lines = (tmp_path / "tx.csv").read_text().splitlines()
        assert lines[0].startswith("Date,Type,Party")
        assert len(lines) == 4
        assert len((tmp_path / "lots.csv").read_text().splitlines()) == 3


def test_alerts_and_analyzer(stocked):
    summary = stocked.analyzer(as_of=day(60)).get_summary()

    assert summary["inventory"]["current_stock"] == pytest.approx(5)
    assert [a.id for a in stocked.alerts(as_of=day(60))] == ["old-stock"]
