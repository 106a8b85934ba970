"""
Tests for the ledger service.

Validates that every transaction updates its client's balance atomically and
that failed writes leave the ledger untouched.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from database import make_engine
from errors import ClientNotFoundError, NotFoundError, StorageFault, ValidationError
from ledger import LOCK_STRIPES, LedgerService
from models import Client, Transaction
from query import AllOf
from storage import InMemoryStorage, SQLStorage


class FailingStorage(InMemoryStorage):
    """Almacenamiento que falla al escribir transacciones."""

    def save_transaction(self, transaction):
        raise StorageFault("Storage unavailable")


class TestClients:

    def test_add_and_list_clients(self, storage):
        ledger = LedgerService(storage)
        acme = ledger.add_client("Acme")
        ledger.add_client("Globex")

        names = [c.name for c in ledger.list_clients()]
        assert names == ["Acme", "Globex"]
        assert ledger.get_client(acme.id).balance == 0.0

    def test_get_missing_client(self, storage):
        assert LedgerService(storage).get_client(404) is None

    def test_client_name_required(self, storage):
        with pytest.raises(ValidationError):
            LedgerService(storage).add_client("  ")


class TestRecordTransaction:

    def test_balance_is_sum_of_amounts(self, storage, clock):
        ledger = LedgerService(storage, clock=clock)
        client = ledger.add_client("Acme")

        for amount in (100, -40, 12.5, -0.5):
            ledger.record_transaction(client.id, amount)

        assert ledger.get_client(client.id).balance == pytest.approx(72.0)

    def test_balance_respects_initial_balance(self, storage):
        client = storage.add_client(Client(name="Opening", balance=50.0))
        ledger = LedgerService(storage)

        ledger.record_transaction(client.id, 25)
        ledger.record_transaction(client.id, -10)

        assert ledger.get_client(client.id).balance == pytest.approx(65.0)

    def test_transaction_gets_server_timestamp(self, storage, clock):
        ledger = LedgerService(storage, clock=clock)
        client = ledger.add_client("Acme")

        txn = ledger.record_transaction(client.id, 10)

        assert txn.id is not None
        assert txn.client_id == client.id
        assert txn.amount == 10.0
        assert txn.created_at == datetime(2024, 3, 5, 14, 30)

    def test_timestamps_round_trip_through_sqlite_file(self, tmp_path):
        storage = SQLStorage(make_engine(f"sqlite:///{tmp_path / 'ledger.db'}"))
        paris = timezone(timedelta(hours=1))
        ledger = LedgerService(storage, clock=lambda: datetime(2024, 3, 5, 15, 30, tzinfo=paris))
        client = ledger.add_client("Acme")

        txn = ledger.record_transaction(client.id, 3)

        assert txn.created_at == datetime(2024, 3, 5, 14, 30)
        assert [t.created_at for t in storage.find_transactions(AllOf())] == [datetime(2024, 3, 5, 14, 30)]
        assert ledger.get_client(client.id).balance == 3.0
        storage.close()

    def test_unknown_client_leaves_ledger_unchanged(self, storage):
        ledger = LedgerService(storage)
        client = ledger.add_client("Acme")
        ledger.record_transaction(client.id, 5)

        with pytest.raises(ClientNotFoundError) as excinfo:
            ledger.record_transaction(999, 10)

        assert isinstance(excinfo.value, NotFoundError)
        assert len(storage.find_transactions(AllOf())) == 1
        assert ledger.get_client(client.id).balance == 5.0

    @pytest.mark.parametrize("amount", ["10", None, True, float("nan"), float("inf")])
    def test_invalid_amount(self, storage, amount):
        ledger = LedgerService(storage)
        client = ledger.add_client("Acme")

        with pytest.raises(ValidationError):
            ledger.record_transaction(client.id, amount)
        assert storage.find_transactions(AllOf()) == []

    def test_storage_failure_applies_nothing(self):
        storage = FailingStorage()
        ledger = LedgerService(storage)
        client = ledger.add_client("Acme")

        with pytest.raises(StorageFault):
            ledger.record_transaction(client.id, 10)

        assert storage.find_transactions(AllOf()) == []
        assert ledger.get_client(client.id).balance == 0.0

    def test_save_for_missing_client_inserts_nothing(self, storage, clock):
        txn = Transaction(client_id=42, amount=5.0, created_at=clock())

        with pytest.raises(ClientNotFoundError):
            storage.save_transaction(txn)
        assert storage.find_transactions(AllOf()) == []


class TestConcurrency:

    def test_two_concurrent_writes_same_client(self, shared_storage):
        ledger = LedgerService(shared_storage)
        client = ledger.add_client("Acme")

        with ThreadPoolExecutor(max_workers=2) as pool:
            list(pool.map(lambda a: ledger.record_transaction(client.id, a), [100, -40]))

        assert ledger.get_client(client.id).balance == 60.0

    def test_no_lost_updates_under_contention(self, shared_storage):
        ledger = LedgerService(shared_storage)
        first = ledger.add_client("Acme")
        second = ledger.add_client("Globex")
        jobs = [(first.id, 3)] * 80 + [(second.id, -2)] * 80 + [(first.id, -1)] * 40

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda job: ledger.record_transaction(*job), jobs))

        assert ledger.get_client(first.id).balance == 200.0
        assert ledger.get_client(second.id).balance == -160.0
        assert len(shared_storage.find_transactions(AllOf())) == 200
        assert ledger.reconcile() == []

    def test_storage_adds_amount_to_current_balance(self, shared_storage, clock):
        # El monto se suma al balance vigente en el almacenamiento.
        client = shared_storage.add_client(Client(name="Acme", balance=10.0))
        shared_storage.save_transaction(Transaction(client_id=client.id, amount=5.0, created_at=clock()))
        shared_storage.save_transaction(Transaction(client_id=client.id, amount=-2.0, created_at=clock()))

        assert shared_storage.get_client(client.id).balance == 13.0

    def test_unknown_client_ids_do_not_grow_locks(self, memory_storage):
        ledger = LedgerService(memory_storage)

        for client_id in range(1000, 3000):
            with pytest.raises(ClientNotFoundError):
                ledger.record_transaction(client_id, 1)

        assert len(ledger._locks) == LOCK_STRIPES


class TestReconcile:

    def test_consistent_ledger(self, storage):
        ledger = LedgerService(storage)
        client = ledger.add_client("Acme")
        ledger.record_transaction(client.id, 10)
        ledger.record_transaction(client.id, 0.1)
        ledger.record_transaction(client.id, 0.2)

        assert ledger.reconcile() == []

    def test_reports_drift(self, storage):
        drifted = storage.add_client(Client(name="Drift", balance=20.0))
        ledger = LedgerService(storage)
        ledger.record_transaction(drifted.id, 5)

        mismatches = ledger.reconcile()

        assert len(mismatches) == 1
        assert mismatches[0]["client_id"] == drifted.id
        assert mismatches[0]["balance"] == 25.0
        assert mismatches[0]["expected"] == 5.0
        assert mismatches[0]["difference"] == 20.0
