import threading
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import httpx
import pytest
from postgrest.exceptions import APIError

from receipt_fixtures import FakeSupabase
from server.core.config.general_config import Settings
from server.core.service.receipt_verification.exceptions import StoreError
from server.core.service.receipt_verification.redemption_ledger import (
    InMemoryRedemptionLedger,
    SupabaseRedemptionLedger,
    build_ledger,
)
from server.core.service.supabase_connectors.supabase_client import RECEIPT_TABLE_NAME


def race(ledger, uid: str, transaction_id: str, writers: int = 100) -> list:
    """Fire ``writers`` compare_and_set calls at once and collect their results."""
    barrier = threading.Barrier(writers)

    def attempt(_):
        barrier.wait()
        return ledger.compare_and_set(uid, transaction_id)

    with ThreadPoolExecutor(max_workers=writers) as pool:
        return list(pool.map(attempt, range(writers)))


class LedgerContract:
    """Behaviour every ledger backend shares. Subclasses provide the ``store`` fixture."""

    def test_absent_user(self, store):
        assert store.get("user-1") is None

    def test_first_redemption_is_recorded(self, store):
        assert store.compare_and_set("user-1", "1000") is True
        entry = store.get("user-1")
        assert entry.uid == "user-1"
        assert entry.transaction_id == "1000"

    def test_same_transaction_is_rejected(self, store):
        assert store.compare_and_set("user-1", "1000") is True
        assert store.compare_and_set("user-1", "1000") is False
        assert store.get("user-1").transaction_id == "1000"

    def test_new_transaction_overwrites(self, store):
        store.compare_and_set("user-1", "1000")
        assert store.compare_and_set("user-1", "1001") is True
        assert store.get("user-1").transaction_id == "1001"

    def test_users_are_independent(self, store):
        assert store.compare_and_set("user-1", "1000") is True
        assert store.compare_and_set("user-2", "1000") is True

    def test_concurrent_writers_redeem_once(self, store):
        results = race(store, "user-1", "1000")
        assert results.count(True) == 1
        assert results.count(False) == 99


class TestInMemoryRedemptionLedger(LedgerContract):
    """Test suite for the process-local ledger."""

    @pytest.fixture
    def store(self):
        return InMemoryRedemptionLedger()

    def test_lock_timeout_is_store_error(self, store):
        lock = store._lock_for("user-1")
        lock.acquire()
        try:
            with pytest.raises(StoreError):
                store.compare_and_set("user-1", "1000", timeout=0.01)
        finally:
            lock.release()
        assert store.get("user-1") is None


class TestSupabaseRedemptionLedger(LedgerContract):
    """Test suite for the Supabase backed ledger."""

    @pytest.fixture
    def store(self, fake_supabase):
        return SupabaseRedemptionLedger(supabase_client=fake_supabase)

    def test_document_fields(self, store, fake_supabase):
        store.compare_and_set("user-1", "1000")
        assert fake_supabase.tables[RECEIPT_TABLE_NAME].rows == {
            "user-1": {"uid": "user-1", "transactionId": "1000"}
        }

    def test_insert_race_with_same_transaction(self, store, fake_supabase):
        # Another writer inserts the row between our update and insert
        table = fake_supabase.from_(RECEIPT_TABLE_NAME).table
        original_update = store._update_if_different
        calls = []

        def update_then_sneak_in(uid, transaction_id, deadline):
            calls.append(uid)
            result = original_update(uid, transaction_id, deadline)
            if len(calls) == 1:
                table.rows[uid] = {"uid": uid, "transactionId": transaction_id}
            return result

        store._update_if_different = update_then_sneak_in
        assert store.compare_and_set("user-1", "1000") is False
        assert len(calls) == 2

    def test_null_transaction_id_is_overwritten(self, store, fake_supabase):
        fake_supabase.from_(RECEIPT_TABLE_NAME).table.rows["user-1"] = {"uid": "user-1", "transactionId": None}

        assert store.compare_and_set("user-1", "1000") is True
        assert store.get("user-1").transaction_id == "1000"

    def test_slow_store_is_bounded_by_timeout(self):
        store = SupabaseRedemptionLedger(supabase_client=FakeSupabase(delay=0.5))

        started = time.monotonic()
        with pytest.raises(StoreError):
            store.compare_and_set("user-1", "1000", timeout=0.2)
        assert time.monotonic() - started < 0.45

    def test_timeout_covers_all_round_trips(self):
        # Each round-trip fits the budget on its own, the three together do not
        store = SupabaseRedemptionLedger(supabase_client=FakeSupabase(delay=0.15))
        store.client.from_(RECEIPT_TABLE_NAME).table.rows["user-1"] = {"uid": "user-1", "transactionId": "1000"}

        with pytest.raises(StoreError):
            store.compare_and_set("user-1", "1000", timeout=0.4)

    def test_database_error_is_store_error(self):
        client = MagicMock()
        client.from_.return_value.select.return_value.eq.return_value.limit.return_value.execute.side_effect = \
            APIError({"code": "42501", "message": "permission denied"})
        store = SupabaseRedemptionLedger(supabase_client=client)

        with pytest.raises(StoreError):
            store.get("user-1")

    def test_network_error_is_store_error(self):
        client = MagicMock()
        client.from_.side_effect = httpx.ConnectError("connection refused")
        store = SupabaseRedemptionLedger(supabase_client=client)

        with pytest.raises(StoreError):
            store.compare_and_set("user-1", "1000")

    def test_other_insert_error_is_store_error(self):
        client = MagicMock()
        client.from_.return_value.update.return_value.eq.return_value.or_.return_value.execute.return_value.data = []
        client.from_.return_value.insert.return_value.execute.side_effect = \
            APIError({"code": "23502", "message": "null value in column"})
        store = SupabaseRedemptionLedger(supabase_client=client)

        with pytest.raises(StoreError):
            store.compare_and_set("user-1", "1000")


class TestBuildLedger:
    def test_memory_backend(self):
        assert isinstance(build_ledger(Settings(LEDGER_BACKEND="memory")), InMemoryRedemptionLedger)

    def test_supabase_backend_is_lazy(self):
        ledger = build_ledger(Settings(LEDGER_BACKEND="supabase"))
        assert isinstance(ledger, SupabaseRedemptionLedger)
