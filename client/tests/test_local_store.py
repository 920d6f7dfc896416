# Overview: Behaviour both local store engines must share.

"""
Local store tests.

Every test taking the `store` fixture runs against the SQL engine and the
key-value engine; identical results are the contract.
"""

import dataclasses
import threading

import pytest

from tillsync_client.config import ClientConfig
from tillsync_client.errors import DuplicateReceipt, StorageUnavailable
from tillsync_client.models import (
    Merchant,
    Product,
    ReceiptItem,
    ReceiptStatus,
    SyncQueueStatus,
    SyncStatus,
)
from tillsync_client.store import (
    SEED_PRODUCTS,
    SEED_VERSION,
    SEED_VERSION_KEY,
    KeyValueStoreEngine,
    LocalStore,
    SqlStoreEngine,
    select_engine_name,
)
from tillsync_client.store.schema import sync_queue


def _product(product_id, name, merchant_id="merchant-brew-haven", is_active=True, updated_at="2026-03-01T00:00:00.000Z"):
    return Product(
        id=product_id,
        merchant_id=merchant_id,
        name=name,
        price_cents=100,
        vat_rate=10,
        is_active=is_active,
        updated_at=updated_at,
    )


def _plant_broken_queue_record(engine):
    if isinstance(engine, KeyValueStoreEngine):
        engine.docs["queue:broken"] = "{not json"
        return
    with engine.engine.begin() as conn:
        conn.execute(sync_queue.insert().values(
            id="broken",
            merchant_id="merchant-brew-haven",
            receipt_id="r-broken",
            payload_json="{not json",
            attempts=0,
            next_attempt_at="2026-03-01T08:00:00.000Z",
            status="PENDING",
            created_at="2026-03-01T08:00:00.000Z",
            updated_at="2026-03-01T08:00:00.000Z",
        ))


# =============================================================================
# INIT
# =============================================================================


class TestInit:

    def test_init_is_idempotent_and_reports_mode(self, engine_name):
        store = LocalStore(ClientConfig(local_engine=engine_name, seed_demo_data=False))
        assert store.mode is None

        store.init()
        store.init()

        assert store.mode == engine_name
        store.close()

    def test_auto_prefers_sql_on_modern_sqlite(self):
        # Every supported Python ships SQLite newer than 3.24
        assert select_engine_name("auto") == "sql"
        assert select_engine_name("kv") == "kv"

    def test_operations_trigger_init_lazily(self, engine_name):
        store = LocalStore(ClientConfig(local_engine=engine_name, seed_demo_data=False))
        assert store.get_merchants() == []
        assert store.is_ready
        store.close()

    def test_seeds_catalog_and_receipts_once(self, engine_name):
        store = LocalStore(ClientConfig(local_engine=engine_name))
        store.init()

        assert [m.name for m in store.get_merchants()] == ["Brew Haven Coffee", "Trattoria Roma"]
        assert store.get_setting(SEED_VERSION_KEY) == SEED_VERSION
        assert len(store.get_products_by_merchant("merchant-brew-haven")) == 5

        pending = store.get_sync_queue_items("merchant-trattoria-roma")
        assert [record.receipt_id for record in pending] == ["rcpt-local-002"]
        assert store.get_receipt_by_id("rcpt-local-001").sync_status == SyncStatus.SYNCED
        store.close()

    def test_demo_receipts_not_reseeded_when_version_set(self, tmp_path, engine_name):
        path = str(tmp_path / f"local-{engine_name}.db")
        first = LocalStore(ClientConfig(local_engine=engine_name, local_db_path=path))
        first.init()
        first.delete_sync_queue_item(first.get_sync_queue_items("merchant-trattoria-roma")[0].id)
        first.close()

        second = LocalStore(ClientConfig(local_engine=engine_name, local_db_path=path))
        second.init()

        # missing catalog rows come back, demo receipts and their queue record do not
        assert second.get_sync_queue_items("merchant-trattoria-roma") == []
        assert len(second.get_products_by_merchant("merchant-trattoria-roma")) == 5
        second.close()

    def test_reinit_keeps_edited_demo_product(self, tmp_path, engine_name):
        path = str(tmp_path / f"local-{engine_name}.db")
        first = LocalStore(ClientConfig(local_engine=engine_name, local_db_path=path))
        first.init()
        espresso = first.get_product_by_id("prod-espresso")
        first.upsert_product(dataclasses.replace(espresso, price_cents=210, updated_at="2026-03-05T00:00:00.000Z"))
        first.close()

        second = LocalStore(ClientConfig(local_engine=engine_name, local_db_path=path))
        second.init()

        assert second.get_product_by_id("prod-espresso").price_cents == 210
        second.close()

    def test_concurrent_callers_share_one_init(self, engine_name):
        calls = []

        class CountingEngine(SqlStoreEngine if engine_name == "sql" else KeyValueStoreEngine):
            def create_schema(self):
                calls.append(threading.get_ident())
                super().create_schema()

        store = LocalStore(ClientConfig(seed_demo_data=False), engine=CountingEngine())
        barrier = threading.Barrier(6)

        def worker():
            barrier.wait()
            store.init()

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(calls) == 1
        assert store.is_ready
        store.close()


class TestStorageUnavailable:

    class BrokenEngine(KeyValueStoreEngine):
        opens = 0

        def open(self):
            type(self).opens += 1
            raise OSError("disk gone")

    def test_failed_init_is_shared_until_reset(self):
        self.BrokenEngine.opens = 0
        store = LocalStore(ClientConfig(seed_demo_data=False), engine=self.BrokenEngine())

        with pytest.raises(StorageUnavailable):
            store.init()
        with pytest.raises(StorageUnavailable):
            store.get_merchants()
        assert self.BrokenEngine.opens == 1

        store.reset()
        with pytest.raises(StorageUnavailable):
            store.init()
        assert self.BrokenEngine.opens == 2

    def test_calls_after_engine_closed(self, engine_name):
        engine = SqlStoreEngine() if engine_name == "sql" else KeyValueStoreEngine()
        store = LocalStore(ClientConfig(seed_demo_data=False), engine=engine)
        store.init()
        engine.close()

        with pytest.raises(StorageUnavailable):
            store.get_merchants()


# =============================================================================
# CATALOG
# =============================================================================


class TestCatalog:

    def test_merchant_upsert_overwrites(self, store):
        store.upsert_merchant(Merchant(id="m-1", name="Old Name"))
        store.upsert_merchant(Merchant(id="m-1", name="New Name", vat_number="IT1"))

        assert store.get_merchants() == [Merchant(id="m-1", name="New Name", vat_number="IT1")]

    def test_products_active_only_sorted_by_name(self, store):
        store.upsert_product(_product("p-3", "Tea"))
        store.upsert_product(_product("p-1", "Americano"))
        store.upsert_product(_product("p-2", "Muffin", is_active=False))
        store.upsert_product(_product("p-9", "Other Merchant Tea", merchant_id="merchant-other"))

        names = [p.name for p in store.get_products_by_merchant("merchant-brew-haven")]
        assert names == ["Americano", "Tea"]

    @pytest.mark.parametrize("term,expected", [
        ("latte", ["Cafe Latte", "Iced Latte"]),
        ("  LATTE ", ["Cafe Latte", "Iced Latte"]),
        ("", ["Cafe Latte", "Espresso", "Iced Latte"]),
        ("100%", []),
    ])
    def test_search_is_trimmed_case_insensitive_contains(self, store, term, expected):
        for product_id, name in [("p-1", "Iced Latte"), ("p-2", "Espresso"), ("p-3", "Cafe Latte")]:
            store.upsert_product(_product(product_id, name))

        assert [p.name for p in store.get_products_by_merchant("merchant-brew-haven", term)] == expected

    def test_updated_since_includes_inactive(self, store):
        store.upsert_product(_product("p-old", "Old", updated_at="2026-01-01T00:00:00.000Z"))
        store.upsert_product(_product("p-new", "New", is_active=False, updated_at="2026-03-01T00:00:00.000Z"))

        changed = store.get_products_updated_since("merchant-brew-haven", "2026-02-01T00:00:00.000Z")

        assert [p.id for p in changed] == ["p-new"]
        assert len(store.get_products_updated_since("merchant-brew-haven", None)) == 2

    def test_settings_round_trip(self, store):
        assert store.get_setting("products.lastSync.m") is None
        store.set_setting("products.lastSync.m", "2026-03-01T00:00:00.000Z")
        store.set_setting("products.lastSync.m", "2026-03-02T00:00:00.000Z")
        assert store.get_setting("products.lastSync.m") == "2026-03-02T00:00:00.000Z"


# =============================================================================
# RECEIPTS
# =============================================================================


class TestReceipts:

    def test_items_keep_insertion_order(self, store, make_receipt):
        receipt = make_receipt(items=[
            ReceiptItem("Zucchini Bread", 1, 300, 10, 300),
            ReceiptItem("Americano", 2, 200, 10, 400),
            ReceiptItem("Muffin", 1, 250, 10, 250),
        ])
        store.save_receipt(receipt)

        loaded = store.get_receipt_by_id(receipt.id)
        assert [item.name for item in loaded.items] == ["Zucchini Bread", "Americano", "Muffin"]
        assert loaded == receipt

    def test_save_replaces_whole_item_set(self, store, make_receipt):
        receipt = make_receipt()
        store.save_receipt(receipt)

        store.save_receipt(dataclasses.replace(receipt, items=[ReceiptItem("Tea", 1, 150, 10, 150)]))

        assert [item.name for item in store.get_receipt_by_id(receipt.id).items] == ["Tea"]

    def test_client_receipt_id_unique_per_merchant(self, store, make_receipt):
        store.save_receipt(make_receipt("rcpt-1", "client-1"))

        with pytest.raises(DuplicateReceipt):
            store.save_receipt(make_receipt("rcpt-2", "client-1"))

        # other merchant may reuse the key
        store.save_receipt(make_receipt("rcpt-3", "client-1", merchant_id="merchant-other"))
        assert store.get_receipt_by_client_id("merchant-brew-haven", "client-1").id == "rcpt-1"
        assert store.get_receipt_by_client_id("merchant-other", "client-1").id == "rcpt-3"

    def test_newest_first(self, store, make_receipt):
        store.save_receipt(make_receipt("r-1", "c-1", issued_at="2026-03-01T08:00:00.000Z"))
        store.save_receipt(make_receipt("r-3", "c-3", issued_at="2026-03-03T08:00:00.000Z"))
        store.save_receipt(make_receipt("r-2", "c-2", issued_at="2026-03-02T08:00:00.000Z"))

        assert [r.id for r in store.get_receipts_by_merchant("merchant-brew-haven")] == ["r-3", "r-2", "r-1"]

    def test_update_sync_state_keeps_status_and_number_when_none(self, store, make_receipt):
        store.save_receipt(make_receipt(number="BHC-000007", status=ReceiptStatus.COMPLETED))

        assert store.update_receipt_sync_state("rcpt-1", SyncStatus.FAILED, 3) is True
        loaded = store.get_receipt_by_id("rcpt-1")

        assert (loaded.sync_status, loaded.sync_attempts) == (SyncStatus.FAILED, 3)
        assert (loaded.status, loaded.number) == (ReceiptStatus.COMPLETED, "BHC-000007")
        assert store.update_receipt_sync_state("missing", SyncStatus.FAILED, 1) is False

    def test_pending_count_covers_unsynced(self, store, make_receipt):
        store.save_receipt(make_receipt("r-1", "c-1"))
        store.save_receipt(make_receipt("r-2", "c-2", sync_status=SyncStatus.FAILED))
        store.save_receipt(make_receipt("r-3", "c-3", sync_status=SyncStatus.SYNCED, status=ReceiptStatus.COMPLETED))
        store.save_receipt(make_receipt("r-4", "c-4", merchant_id="merchant-other"))

        assert store.count_pending_receipts("merchant-brew-haven") == 2
        assert store.count_pending_receipts() == 3

    def test_replace_identity_moves_items_and_queue(self, store, make_receipt):
        receipt = make_receipt("local-1", "client-1")
        store.save_receipt(receipt)
        record = store.enqueue_receipt_sync(receipt)

        store.replace_receipt_identity("local-1", "server-1")

        assert store.get_receipt_by_id("local-1") is None
        moved = store.get_receipt_by_id("server-1")
        assert len(moved.items) == 2
        assert store.get_receipt_by_client_id("merchant-brew-haven", "client-1").id == "server-1"
        assert store.get_sync_queue_item(record.id).receipt_id == "server-1"


# =============================================================================
# SYNC QUEUE
# =============================================================================


class TestSyncQueue:

    def test_enqueue_snapshots_receipt(self, store, make_receipt):
        receipt = make_receipt()
        record = store.enqueue_receipt_sync(receipt, now="2026-03-01T09:30:00.000Z")

        stored = store.get_sync_queue_item_for_receipt(receipt.id)
        assert stored == record
        assert stored.payload == receipt
        assert (stored.attempts, stored.status) == (0, SyncQueueStatus.PENDING)
        assert stored.next_attempt_at == stored.created_at == "2026-03-01T09:30:00.000Z"

    def test_due_items_oldest_first_regardless_of_insertion(self, store, make_receipt):
        for suffix, created in [("b", "2026-03-01T10:00:00.000Z"), ("c", "2026-03-01T11:00:00.000Z"), ("a", "2026-03-01T09:00:00.000Z")]:
            receipt = make_receipt(f"r-{suffix}", f"c-{suffix}")
            store.save_receipt(receipt)
            store.enqueue_receipt_sync(receipt, now=created)

        due = store.get_due_sync_queue_items("2026-03-01T12:00:00.000Z")

        assert [record.receipt_id for record in due] == ["r-a", "r-b", "r-c"]

    def test_due_items_respect_status_and_time(self, store, make_receipt):
        records = {}
        for name in ["pending", "failed", "processing", "later"]:
            receipt = make_receipt(f"r-{name}", f"c-{name}")
            store.save_receipt(receipt)
            records[name] = store.enqueue_receipt_sync(receipt, now="2026-03-01T09:00:00.000Z")

        store.update_sync_queue_item(dataclasses.replace(records["failed"], status=SyncQueueStatus.FAILED))
        store.update_sync_queue_item(dataclasses.replace(records["processing"], status=SyncQueueStatus.PROCESSING))
        store.update_sync_queue_item(dataclasses.replace(records["later"], next_attempt_at="2026-03-01T13:00:00.000Z"))

        due = store.get_due_sync_queue_items("2026-03-01T12:00:00.000Z")

        assert {record.receipt_id for record in due} == {"r-pending", "r-failed"}

    def test_due_cutoff_without_milliseconds(self, store, make_receipt):
        receipt = make_receipt()
        store.save_receipt(receipt)
        store.update_sync_queue_item(dataclasses.replace(
            store.enqueue_receipt_sync(receipt, now="2026-03-01T09:00:00.000Z"),
            next_attempt_at="2026-03-01T10:00:00.500Z",
        ))

        assert store.get_due_sync_queue_items("2026-03-01T10:00:00Z") == []
        assert [r.receipt_id for r in store.get_due_sync_queue_items("2026-03-01T10:00:01Z")] == [receipt.id]

    def test_undecodable_record_is_skipped(self, store, make_receipt):
        receipt = make_receipt()
        store.save_receipt(receipt)
        good = store.enqueue_receipt_sync(receipt, now="2026-03-01T09:00:00.000Z")
        _plant_broken_queue_record(store.ensure_ready())

        assert store.get_due_sync_queue_items("2026-03-01T12:00:00.000Z") == [good]
        assert store.get_sync_queue_items("merchant-brew-haven") == [good]

    def test_list_by_merchant_and_status(self, store, make_receipt):
        mine = make_receipt("r-1", "c-1")
        theirs = make_receipt("r-2", "c-2", merchant_id="merchant-other")
        for receipt in (mine, theirs):
            store.save_receipt(receipt)
            store.enqueue_receipt_sync(receipt)

        assert [r.receipt_id for r in store.get_sync_queue_items("merchant-brew-haven")] == ["r-1"]
        assert store.get_sync_queue_items("merchant-brew-haven", SyncQueueStatus.FAILED) == []

    def test_record_failure_updates_queue_and_receipt_together(self, store, make_receipt):
        receipt = make_receipt()
        store.save_receipt(receipt)
        record = store.enqueue_receipt_sync(receipt)

        store.record_sync_failure(dataclasses.replace(record, attempts=2, last_error="boom"))

        assert store.get_sync_queue_item(record.id).attempts == 2
        loaded = store.get_receipt_by_id(receipt.id)
        assert (loaded.sync_status, loaded.sync_attempts) == (SyncStatus.FAILED, 2)

    def test_complete_sync_adopts_server_identity(self, store, make_receipt):
        receipt = make_receipt("local-1", "client-1")
        store.save_receipt(receipt)
        record = store.enqueue_receipt_sync(receipt)

        final_id = store.complete_receipt_sync(
            "local-1", ReceiptStatus.COMPLETED, number="BHC-000001", server_id="srv-1", queue_id=record.id
        )

        assert final_id == "srv-1"
        synced = store.get_receipt_by_id("srv-1")
        assert (synced.status, synced.sync_status, synced.number) == (
            ReceiptStatus.COMPLETED, SyncStatus.SYNCED, "BHC-000001"
        )
        assert store.get_sync_queue_item(record.id) is None


class TestOnDisk:

    def test_data_survives_reopen(self, tmp_path, engine_name, make_receipt):
        path = str(tmp_path / f"till-{engine_name}.db")
        config = ClientConfig(local_engine=engine_name, local_db_path=path, seed_demo_data=False)

        first = LocalStore(config)
        first.save_receipt(make_receipt())
        first.close()

        second = LocalStore(config)
        assert second.get_receipt_by_id("rcpt-1").total_cents == 473
        assert len(SEED_PRODUCTS) == 10
        second.close()
