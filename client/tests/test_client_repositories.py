"""
Repository tests: receipt creation, filtering, server merges and the
sync-state transitions, plus the product and queue helpers.
"""

import dataclasses

import pytest

from tillsync_client.models import (
    PaymentMethod,
    ReceiptItem,
    ReceiptStatus,
    SyncQueueStatus,
    SyncStatus,
)
from tillsync_client.repositories import (
    CreateReceiptInput,
    ReceiptFilters,
    SaveProductInput,
)
from tillsync_client.store import SEED_PRODUCTS

MERCHANT_ID = "merchant-brew-haven"


def _input(**overrides):
    fields = dict(
        merchant_id=MERCHANT_ID,
        payment_method=PaymentMethod.CASH,
        currency="EUR",
        subtotal_cents=430,
        tax_cents=43,
        total_cents=473,
        items=[ReceiptItem("Espresso", 1, 180, 10, 180), ReceiptItem("Butter Croissant", 1, 250, 10, 250)],
    )
    fields.update(overrides)
    return CreateReceiptInput(**fields)


# =============================================================================
# CREATE
# =============================================================================


class TestCreateReceipt:

    def test_offline_receipt_is_pending_and_queued(self, receipts_repo, store):
        receipt = receipts_repo.create_receipt(_input(client_receipt_id="client-42"))

        assert receipt.status == ReceiptStatus.PENDING_SYNC
        assert receipt.sync_status == SyncStatus.PENDING
        assert receipt.created_offline is True
        assert receipt.number is None

        record = store.get_sync_queue_item_for_receipt(receipt.id)
        assert record.payload.client_receipt_id == "client-42"
        assert record.status == SyncQueueStatus.PENDING
        assert receipts_repo.count_pending_sync(MERCHANT_ID) == 1

    def test_online_receipt_is_synced_and_not_queued(self, receipts_repo, store):
        receipt = receipts_repo.create_receipt(_input(is_online=True))

        assert (receipt.status, receipt.sync_status) == (ReceiptStatus.COMPLETED, SyncStatus.SYNCED)
        assert store.get_sync_queue_item_for_receipt(receipt.id) is None
        assert receipts_repo.count_pending_sync(MERCHANT_ID) == 0

    def test_generates_client_id_and_issued_at(self, receipts_repo):
        first = receipts_repo.create_receipt(_input())
        second = receipts_repo.create_receipt(_input())

        assert first.client_receipt_id != second.client_receipt_id
        assert first.issued_at.endswith("Z")
        assert receipts_repo.get_by_client_receipt_id(MERCHANT_ID, first.client_receipt_id) == first


# =============================================================================
# FILTERS
# =============================================================================


class TestFilters:

    @pytest.fixture
    def seeded(self, store, make_receipt):
        store.save_receipt(make_receipt("r-1", "c-1", issued_at="2026-03-01T08:00:00.000Z",
                                        payment_method=PaymentMethod.CASH))
        store.save_receipt(make_receipt("r-2", "c-2", issued_at="2026-03-02T12:00:00.000Z",
                                        status=ReceiptStatus.COMPLETED, sync_status=SyncStatus.SYNCED))
        store.save_receipt(make_receipt("r-3", "c-3", issued_at="2026-03-03T18:00:00.000Z",
                                        status=ReceiptStatus.VOIDED, sync_status=SyncStatus.SYNCED))

    @pytest.mark.parametrize("filters,expected", [
        (ReceiptFilters(), ["r-3", "r-2", "r-1"]),
        (ReceiptFilters(status=ReceiptStatus.PENDING_SYNC), ["r-1"]),
        (ReceiptFilters(payment_method=PaymentMethod.CARD), ["r-3", "r-2"]),
        (ReceiptFilters(date_from="2026-03-02T00:00:00Z"), ["r-3", "r-2"]),
        (ReceiptFilters(date_to="2026-03-02T12:00:00+00:00"), ["r-2", "r-1"]),
        (ReceiptFilters(date_from="2026-03-02T00:00:00Z", date_to="2026-03-02T23:59:59Z"), ["r-2"]),
    ])
    def test_list_by_merchant(self, receipts_repo, seeded, filters, expected):
        assert [r.id for r in receipts_repo.list_by_merchant(MERCHANT_ID, filters)] == expected


# =============================================================================
# SERVER MERGE
# =============================================================================


class TestUpsertFromServer:

    def test_rekeys_local_receipt_and_drops_queue_record(self, receipts_repo, store):
        local = receipts_repo.create_receipt(_input(client_receipt_id="client-7"))
        server = dataclasses.replace(
            local,
            id="srv-7",
            number="BHC-000007",
            status=ReceiptStatus.COMPLETED,
            sync_status=SyncStatus.SYNCED,
        )

        merged = receipts_repo.upsert_from_server(server)

        assert merged.id == "srv-7"
        assert receipts_repo.get_by_id(local.id) is None
        stored = receipts_repo.get_by_client_receipt_id(MERCHANT_ID, "client-7")
        assert (stored.id, stored.number, stored.sync_status) == ("srv-7", "BHC-000007", SyncStatus.SYNCED)
        assert store.get_sync_queue_items(MERCHANT_ID) == []
        assert receipts_repo.count_pending_sync(MERCHANT_ID) == 0

    def test_unknown_receipt_is_inserted(self, receipts_repo, make_receipt):
        server = make_receipt("srv-1", "client-remote", status=ReceiptStatus.REFUNDED,
                              sync_status=SyncStatus.SYNCED, number="BHC-000003")

        receipts_repo.upsert_from_server(server)

        assert receipts_repo.get_by_id("srv-1").status == ReceiptStatus.REFUNDED

    def test_server_status_wins_on_repeat(self, receipts_repo, make_receipt):
        server = make_receipt("srv-1", "client-1", status=ReceiptStatus.COMPLETED,
                              sync_status=SyncStatus.SYNCED, number="BHC-000001")
        receipts_repo.upsert_from_server(server)
        receipts_repo.upsert_from_server(dataclasses.replace(server, status=ReceiptStatus.VOIDED))

        assert [r.status for r in receipts_repo.list_by_merchant(MERCHANT_ID)] == [ReceiptStatus.VOIDED]


# =============================================================================
# SYNC STATE
# =============================================================================


class TestSyncState:

    def test_mark_as_synced_adopts_server_identity(self, receipts_repo, store):
        local = receipts_repo.create_receipt(_input())
        record = store.get_sync_queue_item_for_receipt(local.id)

        final_id = receipts_repo.mark_as_synced(
            local.id, number="BHC-000010", server_id="srv-10", queue_id=record.id
        )

        assert final_id == "srv-10"
        synced = receipts_repo.get_by_id("srv-10")
        assert synced.number == "BHC-000010"
        assert (synced.status, synced.sync_status) == (ReceiptStatus.COMPLETED, SyncStatus.SYNCED)
        assert store.get_sync_queue_item(record.id) is None

    def test_mark_as_synced_without_number_keeps_stored_one(self, receipts_repo, store, make_receipt):
        store.save_receipt(make_receipt(number="BHC-000004"))

        receipts_repo.mark_as_synced("rcpt-1")

        assert receipts_repo.get_by_id("rcpt-1").number == "BHC-000004"

    def test_mark_as_synced_unknown_receipt(self, receipts_repo):
        assert receipts_repo.mark_as_synced("missing") is None

    def test_mark_sync_failed_without_queue_item(self, receipts_repo):
        local = receipts_repo.create_receipt(_input())

        receipts_repo.mark_sync_failed(local.id, 3)

        failed = receipts_repo.get_by_id(local.id)
        assert (failed.sync_status, failed.sync_attempts, failed.status) == (
            SyncStatus.FAILED, 3, ReceiptStatus.PENDING_SYNC
        )
        assert receipts_repo.count_pending_sync(MERCHANT_ID) == 1

    def test_mark_sync_failed_with_queue_item(self, receipts_repo, store):
        local = receipts_repo.create_receipt(_input())
        record = store.get_sync_queue_item_for_receipt(local.id)

        receipts_repo.mark_sync_failed(local.id, 2, queue_item=dataclasses.replace(record, last_error="HTTP 500"))

        assert store.get_sync_queue_item(record.id).attempts == 2
        assert store.get_sync_queue_item(record.id).last_error == "HTTP 500"
        assert receipts_repo.get_by_id(local.id).sync_attempts == 2


# =============================================================================
# PRODUCTS
# =============================================================================


class TestProducts:

    def test_save_trims_and_assigns_id(self, products_repo):
        product = products_repo.save(SaveProductInput(
            merchant_id=MERCHANT_ID,
            name="  Flat White ",
            price_cents=340,
            vat_rate=10,
            category="  ",
            sku=" COF-009 ",
        ))

        assert product.id
        assert (product.name, product.category, product.sku) == ("Flat White", None, "COF-009")
        assert products_repo.get_by_id(product.id) == product

    def test_save_existing_id_updates(self, products_repo):
        products_repo.save(SaveProductInput(id="p-1", merchant_id=MERCHANT_ID, name="Mocha", price_cents=380, vat_rate=10))
        products_repo.save(SaveProductInput(id="p-1", merchant_id=MERCHANT_ID, name="Mocha", price_cents=400,
                                            vat_rate=10, is_active=False))

        assert products_repo.get_by_id("p-1").price_cents == 400
        assert products_repo.list_by_merchant(MERCHANT_ID) == []

    def test_seed_demo_products_for_one_merchant(self, products_repo):
        written = products_repo.seed_demo_products("merchant-trattoria-roma")

        assert written == len([row for row in SEED_PRODUCTS if row[1] == "merchant-trattoria-roma"])
        assert [p.name for p in products_repo.list_by_merchant("merchant-trattoria-roma", "wine")] == [
            "House Wine (Glass)"
        ]
        assert products_repo.list_by_merchant(MERCHANT_ID) == []


# =============================================================================
# QUEUE
# =============================================================================


class TestSyncQueueRepo:

    def test_retry_now_rearms_without_resetting_attempts(self, receipts_repo, queue):
        local = receipts_repo.create_receipt(_input())
        record = queue.list_for_merchant(MERCHANT_ID)[0]
        queue.save(dataclasses.replace(
            record, attempts=5, status=SyncQueueStatus.FAILED, next_attempt_at="2099-01-01T00:00:00.000Z"
        ))
        assert queue.get_due_items() == []

        rearmed = queue.retry_now(record.id)

        assert (rearmed.status, rearmed.attempts) == (SyncQueueStatus.PENDING, 5)
        assert [r.receipt_id for r in queue.get_due_items()] == [local.id]

    def test_retry_now_unknown(self, queue):
        assert queue.retry_now("missing") is None

    def test_remove(self, receipts_repo, queue):
        receipts_repo.create_receipt(_input())
        record = queue.list_for_merchant(MERCHANT_ID)[0]

        queue.remove(record.id)

        assert queue.get(record.id) is None
