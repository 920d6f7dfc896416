"""
Checkout flow tests: cart arithmetic, receipt issuance with the offline
fallback, and the catalog / receipt list refreshers.
"""

import httpx
import pytest

from tillsync_client.api import ProductsApi
from tillsync_client.checkout import Cart, ProductCatalog, ReceiptBook, ReceiptIssuer
from tillsync_client.errors import NoMerchantSelected
from tillsync_client.models import (
    Merchant,
    PaymentMethod,
    Product,
    ReceiptStatus,
    SyncQueueStatus,
    SyncStatus,
)
from tillsync_client.repositories import ReceiptFilters
from tillsync_client.session import ClientSession, UserProfile

MERCHANT_ID = "merchant-brew-haven"

ESPRESSO = Product(id="prod-espresso", merchant_id=MERCHANT_ID, name="Espresso", price_cents=180,
                   vat_rate=10, updated_at="2026-03-01T00:00:00.000Z")
CROISSANT = Product(id="prod-croissant", merchant_id=MERCHANT_ID, name="Butter Croissant", price_cents=250,
                    vat_rate=10, updated_at="2026-03-01T00:00:00.000Z")


def _product_json(product_id, name, updated_at, is_active=True):
    return {
        "id": product_id,
        "merchantId": MERCHANT_ID,
        "name": name,
        "priceCents": 300,
        "vatRate": 10.0,
        "category": None,
        "sku": None,
        "isActive": is_active,
        "updatedAt": updated_at,
    }


@pytest.fixture
def cart():
    cart = Cart()
    cart.add_product(ESPRESSO)
    cart.add_product(CROISSANT)
    return cart


@pytest.fixture
def issuer(receipts_repo, receipts_api, session, connectivity):
    return ReceiptIssuer(receipts_repo, receipts_api, session, connectivity)


# =============================================================================
# CART
# =============================================================================


class TestCart:

    def test_adding_same_product_bumps_qty(self):
        cart = Cart()
        cart.add_product(ESPRESSO)
        cart.add_product(ESPRESSO)

        assert len(cart) == 1
        assert cart.items[0].qty == 2
        assert cart.totals.total_cents == 396

    def test_decrease_to_zero_removes_line(self, cart):
        cart.increase_qty("prod-espresso")
        cart.decrease_qty("prod-espresso")
        cart.decrease_qty("prod-espresso")

        assert [item.product_id for item in cart.items] == ["prod-croissant"]

    def test_unknown_product_is_ignored(self, cart):
        cart.increase_qty("missing")
        cart.decrease_qty("missing")
        cart.remove("missing")

        assert len(cart) == 2

    def test_line_is_a_snapshot(self):
        cart = Cart()
        product = Product(id="p", merchant_id=MERCHANT_ID, name="Tea", price_cents=150, vat_rate=10,
                          updated_at="2026-03-01T00:00:00.000Z")
        cart.add_product(product)
        product.price_cents = 999

        assert cart.items[0].unit_price_cents == 150

    def test_totals_and_clear(self, cart):
        totals = cart.totals
        assert (totals.subtotal_cents, totals.tax_cents, totals.total_cents) == (430, 43, 473)

        cart.clear()
        assert len(cart) == 0


# =============================================================================
# ISSUANCE
# =============================================================================


class TestReceiptIssuer:

    def test_online_sale_is_numbered_by_server(self, issuer, cart, backend, queue, receipts_repo):
        receipt = issuer.issue_receipt(cart, PaymentMethod.CARD)

        assert receipt.number == "BHC-000001"
        assert (receipt.status, receipt.sync_status) == (ReceiptStatus.COMPLETED, SyncStatus.SYNCED)
        assert receipt.id == f"srv-{receipt.client_receipt_id}"
        assert receipts_repo.get_by_id(receipt.id).total_cents == 473
        assert queue.list_for_merchant(MERCHANT_ID) == []
        assert len(cart) == 0

        body = backend.bodies()[0]
        assert body["createdOffline"] is False
        assert (body["subtotalCents"], body["taxCents"], body["totalCents"]) == (430, 43, 473)
        assert [item["name"] for item in body["items"]] == ["Espresso", "Butter Croissant"]

    def test_server_failure_falls_back_to_queue_with_same_client_id(self, issuer, cart, backend, queue):
        backend.script = [(500, {"error": "Internal error"})]

        receipt = issuer.issue_receipt(cart, PaymentMethod.CASH)

        assert (receipt.status, receipt.sync_status) == (ReceiptStatus.PENDING_SYNC, SyncStatus.PENDING)
        assert receipt.number is None
        assert receipt.client_receipt_id == backend.bodies()[0]["clientReceiptId"]
        assert receipt.issued_at == backend.bodies()[0]["issuedAt"]

        queued = queue.list_for_merchant(MERCHANT_ID)
        assert [record.receipt_id for record in queued] == [receipt.id]
        assert queued[0].status == SyncQueueStatus.PENDING
        assert len(cart) == 0

    def test_network_failure_falls_back(self, issuer, cart, backend):
        backend.script = [httpx.ReadTimeout("slow")]

        receipt = issuer.issue_receipt(cart, PaymentMethod.WALLET)

        assert receipt.status == ReceiptStatus.PENDING_SYNC
        assert receipt.payment_method == PaymentMethod.WALLET

    def test_malformed_success_reply_falls_back(self, issuer, cart, backend, queue, receipts_repo):
        backend.script = [(201, {"unexpected": True})]

        receipt = issuer.issue_receipt(cart, PaymentMethod.CASH)

        assert (receipt.status, receipt.sync_status) == (ReceiptStatus.PENDING_SYNC, SyncStatus.PENDING)
        assert receipts_repo.count_pending_sync(MERCHANT_ID) == 1
        assert [record.receipt_id for record in queue.list_for_merchant(MERCHANT_ID)] == [receipt.id]
        assert len(cart) == 0

    def test_offline_sale_never_hits_network(self, issuer, cart, backend, connectivity, receipts_repo):
        connectivity.set_online(False)

        receipt = issuer.issue_receipt(cart, "CARD")

        assert backend.requests == []
        assert receipt.created_offline is True
        assert receipt.payment_method == PaymentMethod.CARD
        assert receipts_repo.count_pending_sync(MERCHANT_ID) == 1

    def test_requires_selected_merchant(self, receipts_repo, receipts_api, connectivity, cart, backend):
        session = ClientSession(token="t" * 64, user=UserProfile(id="owner", merchants=[
            Merchant(id=MERCHANT_ID, name="Brew Haven Coffee"),
            Merchant(id="merchant-trattoria-roma", name="Trattoria Roma"),
        ]))
        issuer = ReceiptIssuer(receipts_repo, receipts_api, session, connectivity)

        with pytest.raises(NoMerchantSelected):
            issuer.issue_receipt(cart, PaymentMethod.CARD)

        assert len(cart) == 2
        assert backend.requests == []

    def test_empty_cart_is_rejected(self, issuer):
        with pytest.raises(ValueError, match="Cart is empty"):
            issuer.issue_receipt(Cart(), PaymentMethod.CASH)


# =============================================================================
# CATALOG AND RECEIPT LIST
# =============================================================================


class TestProductCatalog:

    @pytest.fixture
    def catalog(self, store, products_repo, api_client, session, connectivity):
        return ProductCatalog(store, products_repo, ProductsApi(api_client), session, connectivity)

    def test_pull_stores_products_and_last_sync(self, catalog, backend, store):
        backend.script = [
            (200, {"items": [
                _product_json("p-1", "Mocha", "2026-03-02T10:00:00.000Z"),
                _product_json("p-2", "Retired", "2026-03-03T10:00:00.000Z", is_active=False),
            ]}),
            (200, {"items": []}),
        ]

        products = catalog.refresh()

        assert [p.name for p in products] == ["Mocha"]
        assert "updatedSince" not in backend.requests[0].url.params
        assert store.get_setting(f"products.lastSync.{MERCHANT_ID}") == "2026-03-03T10:00:00.000Z"

        catalog.refresh()
        assert backend.requests[1].url.params["updatedSince"] == "2026-03-03T10:00:00.000Z"
        assert store.get_setting(f"products.lastSync.{MERCHANT_ID}") == "2026-03-03T10:00:00.000Z"

    def test_failure_serves_local_cache(self, catalog, backend, products_repo, store):
        products_repo.upsert_from_server(ESPRESSO)
        backend.script = [(503, {"error": "Unavailable"})]

        assert [p.name for p in catalog.refresh(search_term="esp")] == ["Espresso"]
        assert store.get_setting(f"products.lastSync.{MERCHANT_ID}") is None

    def test_offline_skips_network(self, catalog, backend, connectivity):
        connectivity.set_online(False)

        assert catalog.refresh() == []
        assert backend.requests == []


class TestReceiptBook:

    @pytest.fixture
    def book(self, receipts_repo, receipts_api, session, connectivity):
        return ReceiptBook(receipts_repo, receipts_api, session, connectivity)

    def test_merges_server_receipts_with_local_pending(self, book, backend, store, make_receipt):
        store.save_receipt(make_receipt("local-1", "client-local", issued_at="2026-03-02T08:00:00.000Z"))
        remote = make_receipt("srv-9", "client-remote", status=ReceiptStatus.COMPLETED, number="BHC-000009")
        backend.script = [(200, {"items": [remote.to_create_payload() | {
            "id": "srv-9", "number": "BHC-000009", "status": "COMPLETED",
        }]})]

        listing = book.refresh()

        assert [r.id for r in listing.receipts] == ["local-1", "srv-9"]
        assert listing.pending_count == 1
        assert book.receipts.get_by_id("srv-9").sync_status == SyncStatus.SYNCED

    def test_pending_sync_filter_is_local_only(self, book, backend, store, make_receipt):
        store.save_receipt(make_receipt())
        backend.script = [(200, {"items": []})]

        listing = book.refresh(filters=ReceiptFilters(status=ReceiptStatus.PENDING_SYNC,
                                                      payment_method=PaymentMethod.CARD))

        params = backend.requests[0].url.params
        assert "status" not in params
        assert params["payment"] == "CARD"
        assert [r.id for r in listing.receipts] == ["rcpt-1"]

    def test_unauthorized_keeps_local_list(self, book, backend, store, make_receipt, session):
        store.save_receipt(make_receipt())
        backend.script = [(401, {"error": "Invalid token"})]

        listing = book.refresh()

        assert [r.id for r in listing.receipts] == ["rcpt-1"]
        assert session.token is None
