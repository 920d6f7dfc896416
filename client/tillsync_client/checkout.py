# Overview: Cart, receipt issuance with offline fallback, and the catalog/receipt list refreshers.

from __future__ import annotations

import dataclasses
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from .api import ProductsApi, ReceiptsApi
from .connectivity import ConnectivitySource
from .errors import NetworkError, NoMerchantSelected, RemoteApiError, RequestCancelled
from .models import CartItem, PaymentMethod, Product, Receipt, ReceiptStatus
from .money import CartTotals, calculate_cart_totals, cart_to_receipt_items
from .repositories import CreateReceiptInput, ProductsRepo, ReceiptFilters, ReceiptsRepo
from .session import ClientSession
from .store import LocalStore
from .time_utils import now_iso

logger = logging.getLogger(__name__)

# Failures that send a sale down the offline path instead of to the cashier
_REMOTE_FAILURES = (RemoteApiError, NetworkError, RequestCancelled)


class Cart:
    """In-memory cart. Lines are product snapshots taken at add-time."""

    def __init__(self):
        self.items: list[CartItem] = []

    def __len__(self) -> int:
        return len(self.items)

    def _find(self, product_id: str) -> Optional[CartItem]:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    def add_product(self, product: Product) -> None:
        existing = self._find(product.id)
        if existing is not None:
            existing.qty += 1
            return
        self.items.append(CartItem(
            product_id=product.id,
            name=product.name,
            qty=1,
            unit_price_cents=product.price_cents,
            vat_rate=product.vat_rate,
        ))

    def increase_qty(self, product_id: str) -> None:
        item = self._find(product_id)
        if item is not None:
            item.qty += 1

    def decrease_qty(self, product_id: str) -> None:
        item = self._find(product_id)
        if item is None:
            return
        item.qty = max(item.qty - 1, 0)
        if item.qty == 0:
            self.remove(product_id)

    def remove(self, product_id: str) -> None:
        self.items = [item for item in self.items if item.product_id != product_id]

    def clear(self) -> None:
        self.items = []

    @property
    def totals(self) -> CartTotals:
        return calculate_cart_totals(self.items)


class ReceiptIssuer:
    """
    Turns a cart into a receipt without ever blocking the sale on the network.

    FLOW:
    1. clientReceiptId is generated once, before any network call; the
       online attempt and any later queued retry carry the same value.
    2. Online with a token: POST the receipt. On success the server copy is
       stored as SYNCED and returned.
    3. Any remote failure falls through: the receipt is stored as
       PENDING_SYNC / PENDING and queued for the sync worker.
    4. The cart is cleared only once a stored receipt is in hand.

    Only a missing merchant (and an empty cart) reach the caller; storage
    failures propagate as StorageUnavailable.
    """

    def __init__(
        self,
        receipts: ReceiptsRepo,
        receipts_api: ReceiptsApi,
        session: ClientSession,
        connectivity: ConnectivitySource,
        currency: str = "EUR",
    ):
        self.receipts = receipts
        self.receipts_api = receipts_api
        self.session = session
        self.connectivity = connectivity
        self.currency = currency

    def issue_receipt(self, cart: Cart, payment_method: PaymentMethod) -> Receipt:
        merchant_id = self.session.merchant_id
        if not merchant_id:
            raise NoMerchantSelected()
        if not cart.items:
            raise ValueError("Cart is empty")

        totals = cart.totals
        items = cart_to_receipt_items(cart.items)
        client_receipt_id = str(uuid.uuid4())
        issued_at = now_iso()
        payment_method = PaymentMethod(payment_method)

        if self.connectivity.is_online and self.session.token:
            payload = {
                "merchantId": merchant_id,
                "clientReceiptId": client_receipt_id,
                "issuedAt": issued_at,
                "paymentMethod": payment_method.value,
                "currency": self.currency,
                "subtotalCents": totals.subtotal_cents,
                "taxCents": totals.tax_cents,
                "totalCents": totals.total_cents,
                "createdOffline": False,
                "items": [item.to_dict() for item in items],
            }
            try:
                result = self.receipts_api.create(payload)
            except _REMOTE_FAILURES as exc:
                logger.warning("Online receipt issue failed, falling back to offline queue: %r", exc)
            else:
                receipt = self.receipts.upsert_from_server(result.item)
                cart.clear()
                return receipt

        receipt = self.receipts.create_receipt(CreateReceiptInput(
            merchant_id=merchant_id,
            client_receipt_id=client_receipt_id,
            issued_at=issued_at,
            payment_method=payment_method,
            currency=self.currency,
            subtotal_cents=totals.subtotal_cents,
            tax_cents=totals.tax_cents,
            total_cents=totals.total_cents,
            items=items,
            is_online=False,
        ))
        logger.info("Receipt %s stored offline and queued for sync", receipt.client_receipt_id)
        cart.clear()
        return receipt


def _last_sync_key(merchant_id: str) -> str:
    return f"products.lastSync.{merchant_id}"


class ProductCatalog:
    """Offline-first product list: pull changes when possible, always answer from the local store."""

    def __init__(
        self,
        store: LocalStore,
        products: ProductsRepo,
        products_api: ProductsApi,
        session: ClientSession,
        connectivity: ConnectivitySource,
    ):
        self.store = store
        self.products = products
        self.products_api = products_api
        self.session = session
        self.connectivity = connectivity

    def refresh(self, merchant_id: Optional[str] = None, search_term: Optional[str] = None) -> list[Product]:
        merchant_id = merchant_id or self.session.merchant_id
        if not merchant_id:
            raise NoMerchantSelected()

        if self.connectivity.is_online and self.session.token:
            key = _last_sync_key(merchant_id)
            since = self.store.get_setting(key)
            try:
                changed = self.products_api.list(updated_since=since, merchant_id=merchant_id)
            except _REMOTE_FAILURES as exc:
                logger.warning("Products API refresh failed, using local cache: %r", exc)
            else:
                for product in changed:
                    self.products.upsert_from_server(product)
                if changed:
                    # server clock, so the next pull compares like with like
                    self.store.set_setting(key, max(p.updated_at for p in changed))

        return self.products.list_by_merchant(merchant_id, search_term)


@dataclass
class ReceiptListing:
    receipts: list[Receipt]
    pending_count: int


class ReceiptBook:
    """Receipt list with server merge when online and the pending-sync badge count."""

    def __init__(
        self,
        receipts: ReceiptsRepo,
        receipts_api: ReceiptsApi,
        session: ClientSession,
        connectivity: ConnectivitySource,
    ):
        self.receipts = receipts
        self.receipts_api = receipts_api
        self.session = session
        self.connectivity = connectivity

    def refresh(self, merchant_id: Optional[str] = None, filters: Optional[ReceiptFilters] = None) -> ReceiptListing:
        merchant_id = merchant_id or self.session.merchant_id
        if not merchant_id:
            raise NoMerchantSelected()
        filters = filters or ReceiptFilters()

        if self.connectivity.is_online and self.session.token:
            # PENDING_SYNC only exists on this device
            remote_filters = filters
            if filters.status == ReceiptStatus.PENDING_SYNC:
                remote_filters = dataclasses.replace(filters, status=None)
            try:
                remote = self.receipts_api.list(remote_filters, merchant_id=merchant_id)
            except _REMOTE_FAILURES as exc:
                logger.warning("Receipts API refresh failed, using local cache: %r", exc)
            else:
                for receipt in remote:
                    self.receipts.upsert_from_server(receipt)

        return ReceiptListing(
            receipts=self.receipts.list_by_merchant(merchant_id, filters),
            pending_count=self.receipts.count_pending_sync(merchant_id),
        )
