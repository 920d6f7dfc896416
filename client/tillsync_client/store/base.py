# Overview: Capability interface shared by both local storage engines.

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from ..models import Merchant, Product, Receipt, ReceiptStatus, SyncQueueRecord, SyncQueueStatus, SyncStatus


class StoreEngine(ABC):
    """
    One logical schema, two physical layouts.

    WHY: Upper layers (repositories, sync, checkout) must never see engine
    specific query syntax. Every method here has identical return shapes,
    filtering and uniqueness rules in both implementations; the shared
    engine test-suite runs against each.

    Ordering contracts:
    - get_merchants: name asc
    - get_products_by_merchant: active only, name asc
    - get_receipts_by_merchant: issued_at desc
    - get_due_sync_queue_items: created_at asc (oldest first)
    - receipt items: insertion order
    """

    name: str = ""

    @abstractmethod
    def open(self) -> None: ...

    @abstractmethod
    def close(self) -> None: ...

    @abstractmethod
    def create_schema(self) -> None: ...

    # settings

    @abstractmethod
    def get_setting(self, key: str) -> Optional[str]: ...

    @abstractmethod
    def set_setting(self, key: str, value: str, updated_at: str) -> None: ...

    # merchants

    @abstractmethod
    def upsert_merchant(self, merchant: Merchant, updated_at: str) -> None: ...

    @abstractmethod
    def get_merchants(self) -> list[Merchant]: ...

    # products

    @abstractmethod
    def upsert_product(self, product: Product) -> None: ...

    @abstractmethod
    def get_product_by_id(self, product_id: str) -> Optional[Product]: ...

    @abstractmethod
    def get_products_by_merchant(self, merchant_id: str, search_term: Optional[str] = None) -> list[Product]: ...

    @abstractmethod
    def get_products_updated_since(self, merchant_id: str, since: Optional[str]) -> list[Product]:
        """All products (inactive included) with updated_at > since, name asc."""

    # receipts

    @abstractmethod
    def save_receipt(self, receipt: Receipt) -> None:
        """
        Upsert the header and replace the full item list.

        Raises DuplicateReceipt when another receipt id already holds the
        same (merchant_id, client_receipt_id).
        """

    @abstractmethod
    def get_receipt_by_id(self, receipt_id: str) -> Optional[Receipt]: ...

    @abstractmethod
    def get_receipt_by_client_id(self, merchant_id: str, client_receipt_id: str) -> Optional[Receipt]: ...

    @abstractmethod
    def get_receipts_by_merchant(self, merchant_id: str) -> list[Receipt]: ...

    @abstractmethod
    def count_pending_receipts(self, merchant_id: Optional[str] = None) -> int:
        """Receipts the backend has not confirmed yet (sync_status PENDING or FAILED)."""

    @abstractmethod
    def update_receipt_sync_state(
        self,
        receipt_id: str,
        sync_status: SyncStatus,
        sync_attempts: int,
        status: Optional[ReceiptStatus] = None,
        number: Optional[str] = None,
    ) -> bool:
        """None for status/number keeps the stored value. Returns False when the receipt is unknown."""

    @abstractmethod
    def replace_receipt_identity(self, old_id: str, new_id: str) -> None:
        """
        Re-key a provisional receipt under the server id.

        Items and queue records follow the receipt. If new_id is already
        stored, the provisional copy is dropped in its favour.
        """

    # sync queue

    @abstractmethod
    def update_sync_queue_item(self, record: SyncQueueRecord) -> None:
        """Insert or replace by record id."""

    @abstractmethod
    def get_sync_queue_item(self, queue_id: str) -> Optional[SyncQueueRecord]: ...

    @abstractmethod
    def get_due_sync_queue_items(self, now: str) -> list[SyncQueueRecord]:
        """status in (PENDING, FAILED) and next_attempt_at <= now, oldest created first."""

    @abstractmethod
    def get_sync_queue_items(
        self, merchant_id: str, status: Optional[SyncQueueStatus] = None
    ) -> list[SyncQueueRecord]: ...

    @abstractmethod
    def get_sync_queue_item_for_receipt(self, receipt_id: str) -> Optional[SyncQueueRecord]: ...

    @abstractmethod
    def delete_sync_queue_item(self, queue_id: str) -> None: ...

    # composite writes; each is applied as one unit

    @abstractmethod
    def record_sync_failure(self, record: SyncQueueRecord) -> None:
        """Store the re-armed queue record and set its receipt to FAILED with the same attempts."""

    @abstractmethod
    def complete_receipt_sync(
        self,
        receipt_id: str,
        status: ReceiptStatus,
        number: Optional[str] = None,
        server_id: Optional[str] = None,
        queue_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Mark a receipt SYNCED, adopt the server identity and drop its queue record.

        Returns the receipt id after the change, or None if the receipt is unknown.
        """
