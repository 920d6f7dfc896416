# Overview: Receipt façade: creation, filtering, server merges and sync-state mutation.

from __future__ import annotations

import dataclasses
import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional

from ..models import (
    PaymentMethod,
    Receipt,
    ReceiptItem,
    ReceiptStatus,
    SyncQueueRecord,
    SyncStatus,
)
from ..store import LocalStore
from ..time_utils import normalize_iso, now_iso

logger = logging.getLogger(__name__)


@dataclass
class CreateReceiptInput:
    merchant_id: str
    payment_method: PaymentMethod
    currency: str
    subtotal_cents: int
    tax_cents: int
    total_cents: int
    items: list[ReceiptItem] = field(default_factory=list)
    is_online: bool = False
    client_receipt_id: Optional[str] = None
    issued_at: Optional[str] = None


@dataclass
class ReceiptFilters:
    status: Optional[ReceiptStatus] = None
    payment_method: Optional[PaymentMethod] = None
    # inclusive ISO-8601 bounds on issued_at
    date_from: Optional[str] = None
    date_to: Optional[str] = None


def matches_filters(receipt: Receipt, filters: ReceiptFilters) -> bool:
    if filters.status and receipt.status != filters.status:
        return False
    if filters.payment_method and receipt.payment_method != filters.payment_method:
        return False
    if filters.date_from and receipt.issued_at < normalize_iso(filters.date_from):
        return False
    if filters.date_to and receipt.issued_at > normalize_iso(filters.date_to):
        return False
    return True


class ReceiptsRepo:
    """
    Receipts as the device sees them.

    OWNERSHIP:
    - The client owns PENDING_SYNC, sync_status and sync_attempts.
    - The backend owns number, canonical status and the receipt id once synced.
    - After creation, mark_as_synced / mark_sync_failed are the only calls
      that touch the sync fields.
    """

    def __init__(self, store: LocalStore):
        self.store = store

    def list_by_merchant(self, merchant_id: str, filters: Optional[ReceiptFilters] = None) -> list[Receipt]:
        """Newest first."""
        filters = filters or ReceiptFilters()
        return [r for r in self.store.get_receipts_by_merchant(merchant_id) if matches_filters(r, filters)]

    def get_by_id(self, receipt_id: str) -> Optional[Receipt]:
        return self.store.get_receipt_by_id(receipt_id)

    def get_by_client_receipt_id(self, merchant_id: str, client_receipt_id: str) -> Optional[Receipt]:
        return self.store.get_receipt_by_client_id(merchant_id, client_receipt_id)

    def create_receipt(self, data: CreateReceiptInput) -> Receipt:
        """
        Persist a new receipt.

        Online: COMPLETED / SYNCED, nothing queued.
        Offline: PENDING_SYNC / PENDING, created_offline, plus a queue record.
        """
        receipt = Receipt(
            id=str(uuid.uuid4()),
            client_receipt_id=data.client_receipt_id or str(uuid.uuid4()),
            merchant_id=data.merchant_id,
            issued_at=data.issued_at or now_iso(),
            status=ReceiptStatus.COMPLETED if data.is_online else ReceiptStatus.PENDING_SYNC,
            sync_status=SyncStatus.SYNCED if data.is_online else SyncStatus.PENDING,
            payment_method=PaymentMethod(data.payment_method),
            currency=data.currency,
            subtotal_cents=data.subtotal_cents,
            tax_cents=data.tax_cents,
            total_cents=data.total_cents,
            items=list(data.items),
            created_offline=not data.is_online,
            sync_attempts=0,
        )

        self.store.save_receipt(receipt)

        if not data.is_online:
            self.store.enqueue_receipt_sync(receipt)

        return receipt

    def upsert_from_server(self, server: Receipt) -> Receipt:
        """
        Merge the backend's copy of a receipt.

        Matching is by (merchant_id, client_receipt_id), never by local id:
        a provisional local receipt is re-keyed under the server id. The
        stored copy becomes SYNCED with the server's status and number, and
        any queue record still waiting to submit it is dropped since the
        backend already has it.
        """
        existing = self.store.get_receipt_by_client_id(server.merchant_id, server.client_receipt_id)
        if existing is not None and existing.id != server.id:
            self.store.replace_receipt_identity(existing.id, server.id)

        merged = dataclasses.replace(
            server,
            sync_status=SyncStatus.SYNCED,
            sync_attempts=existing.sync_attempts if existing else 0,
            items=list(server.items),
        )
        self.store.save_receipt(merged)

        pending = self.store.get_sync_queue_item_for_receipt(server.id)
        if pending is not None:
            self.store.delete_sync_queue_item(pending.id)
            logger.info("Dropped queued submission %s; server already has receipt %s", pending.id, server.id)

        return merged

    def mark_as_synced(
        self,
        receipt_id: str,
        number: Optional[str] = None,
        server_id: Optional[str] = None,
        status: ReceiptStatus = ReceiptStatus.COMPLETED,
        queue_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Confirm a receipt: SYNCED, server status, number when given.

        Adopts server_id as the receipt id and removes queue_id in the same
        write. A None number keeps the stored one (409 replays carry none).
        Returns the receipt id after the change, or None if unknown.
        """
        return self.store.complete_receipt_sync(
            receipt_id,
            status=status,
            number=number,
            server_id=server_id,
            queue_id=queue_id,
        )

    def mark_sync_failed(
        self,
        receipt_id: str,
        attempts: int,
        queue_item: Optional[SyncQueueRecord] = None,
    ) -> None:
        """Set FAILED with the new attempt count; with queue_item, store both together."""
        if queue_item is None:
            self.store.update_receipt_sync_state(receipt_id, SyncStatus.FAILED, attempts)
            return
        self.store.record_sync_failure(
            dataclasses.replace(queue_item, receipt_id=receipt_id, attempts=attempts)
        )

    def count_pending_sync(self, merchant_id: Optional[str] = None) -> int:
        return self.store.count_pending_receipts(merchant_id)
