# Overview: Local store as JSON documents in a key-value mapping.

from __future__ import annotations

import json
import logging
import shelve
from collections.abc import MutableMapping
from typing import Iterator, Optional

from ..errors import DuplicateReceipt, StorageUnavailable
from ..models import Merchant, Product, Receipt, ReceiptStatus, SyncQueueRecord, SyncQueueStatus, SyncStatus
from .base import StoreEngine

logger = logging.getLogger(__name__)

_DUE_STATUSES = (SyncQueueStatus.PENDING, SyncQueueStatus.FAILED)
_UNSYNCED = (SyncStatus.PENDING, SyncStatus.FAILED)


def _client_key(merchant_id: str, client_receipt_id: str) -> str:
    return f"receipt_client:{merchant_id}:{client_receipt_id}"


class KeyValueStoreEngine(StoreEngine):
    """
    Fallback engine for platforms without a usable SQLite.

    Layout: one JSON document per entity under "<collection>:<id>".
    Receipt items are embedded in the receipt document, so replacing the
    item list is a single write. A secondary key per (merchant, client id)
    enforces the receipt uniqueness rule.

    On disk the mapping is a shelve file; in memory it is a plain dict.
    """

    name = "kv"

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._docs: Optional[MutableMapping] = None

    def open(self) -> None:
        self._docs = shelve.open(self.path) if self.path else {}

    def close(self) -> None:
        if isinstance(self._docs, shelve.Shelf):
            self._docs.close()
        self._docs = None

    @property
    def docs(self) -> MutableMapping:
        if self._docs is None:
            raise StorageUnavailable("Key-value engine is not open")
        return self._docs

    def create_schema(self) -> None:
        # Collections are key prefixes; only the layout version is recorded
        self.docs.setdefault("meta:layout", json.dumps({"version": 1}))

    # low-level helpers

    def _get(self, collection: str, doc_id: str) -> Optional[dict]:
        raw = self.docs.get(f"{collection}:{doc_id}")
        return json.loads(raw) if raw is not None else None

    def _put(self, collection: str, doc_id: str, doc: dict) -> None:
        self.docs[f"{collection}:{doc_id}"] = json.dumps(doc)

    def _delete(self, collection: str, doc_id: str) -> None:
        self.docs.pop(f"{collection}:{doc_id}", None)

    def _scan(self, collection: str) -> Iterator[dict]:
        prefix = f"{collection}:"
        for key in list(self.docs.keys()):
            if key.startswith(prefix):
                yield json.loads(self.docs[key])

    # settings

    def get_setting(self, key):
        doc = self._get("settings", key)
        return doc["value"] if doc else None

    def set_setting(self, key, value, updated_at):
        self._put("settings", key, {"key": key, "value": value, "updatedAt": updated_at})

    # merchants

    def upsert_merchant(self, merchant, updated_at):
        self._put("merchants", merchant.id, {**merchant.to_dict(), "updatedAt": updated_at})

    def get_merchants(self):
        found = [Merchant.from_dict(doc) for doc in self._scan("merchants")]
        return sorted(found, key=lambda m: (m.name, m.id))

    # products

    def upsert_product(self, product):
        self._put("products", product.id, product.to_dict())

    def get_product_by_id(self, product_id):
        doc = self._get("products", product_id)
        return Product.from_dict(doc) if doc else None

    def get_products_by_merchant(self, merchant_id, search_term=None):
        term = (search_term or "").strip().lower()
        found = [
            product
            for product in (Product.from_dict(doc) for doc in self._scan("products"))
            if product.merchant_id == merchant_id
            and product.is_active
            and (not term or term in product.name.lower())
        ]
        return sorted(found, key=lambda p: (p.name, p.id))

    def get_products_updated_since(self, merchant_id, since):
        found = [
            product
            for product in (Product.from_dict(doc) for doc in self._scan("products"))
            if product.merchant_id == merchant_id and (not since or product.updated_at > since)
        ]
        return sorted(found, key=lambda p: (p.name, p.id))

    # receipts

    def save_receipt(self, receipt):
        key = _client_key(receipt.merchant_id, receipt.client_receipt_id)
        owner = self.docs.get(key)
        if owner is not None and owner != receipt.id:
            raise DuplicateReceipt(receipt.merchant_id, receipt.client_receipt_id)

        previous = self._get("receipts", receipt.id)
        if previous is not None:
            previous_key = _client_key(previous["merchantId"], previous["clientReceiptId"])
            if previous_key != key:
                self.docs.pop(previous_key, None)

        self._put("receipts", receipt.id, receipt.to_dict())
        self.docs[key] = receipt.id

    def get_receipt_by_id(self, receipt_id):
        doc = self._get("receipts", receipt_id)
        return Receipt.from_dict(doc) if doc else None

    def get_receipt_by_client_id(self, merchant_id, client_receipt_id):
        receipt_id = self.docs.get(_client_key(merchant_id, client_receipt_id))
        return self.get_receipt_by_id(receipt_id) if receipt_id else None

    def get_receipts_by_merchant(self, merchant_id):
        found = [
            receipt
            for receipt in (Receipt.from_dict(doc) for doc in self._scan("receipts"))
            if receipt.merchant_id == merchant_id
        ]
        return sorted(found, key=lambda r: (r.issued_at, r.id), reverse=True)

    def count_pending_receipts(self, merchant_id=None):
        return sum(
            1
            for doc in self._scan("receipts")
            if SyncStatus(doc["syncStatus"]) in _UNSYNCED
            and (merchant_id is None or doc["merchantId"] == merchant_id)
        )

    def _update_sync_state(self, receipt_id, sync_status, sync_attempts=None, status=None, number=None) -> bool:
        doc = self._get("receipts", receipt_id)
        if doc is None:
            return False
        doc["syncStatus"] = SyncStatus(sync_status).value
        if sync_attempts is not None:
            doc["syncAttempts"] = sync_attempts
        if status is not None:
            doc["status"] = ReceiptStatus(status).value
        if number is not None:
            doc["number"] = number
        self._put("receipts", receipt_id, doc)
        return True

    def update_receipt_sync_state(self, receipt_id, sync_status, sync_attempts, status=None, number=None):
        return self._update_sync_state(receipt_id, sync_status, sync_attempts, status, number)

    def replace_receipt_identity(self, old_id, new_id):
        if old_id == new_id:
            return
        doc = self._get("receipts", old_id)
        if doc is not None:
            key = _client_key(doc["merchantId"], doc["clientReceiptId"])
            if self._get("receipts", new_id) is None:
                doc["id"] = new_id
                self._put("receipts", new_id, doc)
                self.docs[key] = new_id
            elif self.docs.get(key) == old_id:
                self.docs[key] = new_id
            self._delete("receipts", old_id)

        for record in self._scan("queue"):
            if record["receiptId"] == old_id:
                record["receiptId"] = new_id
                self._put("queue", record["id"], record)

    # sync queue

    def update_sync_queue_item(self, record):
        self._put("queue", record.id, record.to_dict())

    def get_sync_queue_item(self, queue_id):
        doc = self._get("queue", queue_id)
        return SyncQueueRecord.from_dict(doc) if doc else None

    def _queue(self) -> list[SyncQueueRecord]:
        # an undecodable record is logged and left out
        records = []
        for key in list(self.docs.keys()):
            if not key.startswith("queue:"):
                continue
            try:
                records.append(SyncQueueRecord.from_dict(json.loads(self.docs[key])))
            except (KeyError, TypeError, ValueError):
                logger.exception("Skipping undecodable sync queue record %s", key)
        return sorted(records, key=lambda r: (r.created_at, r.id))

    def get_due_sync_queue_items(self, now):
        return [
            record
            for record in self._queue()
            if record.status in _DUE_STATUSES and record.next_attempt_at <= now
        ]

    def get_sync_queue_items(self, merchant_id, status=None):
        return [
            record
            for record in self._queue()
            if record.merchant_id == merchant_id
            and (status is None or record.status == SyncQueueStatus(status))
        ]

    def get_sync_queue_item_for_receipt(self, receipt_id):
        for record in self._queue():
            if record.receipt_id == receipt_id:
                return record
        return None

    def delete_sync_queue_item(self, queue_id):
        self._delete("queue", queue_id)

    # composite writes

    def record_sync_failure(self, record):
        self._update_sync_state(record.receipt_id, SyncStatus.FAILED, record.attempts)
        self.update_sync_queue_item(record)

    def complete_receipt_sync(self, receipt_id, status, number=None, server_id=None, queue_id=None):
        current = receipt_id
        if self._get("receipts", receipt_id) is None:
            current = server_id if server_id and self._get("receipts", server_id) else None

        if current is not None:
            if server_id and server_id != current:
                self.replace_receipt_identity(current, server_id)
                current = server_id
            self._update_sync_state(current, SyncStatus.SYNCED, status=status, number=number)

        if queue_id:
            self._delete("queue", queue_id)

        return current
