# Overview: Engine-agnostic local store façade with a lazy, shared init.

from __future__ import annotations

import dbm
import logging
import sqlite3
import threading
import uuid
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from ..config import ClientConfig
from ..errors import StorageUnavailable
from ..models import (
    Merchant,
    Product,
    Receipt,
    ReceiptStatus,
    SyncQueueRecord,
    SyncQueueStatus,
    SyncStatus,
)
from ..time_utils import normalize_iso, now_iso
from .base import StoreEngine
from .kv_engine import KeyValueStoreEngine
from .seed import seed_catalog, seed_demo_receipts
from .sql_engine import SqlStoreEngine

logger = logging.getLogger(__name__)

# dbm.error already includes OSError
_ENGINE_ERRORS = (SQLAlchemyError, *dbm.error)

# ON CONFLICT ... DO UPDATE landed in SQLite 3.24
_UPSERT_MIN_SQLITE = (3, 24, 0)


def select_engine_name(preference: str = "auto") -> str:
    if preference != "auto":
        return preference
    return "sql" if sqlite3.sqlite_version_info >= _UPSERT_MIN_SQLITE else "kv"


def build_engine(config: ClientConfig) -> StoreEngine:
    if select_engine_name(config.local_engine) == "sql":
        return SqlStoreEngine(config.local_db_path)
    return KeyValueStoreEngine(config.local_db_path)


class LocalStore:
    """
    Durable on-device storage behind one interface.

    INIT:
    - init() is idempotent. The first caller opens the engine, creates the
      schema and seeds; concurrent callers block until it finishes and then
      share the outcome.
    - A failed init is remembered and re-raised to every caller until
      reset(), so a broken disk is reported once per attempt, not retried
      silently on each call.
    - Every other operation calls ensure_ready(), which triggers init()
      lazily.

    THREADS: engine calls are serialized with one lock; the issuance flow
    and the sync worker share a store.
    """

    def __init__(self, config: Optional[ClientConfig] = None, engine: Optional[StoreEngine] = None):
        self.config = config or ClientConfig()
        self._engine = engine
        self._ready = False
        self._init_error: Optional[StorageUnavailable] = None
        self._init_lock = threading.Lock()
        self._lock = threading.RLock()

    @property
    def mode(self) -> Optional[str]:
        """'sql' or 'kv' once initialized, else None."""
        return self._engine.name if self._ready and self._engine is not None else None

    @property
    def is_ready(self) -> bool:
        return self._ready

    def init(self) -> None:
        with self._init_lock:
            if self._ready:
                return
            if self._init_error is not None:
                raise self._init_error

            engine = self._engine or build_engine(self.config)
            try:
                engine.open()
                engine.create_schema()
                if self.config.seed_demo_data:
                    now = now_iso()
                    seed_catalog(engine, now)
                    if seed_demo_receipts(engine, now):
                        logger.info("Seeded demo receipts")
            except Exception as exc:
                error = exc if isinstance(exc, StorageUnavailable) else StorageUnavailable(
                    f"Local store init failed: {exc}"
                )
                if error is not exc:
                    error.__cause__ = exc
                self._init_error = error
                logger.error("Local store init failed (engine=%s): %s", engine.name, exc)
                try:
                    engine.close()
                except _ENGINE_ERRORS:
                    logger.warning("Engine close after failed init raised", exc_info=True)
                raise error

            self._engine = engine
            self._ready = True
            logger.info("Local store ready (engine=%s)", engine.name)

    def ensure_ready(self) -> StoreEngine:
        if not self._ready:
            self.init()
        return self._engine

    def reset(self) -> None:
        """Close the engine and forget any init failure; the next call re-initializes."""
        with self._init_lock, self._lock:
            if self._ready:
                self._engine.close()
            self._ready = False
            self._init_error = None

    close = reset

    def _call(self, method: str, *args, **kwargs):
        engine = self.ensure_ready()
        with self._lock:
            try:
                return getattr(engine, method)(*args, **kwargs)
            except _ENGINE_ERRORS as exc:
                logger.error("Local store %s failed: %s", method, exc)
                raise StorageUnavailable(f"Local store {method} failed") from exc

    # settings

    def set_setting(self, key: str, value: str) -> None:
        self._call("set_setting", key, value, now_iso())

    def get_setting(self, key: str) -> Optional[str]:
        return self._call("get_setting", key)

    # merchants

    def upsert_merchant(self, merchant: Merchant) -> None:
        self._call("upsert_merchant", merchant, now_iso())

    def get_merchants(self) -> list[Merchant]:
        return self._call("get_merchants")

    # products

    def upsert_product(self, product: Product) -> None:
        self._call("upsert_product", product)

    def get_product_by_id(self, product_id: str) -> Optional[Product]:
        return self._call("get_product_by_id", product_id)

    def get_products_by_merchant(self, merchant_id: str, search_term: Optional[str] = None) -> list[Product]:
        return self._call("get_products_by_merchant", merchant_id, search_term)

    def get_products_updated_since(self, merchant_id: str, since: Optional[str] = None) -> list[Product]:
        return self._call("get_products_updated_since", merchant_id, since)

    # receipts

    def save_receipt(self, receipt: Receipt) -> None:
        self._call("save_receipt", receipt)

    def get_receipt_by_id(self, receipt_id: str) -> Optional[Receipt]:
        return self._call("get_receipt_by_id", receipt_id)

    def get_receipt_by_client_id(self, merchant_id: str, client_receipt_id: str) -> Optional[Receipt]:
        return self._call("get_receipt_by_client_id", merchant_id, client_receipt_id)

    def get_receipts_by_merchant(self, merchant_id: str) -> list[Receipt]:
        return self._call("get_receipts_by_merchant", merchant_id)

    def count_pending_receipts(self, merchant_id: Optional[str] = None) -> int:
        return self._call("count_pending_receipts", merchant_id)

    def update_receipt_sync_state(
        self,
        receipt_id: str,
        sync_status: SyncStatus,
        sync_attempts: int,
        status: Optional[ReceiptStatus] = None,
        number: Optional[str] = None,
    ) -> bool:
        return self._call("update_receipt_sync_state", receipt_id, sync_status, sync_attempts, status, number)

    def replace_receipt_identity(self, old_id: str, new_id: str) -> None:
        self._call("replace_receipt_identity", old_id, new_id)

    # sync queue

    def enqueue_receipt_sync(self, receipt: Receipt, now: Optional[str] = None) -> SyncQueueRecord:
        """Queue a receipt snapshot for submission; due immediately."""
        now = now or now_iso()
        record = SyncQueueRecord(
            id=str(uuid.uuid4()),
            merchant_id=receipt.merchant_id,
            receipt_id=receipt.id,
            payload=receipt,
            attempts=receipt.sync_attempts,
            next_attempt_at=now,
            status=SyncQueueStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self._call("update_sync_queue_item", record)
        return record

    def get_sync_queue_item(self, queue_id: str) -> Optional[SyncQueueRecord]:
        return self._call("get_sync_queue_item", queue_id)

    def get_due_sync_queue_items(self, now: Optional[str] = None) -> list[SyncQueueRecord]:
        # stored times are fixed-width millisecond strings; compare like with like
        return self._call("get_due_sync_queue_items", normalize_iso(now) if now else now_iso())

    def get_sync_queue_items(
        self, merchant_id: str, status: Optional[SyncQueueStatus] = None
    ) -> list[SyncQueueRecord]:
        return self._call("get_sync_queue_items", merchant_id, status)

    def get_sync_queue_item_for_receipt(self, receipt_id: str) -> Optional[SyncQueueRecord]:
        return self._call("get_sync_queue_item_for_receipt", receipt_id)

    def update_sync_queue_item(self, record: SyncQueueRecord) -> None:
        self._call("update_sync_queue_item", record)

    def delete_sync_queue_item(self, queue_id: str) -> None:
        self._call("delete_sync_queue_item", queue_id)

    # composite writes

    def record_sync_failure(self, record: SyncQueueRecord) -> None:
        self._call("record_sync_failure", record)

    def complete_receipt_sync(
        self,
        receipt_id: str,
        status: ReceiptStatus = ReceiptStatus.COMPLETED,
        number: Optional[str] = None,
        server_id: Optional[str] = None,
        queue_id: Optional[str] = None,
    ) -> Optional[str]:
        return self._call("complete_receipt_sync", receipt_id, status, number, server_id, queue_id)
