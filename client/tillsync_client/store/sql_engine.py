# Overview: Local store on SQLite through SQLAlchemy Core.

from __future__ import annotations

import json
import logging
from typing import Optional

from sqlalchemy import create_engine, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from ..errors import DuplicateReceipt, StorageUnavailable
from ..models import (
    Merchant,
    PaymentMethod,
    Product,
    Receipt,
    ReceiptItem,
    ReceiptStatus,
    SyncQueueRecord,
    SyncQueueStatus,
    SyncStatus,
)
from .base import StoreEngine
from .schema import app_settings, merchants, metadata, products, receipt_items, receipts, sync_queue

logger = logging.getLogger(__name__)

_DUE_STATUSES = (SyncQueueStatus.PENDING.value, SyncQueueStatus.FAILED.value)
_UNSYNCED = (SyncStatus.PENDING.value, SyncStatus.FAILED.value)


def _upsert(conn: Connection, table, values: dict, key: str = "id") -> None:
    """INSERT ... ON CONFLICT(key) DO UPDATE (needs SQLite >= 3.24)."""
    stmt = sqlite_insert(table).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c[key]],
        set_={name: stmt.excluded[name] for name in values if name != key},
    )
    conn.execute(stmt)


def _product_row(product: Product) -> dict:
    return {
        "id": product.id,
        "merchant_id": product.merchant_id,
        "name": product.name,
        "price_cents": product.price_cents,
        "vat_rate": product.vat_rate,
        "category": product.category,
        "sku": product.sku,
        "is_active": bool(product.is_active),
        "updated_at": product.updated_at,
    }


def _product_from_row(row) -> Product:
    return Product(
        id=row["id"],
        merchant_id=row["merchant_id"],
        name=row["name"],
        price_cents=row["price_cents"],
        vat_rate=row["vat_rate"],
        category=row["category"],
        sku=row["sku"],
        is_active=bool(row["is_active"]),
        updated_at=row["updated_at"],
    )


def _receipt_row(receipt: Receipt) -> dict:
    return {
        "id": receipt.id,
        "client_receipt_id": receipt.client_receipt_id,
        "merchant_id": receipt.merchant_id,
        "number": receipt.number,
        "issued_at": receipt.issued_at,
        "status": ReceiptStatus(receipt.status).value,
        "sync_status": SyncStatus(receipt.sync_status).value,
        "payment_method": PaymentMethod(receipt.payment_method).value,
        "currency": receipt.currency,
        "subtotal_cents": receipt.subtotal_cents,
        "tax_cents": receipt.tax_cents,
        "total_cents": receipt.total_cents,
        "created_offline": bool(receipt.created_offline),
        "sync_attempts": receipt.sync_attempts,
    }


def _receipt_kwargs(row) -> dict:
    return {
        "id": row["id"],
        "client_receipt_id": row["client_receipt_id"],
        "merchant_id": row["merchant_id"],
        "number": row["number"],
        "issued_at": row["issued_at"],
        "status": ReceiptStatus(row["status"]),
        "sync_status": SyncStatus(row["sync_status"]),
        "payment_method": PaymentMethod(row["payment_method"]),
        "currency": row["currency"],
        "subtotal_cents": row["subtotal_cents"],
        "tax_cents": row["tax_cents"],
        "total_cents": row["total_cents"],
        "created_offline": bool(row["created_offline"]),
        "sync_attempts": row["sync_attempts"],
    }


def _queue_row(record: SyncQueueRecord) -> dict:
    return {
        "id": record.id,
        "merchant_id": record.merchant_id,
        "receipt_id": record.receipt_id,
        "payload_json": json.dumps(record.payload.to_dict()),
        "attempts": record.attempts,
        "next_attempt_at": record.next_attempt_at,
        "status": SyncQueueStatus(record.status).value,
        "last_error": record.last_error,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
    }


def _queue_from_row(row) -> SyncQueueRecord:
    return SyncQueueRecord(
        id=row["id"],
        merchant_id=row["merchant_id"],
        receipt_id=row["receipt_id"],
        payload=Receipt.from_dict(json.loads(row["payload_json"])),
        attempts=row["attempts"],
        next_attempt_at=row["next_attempt_at"],
        status=SyncQueueStatus(row["status"]),
        last_error=row["last_error"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _queue_records(rows) -> list[SyncQueueRecord]:
    """Decode queue rows; an undecodable row is logged and skipped."""
    records = []
    for row in rows:
        try:
            records.append(_queue_from_row(row))
        except (KeyError, TypeError, ValueError):
            logger.exception("Skipping undecodable sync queue record %s", row["id"])
    return records


class SqlStoreEngine(StoreEngine):
    """
    Relational engine.

    The in-memory variant pins a single connection with StaticPool so every
    thread sees the same database; LocalStore serializes access.
    """

    name = "sql"

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._engine: Optional[Engine] = None

    def open(self) -> None:
        if self.path:
            self._engine = create_engine(
                f"sqlite:///{self.path}",
                connect_args={"check_same_thread": False},
            )
        else:
            self._engine = create_engine(
                "sqlite://",
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise StorageUnavailable("SQL engine is not open")
        return self._engine

    def create_schema(self) -> None:
        metadata.create_all(self.engine)

    # settings

    def get_setting(self, key):
        with self.engine.connect() as conn:
            return conn.execute(
                select(app_settings.c.value).where(app_settings.c.key == key)
            ).scalar_one_or_none()

    def set_setting(self, key, value, updated_at):
        with self.engine.begin() as conn:
            _upsert(conn, app_settings, {"key": key, "value": value, "updated_at": updated_at}, key="key")

    # merchants

    def upsert_merchant(self, merchant, updated_at):
        with self.engine.begin() as conn:
            _upsert(conn, merchants, {
                "id": merchant.id,
                "name": merchant.name,
                "vat_number": merchant.vat_number,
                "address": merchant.address,
                "updated_at": updated_at,
            })

    def get_merchants(self):
        with self.engine.connect() as conn:
            rows = conn.execute(select(merchants).order_by(merchants.c.name, merchants.c.id)).mappings().all()
        return [
            Merchant(id=row["id"], name=row["name"], vat_number=row["vat_number"], address=row["address"])
            for row in rows
        ]

    # products

    def upsert_product(self, product):
        with self.engine.begin() as conn:
            _upsert(conn, products, _product_row(product))

    def get_product_by_id(self, product_id):
        with self.engine.connect() as conn:
            row = conn.execute(select(products).where(products.c.id == product_id)).mappings().first()
        return _product_from_row(row) if row else None

    def get_products_by_merchant(self, merchant_id, search_term=None):
        query = select(products).where(
            products.c.merchant_id == merchant_id,
            products.c.is_active.is_(True),
        )
        term = (search_term or "").strip()
        if term:
            query = query.where(func.lower(products.c.name).contains(term.lower(), autoescape=True))
        query = query.order_by(products.c.name, products.c.id)

        with self.engine.connect() as conn:
            rows = conn.execute(query).mappings().all()
        return [_product_from_row(row) for row in rows]

    def get_products_updated_since(self, merchant_id, since):
        query = select(products).where(products.c.merchant_id == merchant_id)
        if since:
            query = query.where(products.c.updated_at > since)
        query = query.order_by(products.c.name, products.c.id)

        with self.engine.connect() as conn:
            rows = conn.execute(query).mappings().all()
        return [_product_from_row(row) for row in rows]

    # receipts

    def _items_for(self, conn: Connection, receipt_ids: list[str]) -> dict[str, list[ReceiptItem]]:
        grouped: dict[str, list[ReceiptItem]] = {receipt_id: [] for receipt_id in receipt_ids}
        if not receipt_ids:
            return grouped
        rows = conn.execute(
            select(receipt_items)
            .where(receipt_items.c.receipt_id.in_(receipt_ids))
            .order_by(receipt_items.c.receipt_id, receipt_items.c.position)
        ).mappings().all()
        for row in rows:
            grouped[row["receipt_id"]].append(ReceiptItem(
                name=row["name"],
                qty=row["qty"],
                unit_price_cents=row["unit_price_cents"],
                vat_rate=row["vat_rate"],
                line_total_cents=row["line_total_cents"],
            ))
        return grouped

    def _load_receipts(self, conn: Connection, query) -> list[Receipt]:
        rows = conn.execute(query).mappings().all()
        items = self._items_for(conn, [row["id"] for row in rows])
        return [Receipt(**_receipt_kwargs(row), items=items[row["id"]]) for row in rows]

    def save_receipt(self, receipt):
        try:
            with self.engine.begin() as conn:
                _upsert(conn, receipts, _receipt_row(receipt))
                conn.execute(receipt_items.delete().where(receipt_items.c.receipt_id == receipt.id))
                if receipt.items:
                    conn.execute(receipt_items.insert(), [
                        {
                            "receipt_id": receipt.id,
                            "position": position,
                            "name": item.name,
                            "qty": item.qty,
                            "unit_price_cents": item.unit_price_cents,
                            "vat_rate": item.vat_rate,
                            "line_total_cents": item.line_total_cents,
                        }
                        for position, item in enumerate(receipt.items)
                    ])
        except IntegrityError as exc:
            raise DuplicateReceipt(receipt.merchant_id, receipt.client_receipt_id) from exc

    def get_receipt_by_id(self, receipt_id):
        with self.engine.connect() as conn:
            found = self._load_receipts(conn, select(receipts).where(receipts.c.id == receipt_id))
        return found[0] if found else None

    def get_receipt_by_client_id(self, merchant_id, client_receipt_id):
        with self.engine.connect() as conn:
            found = self._load_receipts(conn, select(receipts).where(
                receipts.c.merchant_id == merchant_id,
                receipts.c.client_receipt_id == client_receipt_id,
            ))
        return found[0] if found else None

    def get_receipts_by_merchant(self, merchant_id):
        query = (
            select(receipts)
            .where(receipts.c.merchant_id == merchant_id)
            .order_by(receipts.c.issued_at.desc(), receipts.c.id.desc())
        )
        with self.engine.connect() as conn:
            return self._load_receipts(conn, query)

    def count_pending_receipts(self, merchant_id=None):
        query = select(func.count()).select_from(receipts).where(receipts.c.sync_status.in_(_UNSYNCED))
        if merchant_id is not None:
            query = query.where(receipts.c.merchant_id == merchant_id)
        with self.engine.connect() as conn:
            return conn.execute(query).scalar_one()

    def _update_sync_state(self, conn, receipt_id, sync_status, sync_attempts=None, status=None, number=None) -> bool:
        values = {"sync_status": SyncStatus(sync_status).value}
        if sync_attempts is not None:
            values["sync_attempts"] = sync_attempts
        if status is not None:
            values["status"] = ReceiptStatus(status).value
        if number is not None:
            values["number"] = number
        result = conn.execute(receipts.update().where(receipts.c.id == receipt_id).values(**values))
        return result.rowcount > 0

    def update_receipt_sync_state(self, receipt_id, sync_status, sync_attempts, status=None, number=None):
        with self.engine.begin() as conn:
            return self._update_sync_state(conn, receipt_id, sync_status, sync_attempts, status, number)

    def _replace_identity(self, conn: Connection, old_id: str, new_id: str) -> None:
        if old_id == new_id:
            return
        taken = conn.execute(select(receipts.c.id).where(receipts.c.id == new_id)).first()
        if taken:
            conn.execute(receipt_items.delete().where(receipt_items.c.receipt_id == old_id))
            conn.execute(receipts.delete().where(receipts.c.id == old_id))
        else:
            conn.execute(receipts.update().where(receipts.c.id == old_id).values(id=new_id))
            conn.execute(
                receipt_items.update().where(receipt_items.c.receipt_id == old_id).values(receipt_id=new_id)
            )
        conn.execute(sync_queue.update().where(sync_queue.c.receipt_id == old_id).values(receipt_id=new_id))

    def replace_receipt_identity(self, old_id, new_id):
        with self.engine.begin() as conn:
            self._replace_identity(conn, old_id, new_id)

    # sync queue

    def update_sync_queue_item(self, record):
        with self.engine.begin() as conn:
            _upsert(conn, sync_queue, _queue_row(record))

    def get_sync_queue_item(self, queue_id):
        with self.engine.connect() as conn:
            row = conn.execute(select(sync_queue).where(sync_queue.c.id == queue_id)).mappings().first()
        return _queue_from_row(row) if row else None

    def get_due_sync_queue_items(self, now):
        query = (
            select(sync_queue)
            .where(sync_queue.c.status.in_(_DUE_STATUSES), sync_queue.c.next_attempt_at <= now)
            .order_by(sync_queue.c.created_at, sync_queue.c.id)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).mappings().all()
        return _queue_records(rows)

    def get_sync_queue_items(self, merchant_id, status=None):
        query = select(sync_queue).where(sync_queue.c.merchant_id == merchant_id)
        if status is not None:
            query = query.where(sync_queue.c.status == SyncQueueStatus(status).value)
        query = query.order_by(sync_queue.c.created_at, sync_queue.c.id)
        with self.engine.connect() as conn:
            rows = conn.execute(query).mappings().all()
        return _queue_records(rows)

    def get_sync_queue_item_for_receipt(self, receipt_id):
        query = (
            select(sync_queue)
            .where(sync_queue.c.receipt_id == receipt_id)
            .order_by(sync_queue.c.created_at)
            .limit(1)
        )
        with self.engine.connect() as conn:
            row = conn.execute(query).mappings().first()
        return _queue_from_row(row) if row else None

    def delete_sync_queue_item(self, queue_id):
        with self.engine.begin() as conn:
            conn.execute(sync_queue.delete().where(sync_queue.c.id == queue_id))

    # composite writes

    def record_sync_failure(self, record):
        with self.engine.begin() as conn:
            _upsert(conn, sync_queue, _queue_row(record))
            self._update_sync_state(conn, record.receipt_id, SyncStatus.FAILED, record.attempts)

    def complete_receipt_sync(self, receipt_id, status, number=None, server_id=None, queue_id=None):
        with self.engine.begin() as conn:
            current = receipt_id
            if conn.execute(select(receipts.c.id).where(receipts.c.id == receipt_id)).first() is None:
                if server_id and conn.execute(select(receipts.c.id).where(receipts.c.id == server_id)).first():
                    current = server_id
                else:
                    current = None

            if current is not None:
                if server_id and server_id != current:
                    self._replace_identity(conn, current, server_id)
                    current = server_id
                self._update_sync_state(conn, current, SyncStatus.SYNCED, status=status, number=number)

            if queue_id:
                conn.execute(sync_queue.delete().where(sync_queue.c.id == queue_id))

        return current
