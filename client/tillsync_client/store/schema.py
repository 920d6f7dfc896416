# Overview: Relational layout of the local store (SQL engine).

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()

merchants = Table(
    "merchants",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(200), nullable=False),
    Column("vat_number", String(64)),
    Column("address", String(255)),
    Column("updated_at", String(32), nullable=False),
)

products = Table(
    "products",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("merchant_id", String(64), nullable=False),
    Column("name", String(120), nullable=False),
    Column("price_cents", Integer, nullable=False),
    Column("vat_rate", Float, nullable=False),
    Column("category", String(80)),
    Column("sku", String(80)),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("updated_at", String(32), nullable=False),
    Index("ix_products_merchant_updated", "merchant_id", "updated_at"),
)

receipts = Table(
    "receipts",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("client_receipt_id", String(64), nullable=False),
    Column("merchant_id", String(64), nullable=False),
    Column("number", String(32)),
    Column("issued_at", String(32), nullable=False),
    Column("status", String(16), nullable=False),
    Column("sync_status", String(16), nullable=False),
    Column("payment_method", String(16), nullable=False),
    Column("currency", String(3), nullable=False),
    Column("subtotal_cents", Integer, nullable=False),
    Column("tax_cents", Integer, nullable=False),
    Column("total_cents", Integer, nullable=False),
    Column("created_offline", Boolean, nullable=False, default=False),
    Column("sync_attempts", Integer, nullable=False, default=0),
    UniqueConstraint("merchant_id", "client_receipt_id", name="uq_receipts_merchant_client_id"),
    Index("ix_receipts_merchant_issued", "merchant_id", "issued_at"),
    Index("ix_receipts_sync_status", "sync_status"),
)

# Owned by a receipt; always rewritten as a whole set
receipt_items = Table(
    "receipt_items",
    metadata,
    Column("receipt_id", String(64), primary_key=True),
    Column("position", Integer, primary_key=True),
    Column("name", String(120), nullable=False),
    Column("qty", Integer, nullable=False),
    Column("unit_price_cents", Integer, nullable=False),
    Column("vat_rate", Float, nullable=False),
    Column("line_total_cents", Integer, nullable=False),
)

sync_queue = Table(
    "sync_queue",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("merchant_id", String(64), nullable=False),
    Column("receipt_id", String(64), nullable=False),
    Column("payload_json", Text, nullable=False),
    Column("attempts", Integer, nullable=False, default=0),
    Column("next_attempt_at", String(32), nullable=False),
    Column("status", String(16), nullable=False),
    Column("last_error", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Index("ix_sync_queue_status_next_attempt", "status", "next_attempt_at"),
    Index("ix_sync_queue_merchant", "merchant_id"),
)

app_settings = Table(
    "app_settings",
    metadata,
    Column("key", String(120), primary_key=True),
    Column("value", Text, nullable=False),
    Column("updated_at", String(32), nullable=False),
)
