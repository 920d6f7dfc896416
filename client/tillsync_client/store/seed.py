# Overview: Demo catalog and receipts written into a fresh local store.

from __future__ import annotations

import uuid

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

SEED_VERSION_KEY = "seed.version"
SEED_VERSION = "1"

SEED_MERCHANTS = [
    Merchant(
        id="merchant-brew-haven",
        name="Brew Haven Coffee",
        vat_number="IT12345678901",
        address="12 Bean Street, Milan",
    ),
    Merchant(
        id="merchant-trattoria-roma",
        name="Trattoria Roma",
        vat_number="IT10987654321",
        address="8 Piazza Centro, Rome",
    ),
]

# (id, merchant_id, name, price_cents, vat_rate, category, sku)
SEED_PRODUCTS = [
    ("prod-espresso", "merchant-brew-haven", "Espresso", 180, 10, "Coffee", "COF-001"),
    ("prod-cappuccino", "merchant-brew-haven", "Cappuccino", 320, 10, "Coffee", "COF-002"),
    ("prod-latte", "merchant-brew-haven", "Cafe Latte", 350, 10, "Coffee", "COF-003"),
    ("prod-croissant", "merchant-brew-haven", "Butter Croissant", 250, 10, "Bakery", "BAK-001"),
    ("prod-club-sandwich", "merchant-brew-haven", "Club Sandwich", 720, 10, "Food", "FOD-001"),
    ("prod-pizza-margherita", "merchant-trattoria-roma", "Pizza Margherita", 1150, 10, "Main Course", "RST-001"),
    ("prod-carbonara", "merchant-trattoria-roma", "Spaghetti Carbonara", 1350, 10, "Main Course", "RST-002"),
    ("prod-lasagna", "merchant-trattoria-roma", "Lasagna", 1400, 10, "Main Course", "RST-003"),
    ("prod-tiramisu", "merchant-trattoria-roma", "Tiramisu", 650, 10, "Dessert", "RST-004"),
    ("prod-house-wine", "merchant-trattoria-roma", "House Wine (Glass)", 550, 22, "Drinks", "RST-005"),
]


def seed_receipts(now: str) -> list[Receipt]:
    """One receipt already confirmed by the server and one still waiting to sync."""
    return [
        Receipt(
            id="rcpt-local-001",
            client_receipt_id="client-rcpt-001",
            merchant_id="merchant-brew-haven",
            number="BHC-000001",
            issued_at=now,
            status=ReceiptStatus.COMPLETED,
            sync_status=SyncStatus.SYNCED,
            payment_method=PaymentMethod.CARD,
            currency="EUR",
            subtotal_cents=430,
            tax_cents=43,
            total_cents=473,
            items=[
                ReceiptItem("Espresso", 1, 180, 10, 180),
                ReceiptItem("Butter Croissant", 1, 250, 10, 250),
            ],
            created_offline=False,
        ),
        Receipt(
            id="rcpt-local-002",
            client_receipt_id="client-rcpt-002",
            merchant_id="merchant-trattoria-roma",
            issued_at=now,
            status=ReceiptStatus.PENDING_SYNC,
            sync_status=SyncStatus.PENDING,
            payment_method=PaymentMethod.CASH,
            currency="EUR",
            subtotal_cents=1700,
            tax_cents=236,
            total_cents=1936,
            items=[
                ReceiptItem("Pizza Margherita", 1, 1150, 10, 1150),
                ReceiptItem("House Wine (Glass)", 1, 550, 22, 550),
            ],
            created_offline=True,
        ),
    ]


def seed_catalog(engine: StoreEngine, now: str) -> None:
    """Upsert demo merchants and insert missing demo products. Runs on every init."""
    for merchant in SEED_MERCHANTS:
        engine.upsert_merchant(merchant, now)

    for product_id, merchant_id, name, price_cents, vat_rate, category, sku in SEED_PRODUCTS:
        if engine.get_product_by_id(product_id) is not None:
            # keep local edits and server updates
            continue
        engine.upsert_product(Product(
            id=product_id,
            merchant_id=merchant_id,
            name=name,
            price_cents=price_cents,
            vat_rate=vat_rate,
            category=category,
            sku=sku,
            is_active=True,
            updated_at=now,
        ))


def seed_demo_receipts(engine: StoreEngine, now: str) -> bool:
    """
    Write the demo receipts once, gated by the seed.version setting.

    Returns True when the receipts were written by this call.
    """
    if engine.get_setting(SEED_VERSION_KEY) == SEED_VERSION:
        return False

    for receipt in seed_receipts(now):
        engine.save_receipt(receipt)
        if receipt.sync_status == SyncStatus.PENDING:
            engine.update_sync_queue_item(SyncQueueRecord(
                id=str(uuid.uuid4()),
                merchant_id=receipt.merchant_id,
                receipt_id=receipt.id,
                payload=receipt,
                attempts=receipt.sync_attempts,
                next_attempt_at=now,
                status=SyncQueueStatus.PENDING,
                created_at=now,
                updated_at=now,
            ))

    engine.set_setting(SEED_VERSION_KEY, SEED_VERSION, now)
    return True
