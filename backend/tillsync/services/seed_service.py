# Overview: Idempotent demo data for development and the `system init` command.

from __future__ import annotations

from ..extensions import db
from ..models import Merchant, MerchantCounter, Product
from ..time_utils import utcnow

DEMO_MERCHANTS = [
    {
        "id": "merchant-brew-haven",
        "name": "Brew Haven Coffee",
        "vat_number": "IT12345678901",
        "address": "12 Bean Street, Milan",
    },
    {
        "id": "merchant-trattoria-roma",
        "name": "Trattoria Roma",
        "vat_number": "IT10987654321",
        "address": "8 Piazza Centro, Rome",
    },
]

# (id, merchant_id, name, price_cents, vat_rate, category, sku)
DEMO_PRODUCTS = [
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


def seed_demo_data() -> dict:
    """
    Insert demo merchants, their counters and products when missing.

    Existing rows are left untouched, so running it twice is a no-op.
    Returns counts of rows created per table.
    """
    now = utcnow()
    created = {"merchants": 0, "counters": 0, "products": 0}

    for data in DEMO_MERCHANTS:
        if db.session.get(Merchant, data["id"]) is None:
            db.session.add(Merchant(created_at=now, updated_at=now, **data))
            created["merchants"] += 1
        if db.session.get(MerchantCounter, data["id"]) is None:
            db.session.add(MerchantCounter(merchant_id=data["id"], last_number=0, updated_at=now))
            created["counters"] += 1

    for product_id, merchant_id, name, price_cents, vat_rate, category, sku in DEMO_PRODUCTS:
        if db.session.get(Product, product_id) is not None:
            continue
        db.session.add(Product(
            id=product_id,
            merchant_id=merchant_id,
            name=name,
            price_cents=price_cents,
            vat_rate=float(vat_rate),
            category=category,
            sku=sku,
            is_active=True,
            created_at=now,
            updated_at=now,
        ))
        created["products"] += 1

    db.session.commit()
    return created
