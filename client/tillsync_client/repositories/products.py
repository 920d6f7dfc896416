# Overview: Product catalog reads and writes against the local store.

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

from ..models import Product
from ..store import LocalStore, SEED_PRODUCTS
from ..time_utils import now_iso


@dataclass
class SaveProductInput:
    merchant_id: str
    name: str
    price_cents: int
    vat_rate: float
    id: Optional[str] = None
    category: Optional[str] = None
    sku: Optional[str] = None
    is_active: bool = True


def _clean(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


class ProductsRepo:
    def __init__(self, store: LocalStore):
        self.store = store

    def list_by_merchant(self, merchant_id: str, search_term: Optional[str] = None) -> list[Product]:
        """Active products only, name ascending."""
        return self.store.get_products_by_merchant(merchant_id, search_term)

    def get_by_id(self, product_id: str) -> Optional[Product]:
        return self.store.get_product_by_id(product_id)

    def upsert_from_server(self, product: Product) -> None:
        self.store.upsert_product(product)

    def save(self, data: SaveProductInput) -> Product:
        product = Product(
            id=data.id or str(uuid.uuid4()),
            merchant_id=data.merchant_id,
            name=data.name.strip(),
            price_cents=data.price_cents,
            vat_rate=data.vat_rate,
            category=_clean(data.category),
            sku=_clean(data.sku),
            is_active=data.is_active,
            updated_at=now_iso(),
        )
        self.store.upsert_product(product)
        return product

    def seed_demo_products(self, merchant_id: Optional[str] = None) -> int:
        """Restore the demo catalog (optionally for one merchant). Returns how many were written."""
        now = now_iso()
        candidates = [row for row in SEED_PRODUCTS if merchant_id is None or row[1] == merchant_id]
        for product_id, owner_id, name, price_cents, vat_rate, category, sku in candidates:
            self.store.upsert_product(Product(
                id=product_id,
                merchant_id=owner_id,
                name=name,
                price_cents=price_cents,
                vat_rate=vat_rate,
                category=category,
                sku=sku,
                is_active=True,
                updated_at=now,
            ))
        return len(candidates)
