# backend/tillsync/services/products_service.py
"""
Products Service with Multi-Tenant Support

MULTI-TENANT: Every operation takes the merchant_id established by the
tenant guard. A product id that exists under another merchant is reported
as not found, never as forbidden, so ids do not leak across tenants.
"""
from __future__ import annotations

import uuid
from datetime import datetime

from ..errors import NotFoundError
from ..extensions import db
from ..models import Product
from ..time_utils import utcnow

PRODUCT_MUTABLE_FIELDS = {"name", "price_cents", "vat_rate", "category", "sku", "is_active"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def list_products(merchant_id: str, updated_since: datetime | None = None) -> list[Product]:
    """
    Products for one merchant, ordered by name.

    Inactive products are included so that deactivations reach clients
    through the incremental updatedSince pull.
    """
    query = db.session.query(Product).filter(Product.merchant_id == merchant_id)
    if updated_since is not None:
        query = query.filter(Product.updated_at >= updated_since)
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def get_product(merchant_id: str, product_id: str) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, merchant_id=merchant_id).first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def create_product(merchant_id: str, patch: dict) -> Product:
    now = utcnow()
    product = Product(id=str(uuid.uuid4()), merchant_id=merchant_id, is_active=True, created_at=now, updated_at=now)
    apply_product_patch(product, patch)
    db.session.add(product)
    db.session.commit()
    return product


def update_product(merchant_id: str, product_id: str, patch: dict) -> Product:
    product = get_product(merchant_id, product_id)
    apply_product_patch(product, patch)
    # updated_at drives the incremental pull, so every edit bumps it
    product.updated_at = utcnow()
    db.session.commit()
    return product
