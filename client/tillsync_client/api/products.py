# Overview: /api/products endpoints.

from __future__ import annotations

from typing import Optional

from ..models import Product
from ..repositories.products import SaveProductInput
from .client import ApiClient, parse_body


def product_payload(data: SaveProductInput) -> dict:
    payload = {
        "name": data.name,
        "priceCents": data.price_cents,
        "vatRate": data.vat_rate,
        "isActive": data.is_active,
    }
    if data.category:
        payload["category"] = data.category
    if data.sku:
        payload["sku"] = data.sku
    return payload


class ProductsApi:
    def __init__(self, client: ApiClient):
        self.client = client

    def list(self, updated_since: Optional[str] = None, merchant_id: Optional[str] = None) -> list[Product]:
        params = {"updatedSince": updated_since} if updated_since else None
        body = self.client.request("/api/products", params=params, merchant_id=merchant_id)
        return parse_body(body, lambda b: [Product.from_dict(item) for item in b["items"]])

    def create(self, data: SaveProductInput) -> Product:
        body = self.client.request(
            "/api/products", method="POST", json=product_payload(data), merchant_id=data.merchant_id
        )
        return parse_body(body, lambda b: Product.from_dict(b["item"]))

    def update(self, product_id: str, data: SaveProductInput) -> Product:
        body = self.client.request(
            f"/api/products/{product_id}", method="PUT", json=product_payload(data), merchant_id=data.merchant_id
        )
        return parse_body(body, lambda b: Product.from_dict(b["item"]))
