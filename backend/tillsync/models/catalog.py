from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Product(db.Model):
    """
    Sellable product within a merchant.

    MULTI-TENANT: Scoped by merchant_id.
    Products are never hard-deleted; is_active=False deactivates them and
    the change still reaches clients through the updatedSince pull.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_merchant_updated", "merchant_id", "updated_at"),
    )

    id = db.Column(db.String(64), primary_key=True)
    merchant_id = db.Column(db.String(64), db.ForeignKey("merchants.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    vat_rate = db.Column(db.Float, nullable=False)
    category = db.Column(db.String(80), nullable=True)
    sku = db.Column(db.String(80), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Product id={self.id} merchant={self.merchant_id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchantId": self.merchant_id,
            "name": self.name,
            "priceCents": self.price_cents,
            "vatRate": self.vat_rate,
            "category": self.category,
            "sku": self.sku,
            "isActive": self.is_active,
            "updatedAt": to_utc_z(self.updated_at),
        }
