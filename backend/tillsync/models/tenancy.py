from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Merchant(db.Model):
    """
    Multi-tenant root: every tenant is a Merchant.

    WHY: Shared-database multi-tenancy with strict isolation.
    Products, receipts, counters and audit events all carry merchant_id.
    No data may cross merchant boundaries.

    Merchant ids are stable string keys (e.g., "merchant-brew-haven") because
    clients cache them offline and send them back on every tenant-scoped call.
    """
    __tablename__ = "merchants"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    vat_number = db.Column(db.String(64), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Merchant id={self.id} name={self.name!r}>"

    def to_dict(self, role: str | None = None) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "vatNumber": self.vat_number,
            "address": self.address,
        }
        if role is not None:
            data["role"] = role
        return data


class UserMerchant(db.Model):
    """
    Membership of a user in a merchant.

    MULTI-TENANT: The set of memberships is what a session token captures as
    its merchant claims at issue time.
    """
    __tablename__ = "user_merchants"
    __table_args__ = (
        db.UniqueConstraint("user_id", "merchant_id", name="uq_user_merchants_pair"),
        db.Index("ix_user_merchants_merchant", "merchant_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=False, index=True)
    merchant_id = db.Column(db.String(64), db.ForeignKey("merchants.id"), nullable=False)
    role = db.Column(db.String(32), nullable=False, default="OWNER")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    merchant = db.relationship("Merchant")


class MerchantCounter(db.Model):
    """
    Per-merchant receipt counter.

    WHY: Single source of truth for sequential receipt numbers. Incremented
    only inside the receipt create transaction so a number is handed out
    exactly once.
    """
    __tablename__ = "merchant_counters"

    merchant_id = db.Column(db.String(64), db.ForeignKey("merchants.id"), primary_key=True)
    last_number = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "merchantId": self.merchant_id,
            "lastNumber": self.last_number,
            "updatedAt": to_utc_z(self.updated_at),
        }
