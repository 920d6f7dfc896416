from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


RECEIPT_STATUSES = ("COMPLETED", "VOIDED", "REFUNDED")
PAYMENT_METHODS = ("CASH", "CARD", "WALLET", "SPLIT")
SYNC_EVENT_TYPES = ("RECEIPT_CREATED", "RECEIPT_VOIDED", "RECEIPT_REFUNDED")


class Receipt(db.Model):
    """
    Issued receipt (server copy).

    WHY: The backend owns the canonical identity, status and number.
    PENDING_SYNC is a client-only state and is never stored here.

    IDEMPOTENCY: (merchant_id, client_receipt_id) is unique, so one purchase
    can be submitted any number of times and still produce one row.
    NUMBERING: (merchant_id, number) is unique as a backstop for the counter.
    """
    __tablename__ = "receipts"
    __table_args__ = (
        db.UniqueConstraint("merchant_id", "client_receipt_id", name="uq_receipts_merchant_client_id"),
        db.UniqueConstraint("merchant_id", "number", name="uq_receipts_merchant_number"),
        db.Index("ix_receipts_merchant_issued", "merchant_id", "issued_at"),
    )

    id = db.Column(db.String(64), primary_key=True)
    merchant_id = db.Column(db.String(64), db.ForeignKey("merchants.id"), nullable=False, index=True)
    client_receipt_id = db.Column(db.String(128), nullable=False)
    number = db.Column(db.String(32), nullable=False)
    issued_at = db.Column(db.DateTime(timezone=True), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="COMPLETED")
    payment_method = db.Column(db.String(16), nullable=False)
    currency = db.Column(db.String(3), nullable=False)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    created_by_user_id = db.Column(db.String(128), db.ForeignKey("users.id"), nullable=True)
    created_offline = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    items = db.relationship(
        "ReceiptItem",
        backref="receipt",
        lazy=True,
        order_by="ReceiptItem.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Receipt id={self.id} number={self.number} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchantId": self.merchant_id,
            "clientReceiptId": self.client_receipt_id,
            "number": self.number,
            "issuedAt": to_utc_z(self.issued_at),
            "status": self.status,
            "paymentMethod": self.payment_method,
            "currency": self.currency,
            "subtotalCents": self.subtotal_cents,
            "taxCents": self.tax_cents,
            "totalCents": self.total_cents,
            "createdOffline": self.created_offline,
            "createdByUserId": self.created_by_user_id,
            "updatedAt": to_utc_z(self.updated_at),
            "items": [item.to_dict() for item in self.items],
        }


class ReceiptItem(db.Model):
    """Receipt line. position keeps the order the lines were submitted in."""
    __tablename__ = "receipt_items"
    __table_args__ = (
        db.Index("ix_receipt_items_receipt", "receipt_id", "position"),
    )

    id = db.Column(db.String(64), primary_key=True)
    receipt_id = db.Column(db.String(64), db.ForeignKey("receipts.id"), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    name = db.Column(db.String(120), nullable=False)
    qty = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    vat_rate = db.Column(db.Float, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "qty": self.qty,
            "unitPriceCents": self.unit_price_cents,
            "vatRate": self.vat_rate,
            "lineTotalCents": self.line_total_cents,
        }


class SyncEvent(db.Model):
    """
    Append-only audit trail of receipt changes.

    WHY: Written inside the same transaction as the change it records, so an
    event exists if and only if the change committed.
    """
    __tablename__ = "sync_events"
    __table_args__ = (
        db.Index("ix_sync_events_merchant_at", "merchant_id", "at"),
    )

    id = db.Column(db.String(64), primary_key=True)
    merchant_id = db.Column(db.String(64), db.ForeignKey("merchants.id"), nullable=False)
    receipt_id = db.Column(db.String(64), db.ForeignKey("receipts.id"), nullable=True)
    type = db.Column(db.String(32), nullable=False)
    at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    payload = db.Column(db.Text, nullable=False, default="{}")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchantId": self.merchant_id,
            "receiptId": self.receipt_id,
            "type": self.type,
            "at": to_utc_z(self.at),
            "payload": json.loads(self.payload or "{}"),
        }
