# Overview: Client-side domain entities and their camelCase JSON shape.

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ReceiptStatus(str, Enum):
    COMPLETED = "COMPLETED"
    VOIDED = "VOIDED"
    REFUNDED = "REFUNDED"
    # Client-only; the backend never stores it
    PENDING_SYNC = "PENDING_SYNC"


class SyncStatus(str, Enum):
    SYNCED = "SYNCED"
    PENDING = "PENDING"
    FAILED = "FAILED"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    WALLET = "WALLET"
    SPLIT = "SPLIT"


class SyncQueueStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    FAILED = "FAILED"


@dataclass
class Merchant:
    id: str
    name: str
    vat_number: Optional[str] = None
    address: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "vatNumber": self.vat_number,
            "address": self.address,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Merchant":
        return cls(
            id=data["id"],
            name=data["name"],
            vat_number=data.get("vatNumber"),
            address=data.get("address"),
        )


@dataclass
class Product:
    id: str
    merchant_id: str
    name: str
    price_cents: int
    vat_rate: float
    updated_at: str
    category: Optional[str] = None
    sku: Optional[str] = None
    is_active: bool = True

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
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Product":
        return cls(
            id=data["id"],
            merchant_id=data["merchantId"],
            name=data["name"],
            price_cents=int(data["priceCents"]),
            vat_rate=data["vatRate"],
            category=data.get("category"),
            sku=data.get("sku"),
            is_active=bool(data.get("isActive", True)),
            updated_at=data["updatedAt"],
        )


@dataclass
class CartItem:
    """Snapshot of a product at add-time; later price edits do not touch the cart."""

    product_id: str
    name: str
    qty: int
    unit_price_cents: int
    vat_rate: float


@dataclass
class ReceiptItem:
    name: str
    qty: int
    unit_price_cents: int
    vat_rate: float
    line_total_cents: int

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "qty": self.qty,
            "unitPriceCents": self.unit_price_cents,
            "vatRate": self.vat_rate,
            "lineTotalCents": self.line_total_cents,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ReceiptItem":
        return cls(
            name=data["name"],
            qty=int(data["qty"]),
            unit_price_cents=int(data["unitPriceCents"]),
            vat_rate=data["vatRate"],
            line_total_cents=int(data["lineTotalCents"]),
        )


@dataclass
class Receipt:
    """
    A sale as the device knows it.

    `id` is provisional until the backend confirms the receipt; after sync it
    is replaced by the server id. `client_receipt_id` never changes and is the
    key every merge uses.
    """

    id: str
    client_receipt_id: str
    merchant_id: str
    issued_at: str
    status: ReceiptStatus
    sync_status: SyncStatus
    payment_method: PaymentMethod
    currency: str
    subtotal_cents: int
    tax_cents: int
    total_cents: int
    items: list[ReceiptItem] = field(default_factory=list)
    number: Optional[str] = None
    created_offline: bool = False
    sync_attempts: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "clientReceiptId": self.client_receipt_id,
            "merchantId": self.merchant_id,
            "number": self.number,
            "issuedAt": self.issued_at,
            "status": ReceiptStatus(self.status).value,
            "syncStatus": SyncStatus(self.sync_status).value,
            "paymentMethod": PaymentMethod(self.payment_method).value,
            "currency": self.currency,
            "subtotalCents": self.subtotal_cents,
            "taxCents": self.tax_cents,
            "totalCents": self.total_cents,
            "items": [item.to_dict() for item in self.items],
            "createdOffline": self.created_offline,
            "syncAttempts": self.sync_attempts,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Receipt":
        """Accepts both local snapshots and server receipts (which lack sync fields)."""
        return cls(
            id=data["id"],
            client_receipt_id=data["clientReceiptId"],
            merchant_id=data["merchantId"],
            number=data.get("number"),
            issued_at=data["issuedAt"],
            status=ReceiptStatus(data["status"]),
            sync_status=SyncStatus(data.get("syncStatus", SyncStatus.SYNCED.value)),
            payment_method=PaymentMethod(data["paymentMethod"]),
            currency=data["currency"],
            subtotal_cents=int(data["subtotalCents"]),
            tax_cents=int(data["taxCents"]),
            total_cents=int(data["totalCents"]),
            items=[ReceiptItem.from_dict(item) for item in data.get("items", [])],
            created_offline=bool(data.get("createdOffline", False)),
            sync_attempts=int(data.get("syncAttempts", 0)),
        )

    def to_create_payload(self, created_offline: Optional[bool] = None) -> dict:
        """Body for POST /api/receipts."""
        return {
            "merchantId": self.merchant_id,
            "clientReceiptId": self.client_receipt_id,
            "issuedAt": self.issued_at,
            "paymentMethod": PaymentMethod(self.payment_method).value,
            "currency": self.currency,
            "subtotalCents": self.subtotal_cents,
            "taxCents": self.tax_cents,
            "totalCents": self.total_cents,
            "createdOffline": self.created_offline if created_offline is None else created_offline,
            "items": [item.to_dict() for item in self.items],
        }


@dataclass
class SyncQueueRecord:
    id: str
    merchant_id: str
    receipt_id: str
    payload: Receipt
    attempts: int
    next_attempt_at: str
    status: SyncQueueStatus
    created_at: str
    updated_at: str
    last_error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchantId": self.merchant_id,
            "receiptId": self.receipt_id,
            "payload": self.payload.to_dict(),
            "attempts": self.attempts,
            "nextAttemptAt": self.next_attempt_at,
            "status": SyncQueueStatus(self.status).value,
            "lastError": self.last_error,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SyncQueueRecord":
        return cls(
            id=data["id"],
            merchant_id=data["merchantId"],
            receipt_id=data["receiptId"],
            payload=Receipt.from_dict(data["payload"]),
            attempts=int(data["attempts"]),
            next_attempt_at=data["nextAttemptAt"],
            status=SyncQueueStatus(data["status"]),
            last_error=data.get("lastError"),
            created_at=data["createdAt"],
            updated_at=data["updatedAt"],
        )
