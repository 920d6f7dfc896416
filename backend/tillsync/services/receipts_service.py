# Overview: Service-layer operations for receipts: idempotent create-or-get, numbering and status changes.

"""
Receipts Service

IDEMPOTENCY: (merchant_id, client_receipt_id) identifies one purchase. However
many times a client submits it, exactly one receipt row exists and its number
is assigned exactly once.

CONCURRENCY: Creation runs inside a write-locked transaction
(BEGIN IMMEDIATE on SQLite, row locks elsewhere). The client id lookup is
repeated inside the lock, so two racing first submissions of the same purchase
still produce one receipt. Submissions for different merchants only contend on
SQLite, where the whole database is the lock.

ATOMICITY: Counter increment, receipt row, item rows and the RECEIPT_CREATED
event commit together or not at all.
"""

from __future__ import annotations

import json
import uuid

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, NotFoundError, TransactionFailure
from ..extensions import db
from ..models import Merchant, MerchantCounter, Receipt, ReceiptItem, SyncEvent
from ..time_utils import utcnow
from ..validation import ReceiptPayload, ReceiptQuery
from .concurrency import begin_immediate, lock_for_update, run_with_retry

RECEIPT_NUMBER_PAD = 6
FALLBACK_PREFIX = "MRC"

STATUS_EVENT_TYPES = {
    "VOIDED": "RECEIPT_VOIDED",
    "REFUNDED": "RECEIPT_REFUNDED",
}

# Only a completed receipt can be voided or refunded; both are terminal
ALLOWED_TRANSITIONS = {
    "COMPLETED": {"VOIDED", "REFUNDED"},
}


def merchant_prefix(name: str | None) -> str:
    """
    Deterministic receipt prefix from merchant name initials.

    "Brew Haven Coffee" -> "BHC", "Trattoria Roma" -> "TR".
    """
    initials = "".join(word[0] for word in (name or "").split())
    return initials.upper()[:3] or FALLBACK_PREFIX


def format_receipt_number(prefix: str, counter: int) -> str:
    return f"{prefix}-{counter:0{RECEIPT_NUMBER_PAD}d}"


def next_receipt_number(merchant_id: str) -> str:
    """
    Allocate the next receipt number for a merchant.

    Must run inside the receipt write transaction: the increment commits or
    rolls back together with the receipt that uses it.
    """
    stmt = (
        update(MerchantCounter)
        .where(MerchantCounter.merchant_id == merchant_id)
        .values(last_number=MerchantCounter.last_number + 1, updated_at=utcnow())
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        counter = (
            lock_for_update(db.session.query(MerchantCounter.last_number).filter_by(merchant_id=merchant_id))
            .scalar()
        )
    else:
        # First receipt for this merchant. A concurrent insert surfaces as
        # IntegrityError and the whole transaction is retried.
        db.session.add(MerchantCounter(merchant_id=merchant_id, last_number=1, updated_at=utcnow()))
        db.session.flush()
        counter = 1

    merchant = db.session.get(Merchant, merchant_id)
    return format_receipt_number(merchant_prefix(merchant.name if merchant else None), counter)


def find_by_client_receipt_id(merchant_id: str, client_receipt_id: str) -> Receipt | None:
    return (
        db.session.query(Receipt)
        .filter_by(merchant_id=merchant_id, client_receipt_id=client_receipt_id)
        .first()
    )


def create_or_get(merchant_id: str, payload: ReceiptPayload, user_id: str | None) -> tuple[Receipt, bool]:
    """
    Create a receipt, or return the one already created for this purchase.

    Returns (receipt, idempotent). idempotent=True means no writes happened.

    Raises:
        NotFoundError: merchant does not exist
        TransactionFailure: the transaction was rolled back
    """
    # Fast path for retried submissions: no lock, no writes
    existing = find_by_client_receipt_id(merchant_id, payload.client_receipt_id)
    if existing is not None:
        return existing, True

    if db.session.get(Merchant, merchant_id) is None:
        raise NotFoundError("Merchant not found")

    def _op() -> tuple[Receipt, bool]:
        begin_immediate()

        existing = find_by_client_receipt_id(merchant_id, payload.client_receipt_id)
        if existing is not None:
            db.session.commit()
            return existing, True

        number = next_receipt_number(merchant_id)
        now = utcnow()
        receipt = Receipt(
            id=str(uuid.uuid4()),
            merchant_id=merchant_id,
            client_receipt_id=payload.client_receipt_id,
            number=number,
            issued_at=payload.issued_at,
            status="COMPLETED",
            payment_method=payload.payment_method,
            currency=payload.currency,
            subtotal_cents=payload.subtotal_cents,
            tax_cents=payload.tax_cents,
            total_cents=payload.total_cents,
            created_by_user_id=user_id,
            created_offline=payload.created_offline,
            created_at=now,
            updated_at=now,
        )
        receipt.items = [
            ReceiptItem(
                id=str(uuid.uuid4()),
                position=position,
                name=line.name,
                qty=line.qty,
                unit_price_cents=line.unit_price_cents,
                vat_rate=line.vat_rate,
                line_total_cents=line.line_total_cents,
            )
            for position, line in enumerate(payload.items)
        ]
        db.session.add(receipt)
        db.session.add(SyncEvent(
            id=str(uuid.uuid4()),
            merchant_id=merchant_id,
            receipt_id=receipt.id,
            type="RECEIPT_CREATED",
            at=now,
            payload=json.dumps({
                "clientReceiptId": payload.client_receipt_id,
                "createdOffline": payload.created_offline,
            }),
        ))
        db.session.commit()
        return receipt, False

    try:
        receipt, idempotent = run_with_retry(
            _op,
            retry_on=(OperationalError, StaleDataError, IntegrityError),
        )
    except SQLAlchemyError as exc:
        current_app.logger.exception(
            "Receipt create rolled back: merchant=%s client_receipt_id=%s",
            merchant_id, payload.client_receipt_id,
        )
        raise TransactionFailure("Receipt creation failed") from exc

    if not idempotent:
        current_app.logger.info(
            "Receipt created: merchant=%s number=%s client_receipt_id=%s offline=%s",
            merchant_id, receipt.number, receipt.client_receipt_id, receipt.created_offline,
        )
    return receipt, idempotent


def list_receipts(merchant_id: str, query: ReceiptQuery | None = None) -> list[Receipt]:
    """Receipts of a merchant, newest issued first. from/to are inclusive."""
    query = query or ReceiptQuery()
    q = db.session.query(Receipt).filter(Receipt.merchant_id == merchant_id)
    if query.date_from is not None:
        q = q.filter(Receipt.issued_at >= query.date_from)
    if query.date_to is not None:
        q = q.filter(Receipt.issued_at <= query.date_to)
    if query.status:
        q = q.filter(Receipt.status == query.status)
    if query.payment:
        q = q.filter(Receipt.payment_method == query.payment)
    return q.order_by(Receipt.issued_at.desc(), Receipt.id.asc()).all()


def get_receipt(merchant_id: str, receipt_id: str) -> Receipt:
    receipt = db.session.query(Receipt).filter_by(id=receipt_id, merchant_id=merchant_id).first()
    if receipt is None:
        raise NotFoundError("Receipt not found")
    return receipt


def update_status(merchant_id: str, receipt_id: str, status: str, acted_by_user_id: str | None) -> Receipt:
    """
    Move a receipt to VOIDED or REFUNDED and record who did it.

    Only COMPLETED -> VOIDED and COMPLETED -> REFUNDED are allowed.
    Raises NotFoundError, ConflictError (any other transition).
    """
    if status not in STATUS_EVENT_TYPES:
        raise ValueError(f"Unsupported target status: {status}")

    receipt = get_receipt(merchant_id, receipt_id)
    if status not in ALLOWED_TRANSITIONS.get(receipt.status, set()):
        raise ConflictError(f"Receipt is {receipt.status} and cannot be {status.lower()}")

    previous = receipt.status
    now = utcnow()
    receipt.status = status
    receipt.updated_at = now
    db.session.add(SyncEvent(
        id=str(uuid.uuid4()),
        merchant_id=merchant_id,
        receipt_id=receipt.id,
        type=STATUS_EVENT_TYPES[status],
        at=now,
        payload=json.dumps({
            "actedByUserId": acted_by_user_id,
            "previousStatus": previous,
            "status": status,
        }),
    ))
    db.session.commit()

    current_app.logger.info(
        "AUDIT: receipt %s -> %s merchant=%s receipt=%s number=%s user=%s",
        previous, status, merchant_id, receipt.id, receipt.number, acted_by_user_id,
    )
    return receipt
