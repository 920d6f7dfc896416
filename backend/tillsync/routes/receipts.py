# Overview: Flask API routes for receipts; idempotent creation plus void/refund.

"""
Receipt routes.

POST /api/receipts answers 201 for a new receipt and 200 with
idempotent=true when the purchase (clientReceiptId) was already recorded.
"""
from flask import Blueprint, g, request

from ..decorators import require_auth, require_merchant_access
from ..services import receipts_service
from ..validation import parse_receipt_query, validate_receipt_body

receipts_bp = Blueprint("receipts", __name__, url_prefix="/api/receipts")


@receipts_bp.get("")
@require_auth
@require_merchant_access
def list_receipts():
    """
    Query params (all optional):
    - from, to: ISO-8601 bounds on issuedAt (inclusive)
    - status: COMPLETED | VOIDED | REFUNDED
    - payment: CASH | CARD | WALLET | SPLIT
    """
    query = parse_receipt_query(request.args)
    receipts = receipts_service.list_receipts(g.merchant_id, query)
    return {"items": [r.to_dict() for r in receipts]}


@receipts_bp.get("/<receipt_id>")
@require_auth
@require_merchant_access
def get_receipt(receipt_id: str):
    receipt = receipts_service.get_receipt(g.merchant_id, receipt_id)
    return {"item": receipt.to_dict()}


@receipts_bp.post("")
@require_auth
@require_merchant_access
def create_receipt():
    payload = validate_receipt_body(request.get_json(silent=True))
    receipt, idempotent = receipts_service.create_or_get(g.merchant_id, payload, g.current_user.id)
    return {"item": receipt.to_dict(), "idempotent": idempotent}, 200 if idempotent else 201


@receipts_bp.post("/<receipt_id>/void")
@require_auth
@require_merchant_access
def void_receipt(receipt_id: str):
    receipt = receipts_service.update_status(g.merchant_id, receipt_id, "VOIDED", g.current_user.id)
    return {"item": receipt.to_dict()}


@receipts_bp.post("/<receipt_id>/refund")
@require_auth
@require_merchant_access
def refund_receipt(receipt_id: str):
    receipt = receipts_service.update_status(g.merchant_id, receipt_id, "REFUNDED", g.current_user.id)
    return {"item": receipt.to_dict()}
