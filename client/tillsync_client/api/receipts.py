# Overview: /api/receipts endpoints.

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional

from ..models import PaymentMethod, Receipt, ReceiptStatus
from ..repositories.receipts import ReceiptFilters
from .client import ApiClient, parse_body


@dataclass
class CreateReceiptResult:
    item: Receipt
    # True when the backend already had this clientReceiptId
    idempotent: bool


def _receipt_item(body: dict) -> Receipt:
    return Receipt.from_dict(body["item"])


def build_receipts_query(filters: Optional[ReceiptFilters] = None) -> dict:
    params = {}
    if filters is None:
        return params
    if filters.date_from:
        params["from"] = filters.date_from
    if filters.date_to:
        params["to"] = filters.date_to
    if filters.status:
        params["status"] = ReceiptStatus(filters.status).value
    if filters.payment_method:
        params["payment"] = PaymentMethod(filters.payment_method).value
    return params


class ReceiptsApi:
    def __init__(self, client: ApiClient):
        self.client = client

    def list(
        self,
        filters: Optional[ReceiptFilters] = None,
        merchant_id: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> list[Receipt]:
        body = self.client.request(
            "/api/receipts",
            params=build_receipts_query(filters),
            merchant_id=merchant_id,
            cancel_event=cancel_event,
        )
        return parse_body(body, lambda b: [Receipt.from_dict(item) for item in b["items"]])

    def get(self, receipt_id: str, merchant_id: Optional[str] = None) -> Receipt:
        body = self.client.request(f"/api/receipts/{receipt_id}", merchant_id=merchant_id)
        return parse_body(body, _receipt_item)

    def create(self, payload: dict, cancel_event: Optional[threading.Event] = None) -> CreateReceiptResult:
        """POST a receipt; the tenant header always matches payload['merchantId']."""
        body = self.client.request(
            "/api/receipts",
            method="POST",
            json=payload,
            merchant_id=payload["merchantId"],
            cancel_event=cancel_event,
        )
        return parse_body(body, lambda b: CreateReceiptResult(
            item=Receipt.from_dict(b["item"]),
            idempotent=bool(b.get("idempotent", False)),
        ))

    def void(self, receipt_id: str, merchant_id: Optional[str] = None) -> Receipt:
        body = self.client.request(f"/api/receipts/{receipt_id}/void", method="POST", merchant_id=merchant_id)
        return parse_body(body, _receipt_item)

    def refund(self, receipt_id: str, merchant_id: Optional[str] = None) -> Receipt:
        body = self.client.request(f"/api/receipts/{receipt_id}/refund", method="POST", merchant_id=merchant_id)
        return parse_body(body, _receipt_item)
