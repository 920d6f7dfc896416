from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .errors import ValidationError
from .models import PAYMENT_METHODS, RECEIPT_STATUSES
from .time_utils import parse_iso_datetime


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999


class IssueCollector:
    """
    Accumulates field issues instead of failing on the first one.

    Each issue is {"path": "items.0.qty", "message": "..."}; raise_if_any()
    raises a single ValidationError carrying all of them.
    """

    def __init__(self):
        self.issues: list[dict] = []

    def add(self, path: str, message: str) -> None:
        self.issues.append({"path": path, "message": message})

    def raise_if_any(self) -> None:
        if self.issues:
            raise ValidationError(self.issues)


_MISSING = object()


def _is_int(value: Any) -> bool:
    # bool is an int subclass; never accept it as a number
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return (isinstance(value, (int, float))) and not isinstance(value, bool)


def _string(issues: IssueCollector, data: dict, key: str, path: str, *, min_len: int = 0,
            max_len: int | None = None, required: bool = True) -> str | None:
    value = data.get(key, _MISSING)
    if value is _MISSING or value is None:
        if required:
            issues.add(path, "Required")
        return None
    if not isinstance(value, str):
        issues.add(path, "Expected string")
        return None
    value = value.strip()
    if len(value) < min_len:
        issues.add(path, f"String must contain at least {min_len} character(s)")
        return None
    if max_len is not None and len(value) > max_len:
        issues.add(path, f"String must contain at most {max_len} character(s)")
        return None
    return value


def _int(issues: IssueCollector, data: dict, key: str, path: str, *, minimum: int | None = None,
         maximum: int | None = None, required: bool = True) -> int | None:
    value = data.get(key, _MISSING)
    if value is _MISSING or value is None:
        if required:
            issues.add(path, "Required")
        return None
    if not _is_int(value):
        issues.add(path, "Expected integer")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"Number must be greater than or equal to {minimum}")
        return None
    if maximum is not None and value > maximum:
        issues.add(path, f"Number must be less than or equal to {maximum}")
        return None
    return value


def _vat_rate(issues: IssueCollector, data: dict, key: str, path: str, *, required: bool = True) -> float | None:
    value = data.get(key, _MISSING)
    if value is _MISSING or value is None:
        if required:
            issues.add(path, "Required")
        return None
    if not _is_number(value):
        issues.add(path, "Expected number")
        return None
    if value < 0 or value > 100:
        issues.add(path, "VAT rate must be between 0 and 100")
        return None
    return float(value)


def _bool(issues: IssueCollector, data: dict, key: str, path: str) -> bool | None:
    value = data.get(key, _MISSING)
    if value is _MISSING or value is None:
        return None
    if not isinstance(value, bool):
        issues.add(path, "Expected boolean")
        return None
    return value


def _datetime(issues: IssueCollector, raw: Any, path: str, *, required: bool = True) -> datetime | None:
    if raw is None or raw == "":
        if required:
            issues.add(path, "Required")
        return None
    if not isinstance(raw, str):
        issues.add(path, "Expected ISO-8601 datetime string")
        return None
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        issues.add(path, "Invalid datetime")
        return None


def _require_object(data: Any) -> dict:
    if not isinstance(data, dict):
        raise ValidationError([{"path": "", "message": "Expected JSON object"}])
    return data


def validate_product_body(data: Any, *, partial: bool = False) -> dict:
    """
    Validate a product create/update body.

    Returns a snake_case patch with only the fields present. On update
    (partial=True) every field is optional, but present fields follow the
    same rules as on create.
    """
    data = _require_object(data)
    issues = IssueCollector()
    required = not partial
    patch: dict = {}

    name = _string(issues, data, "name", "name", min_len=1, max_len=120, required=required)
    if name is not None:
        patch["name"] = name

    price = _int(issues, data, "priceCents", "priceCents", minimum=0, maximum=MAX_PRICE_CENTS, required=required)
    if price is not None:
        patch["price_cents"] = price

    vat_rate = _vat_rate(issues, data, "vatRate", "vatRate", required=required)
    if vat_rate is not None:
        patch["vat_rate"] = vat_rate

    for key in ("category", "sku"):
        if key in data:
            value = _string(issues, data, key, key, max_len=80, required=False)
            patch[key] = value or None

    is_active = _bool(issues, data, "isActive", "isActive")
    if is_active is not None:
        patch["is_active"] = is_active

    issues.raise_if_any()
    return patch


@dataclass
class ReceiptLine:
    name: str
    qty: int
    unit_price_cents: int
    vat_rate: float
    line_total_cents: int


@dataclass
class ReceiptPayload:
    merchant_id: str
    client_receipt_id: str
    issued_at: datetime
    payment_method: str
    currency: str
    subtotal_cents: int
    tax_cents: int
    total_cents: int
    created_offline: bool
    items: list[ReceiptLine]


def validate_receipt_body(data: Any) -> ReceiptPayload:
    """
    Validate a receipt submission.

    Beyond field shapes, the arithmetic must hold:
    lineTotalCents = qty * unitPriceCents, subtotalCents = sum of line totals,
    totalCents = subtotalCents + taxCents.
    """
    data = _require_object(data)
    issues = IssueCollector()

    merchant_id = _string(issues, data, "merchantId", "merchantId", min_len=1)
    client_receipt_id = _string(issues, data, "clientReceiptId", "clientReceiptId", min_len=1, max_len=128)
    issued_at = _datetime(issues, data.get("issuedAt"), "issuedAt")

    payment_method = data.get("paymentMethod")
    if payment_method not in PAYMENT_METHODS:
        issues.add("paymentMethod", f"Expected one of {', '.join(PAYMENT_METHODS)}")

    currency = _string(issues, data, "currency", "currency", min_len=3, max_len=3)
    if currency is not None and not currency.isalpha():
        issues.add("currency", "Expected a 3-letter currency code")

    subtotal = _int(issues, data, "subtotalCents", "subtotalCents", minimum=0)
    tax = _int(issues, data, "taxCents", "taxCents", minimum=0)
    total = _int(issues, data, "totalCents", "totalCents", minimum=0)
    created_offline = _bool(issues, data, "createdOffline", "createdOffline")

    lines: list[ReceiptLine] = []
    raw_items = data.get("items")
    if not isinstance(raw_items, list):
        issues.add("items", "Expected array")
    elif not raw_items:
        issues.add("items", "Array must contain at least 1 element(s)")
    else:
        for index, raw in enumerate(raw_items):
            prefix = f"items.{index}"
            if not isinstance(raw, dict):
                issues.add(prefix, "Expected object")
                continue
            before = len(issues.issues)
            name = _string(issues, raw, "name", f"{prefix}.name", min_len=1, max_len=120)
            qty = _int(issues, raw, "qty", f"{prefix}.qty", minimum=1)
            unit = _int(issues, raw, "unitPriceCents", f"{prefix}.unitPriceCents", minimum=0, maximum=MAX_PRICE_CENTS)
            vat_rate = _vat_rate(issues, raw, "vatRate", f"{prefix}.vatRate")
            line_total = _int(issues, raw, "lineTotalCents", f"{prefix}.lineTotalCents", minimum=0)
            if len(issues.issues) != before:
                continue
            if line_total != qty * unit:
                issues.add(f"{prefix}.lineTotalCents", "Must equal qty * unitPriceCents")
                continue
            lines.append(ReceiptLine(name, qty, unit, vat_rate, line_total))

    if not issues.issues:
        if subtotal != sum(line.line_total_cents for line in lines):
            issues.add("subtotalCents", "Must equal the sum of item lineTotalCents")
        if total != subtotal + tax:
            issues.add("totalCents", "Must equal subtotalCents + taxCents")

    issues.raise_if_any()
    return ReceiptPayload(
        merchant_id=merchant_id,
        client_receipt_id=client_receipt_id,
        issued_at=issued_at,
        payment_method=payment_method,
        currency=currency.upper(),
        subtotal_cents=subtotal,
        tax_cents=tax,
        total_cents=total,
        created_offline=bool(created_offline),
        items=lines,
    )


def parse_updated_since(args) -> datetime | None:
    issues = IssueCollector()
    value = _datetime(issues, args.get("updatedSince"), "updatedSince", required=False)
    issues.raise_if_any()
    return value


@dataclass
class ReceiptQuery:
    date_from: datetime | None = None
    date_to: datetime | None = None
    status: str | None = None
    payment: str | None = None


def parse_receipt_query(args) -> ReceiptQuery:
    """Parse GET /api/receipts filters (from, to, status, payment)."""
    issues = IssueCollector()
    query = ReceiptQuery(
        date_from=_datetime(issues, args.get("from"), "from", required=False),
        date_to=_datetime(issues, args.get("to"), "to", required=False),
    )

    status = args.get("status") or None
    if status is not None and status not in RECEIPT_STATUSES:
        issues.add("status", f"Expected one of {', '.join(RECEIPT_STATUSES)}")
    query.status = status

    payment = args.get("payment") or None
    if payment is not None and payment not in PAYMENT_METHODS:
        issues.add("payment", f"Expected one of {', '.join(PAYMENT_METHODS)}")
    query.payment = payment

    issues.raise_if_any()
    return query
