# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product routes.

MULTI-TENANT: Every route runs behind @require_merchant_access, so g.merchant_id
is one of the caller's merchant claims before any query runs.
"""
from flask import Blueprint, g, request

from ..decorators import require_auth, require_merchant_access
from ..services import products_service
from ..validation import parse_updated_since, validate_product_body

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_merchant_access
def list_products():
    """
    Query params:
    - updatedSince: ISO-8601 (optional) - only products changed at or after it
    """
    updated_since = parse_updated_since(request.args)
    products = products_service.list_products(g.merchant_id, updated_since)
    return {"items": [p.to_dict() for p in products]}


@products_bp.post("")
@require_auth
@require_merchant_access
def create_product():
    patch = validate_product_body(request.get_json(silent=True))
    product = products_service.create_product(g.merchant_id, patch)
    return {"item": product.to_dict()}, 201


@products_bp.put("/<product_id>")
@require_auth
@require_merchant_access
def update_product(product_id: str):
    patch = validate_product_body(request.get_json(silent=True), partial=True)
    product = products_service.update_product(g.merchant_id, product_id, patch)
    return {"item": product.to_dict()}
