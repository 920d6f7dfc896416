# Overview: Flask API routes for the current user profile and merchant list.

from flask import Blueprint, g

from ..decorators import require_auth
from ..extensions import db
from ..models import Merchant
from ..services.tenant_service import assign_default_memberships, list_user_merchants

me_bp = Blueprint("me", __name__, url_prefix="/api")


@me_bp.get("/me")
@require_auth
def me():
    """
    Current user with the merchants they belong to.

    A user with no memberships is onboarded as OWNER of every merchant.
    The new memberships reach the token claims on the next issued session.
    """
    user = g.current_user
    assign_default_memberships(user)

    data = user.to_dict()
    data["merchants"] = [merchant.to_dict(role=role) for merchant, role in list_user_merchants(user.id)]
    return {"user": data}


@me_bp.get("/merchants")
@require_auth
def list_merchants():
    """Merchants the current token may act for."""
    claims = set(g.merchant_ids)
    merchants = (
        db.session.query(Merchant)
        .filter(Merchant.id.in_(claims))
        .order_by(Merchant.name.asc())
        .all()
    ) if claims else []
    return {"items": [m.to_dict() for m in merchants]}
