"""
Multi-Tenant Service: merchant membership and scoping helpers

WHY: Centralize the merchant-access rules so the decorator, the /api/me
route and the CLI agree on what a user may see.

SECURITY INVARIANTS:
1. Every tenant-scoped request has g.merchant_id set by require_merchant_access
2. g.merchant_id is always one of the session's merchant claims
3. Cross-tenant attempts are logged as warnings

USAGE:
    from tillsync.services.tenant_service import require_merchant_claim

    require_merchant_claim(merchant_id, g.merchant_ids)
"""

from flask import current_app, g, request

from ..errors import TenantAccessError
from ..extensions import db
from ..models import Merchant, User, UserMerchant


def get_current_merchant_id() -> str:
    """
    Current tenant from Flask g.

    SECURITY: Raises TenantAccessError if the merchant guard did not run.
    """
    merchant_id = getattr(g, "merchant_id", None)
    if not merchant_id:
        raise TenantAccessError("Tenant context not established")
    return merchant_id


def require_merchant_claim(merchant_id: str, claims: list[str]) -> None:
    """Raise TenantAccessError (403) when merchant_id is not among the claims."""
    if merchant_id in claims:
        return
    user = getattr(g, "current_user", None)
    current_app.logger.warning(
        "Cross-tenant access denied: user=%s merchant=%s path=%s",
        user.id if user else None,
        merchant_id,
        request.path if request else None,
    )
    raise TenantAccessError("Forbidden for this merchant")


def list_user_merchants(user_id: str) -> list[tuple[Merchant, str]]:
    """(merchant, role) pairs the user belongs to, ordered by merchant name."""
    rows = (
        db.session.query(Merchant, UserMerchant.role)
        .join(UserMerchant, UserMerchant.merchant_id == Merchant.id)
        .filter(UserMerchant.user_id == user_id)
        .order_by(Merchant.name)
        .all()
    )
    return [(merchant, role) for merchant, role in rows]


def assign_default_memberships(user: User) -> int:
    """
    Onboarding rule: a user with no memberships becomes OWNER of every merchant.

    Returns the number of memberships created (0 when the user already had some).
    """
    existing = db.session.query(UserMerchant).filter_by(user_id=user.id).count()
    if existing:
        return 0

    created = 0
    for merchant in db.session.query(Merchant).order_by(Merchant.id).all():
        db.session.add(UserMerchant(user_id=user.id, merchant_id=merchant.id, role="OWNER"))
        created += 1
    db.session.commit()
    return created
