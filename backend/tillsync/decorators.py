# Overview: Request decorators for authentication and merchant (tenant) scoping.

from functools import wraps

from flask import g, request

from .errors import AuthError, ValidationError
from .services import session_service
from .services.tenant_service import require_merchant_claim


def require_auth(f):
    """
    Require a valid bearer token.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.merchant_ids: Merchant claims captured when the token was issued
    - g.session_context: The full SessionContext object

    SECURITY: Raises AuthError (401) if:
    - No Authorization header
    - Header is not "Bearer <token>"
    - Token unknown, revoked or expired
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")
        if not auth_header:
            raise AuthError("Missing Authorization header")

        scheme, _, token = auth_header.partition(" ")
        token = token.strip()
        if scheme != "Bearer" or not token:
            raise AuthError("Invalid Authorization header format")

        context = session_service.validate_session(token)
        if not context:
            raise AuthError("Invalid or expired token")

        g.current_user = context.user
        g.merchant_ids = context.merchant_ids
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_merchant_access(f):
    """
    Establish and authorize the merchant context for a request.

    Must be applied after @require_auth. Runs before the handler touches any
    state, so a rejected request never opens a transaction.

    Resolution order: X-Merchant-Id header, JSON body merchantId, then the
    merchant_id view argument.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        header_merchant = (request.headers.get("X-Merchant-Id") or "").strip() or None

        body_merchant = None
        if request.is_json:
            body = request.get_json(silent=True)
            if isinstance(body, dict) and isinstance(body.get("merchantId"), str):
                body_merchant = body["merchantId"].strip() or None

        merchant_id = header_merchant or body_merchant or kwargs.get("merchant_id")
        if not merchant_id:
            raise ValidationError(message="Missing merchant context (X-Merchant-Id or merchantId)")

        if header_merchant and body_merchant and header_merchant != body_merchant:
            raise ValidationError(message="merchantId mismatch between header and body")

        require_merchant_claim(merchant_id, getattr(g, "merchant_ids", []))
        g.merchant_id = merchant_id

        return f(*args, **kwargs)

    return decorated_function
