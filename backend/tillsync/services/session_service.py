# Overview: Service-layer operations for bearer sessions and their merchant claims.

"""
Session Token Management Service with Multi-Tenant Support

WHY: The identity-provider handshake is external; the core only consumes
"a bearer token plus the merchants it may act for". This service mints and
validates those tokens.

MULTI-TENANT: Sessions capture the merchant claims at creation time.
Every tenant-scoped request is checked against those claims without
re-reading memberships.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Absolute timeout from SESSION_TTL_HOURS
- Revocable
"""

import hashlib
import json
import secrets
from dataclasses import dataclass, field
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User, UserMerchant
from ..time_utils import utcnow


@dataclass
class SessionContext:
    """
    Session context returned by validate_session.

    MULTI-TENANT: merchant_ids comes from the immutable session record.
    """
    user: User
    session: SessionToken
    merchant_ids: list[str] = field(default_factory=list)


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy). Never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    WHY SHA-256 not a password hash: tokens are already high-entropy.
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def issue_session(user_id: str, merchant_ids: list[str] | None = None) -> tuple[SessionToken, str]:
    """
    Create a new session token for a user.

    merchant_ids defaults to the user's current memberships.
    Returns (session_record, plaintext_token).

    Raises ValueError if the user does not exist.
    """
    user = db.session.get(User, user_id)
    if not user:
        raise ValueError("User not found")

    if merchant_ids is None:
        merchant_ids = [
            row.merchant_id
            for row in db.session.query(UserMerchant).filter_by(user_id=user_id).order_by(UserMerchant.merchant_id)
        ]

    plaintext_token = generate_token()
    now = utcnow()
    ttl_hours = current_app.config.get("SESSION_TTL_HOURS", 12)

    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        merchant_ids=json.dumps(sorted(set(merchant_ids))),
        created_at=now,
        last_used_at=now,
        expires_at=now + timedelta(hours=ttl_hours),
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str) -> SessionContext | None:
    """
    Validate a session token.

    Returns None if the token is unknown, revoked or expired.
    Updates last_used_at on success.
    """
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    now = utcnow()
    if session.expires_at < now:
        return None

    user = session.user
    if not user:
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session, merchant_ids=session.merchant_claims)


def revoke_session(token: str) -> bool:
    """Revoke a session. Returns False when the token was not found."""
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if not session:
        return False
    session.is_revoked = True
    db.session.commit()
    return True
