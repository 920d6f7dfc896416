"""
Pytest fixtures for TillSync backend tests.

Provides test database setup, tenant fixtures, bearer tokens and test client.
"""

import pytest

from tillsync import create_app
from tillsync.extensions import db
from tillsync.models import Merchant, MerchantCounter, User, UserMerchant
from tillsync.services.session_service import issue_session


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DEBUG_SEED_ENABLED': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def merchant_a(db_session):
    """Merchant A (first tenant)."""
    merchant = Merchant(id="merchant-a", name="Brew Haven Coffee", vat_number="IT12345678901")
    db_session.add(merchant)
    db_session.add(MerchantCounter(merchant_id=merchant.id, last_number=0))
    db_session.commit()
    return merchant


@pytest.fixture(scope='function')
def merchant_b(db_session):
    """Merchant B (second tenant)."""
    merchant = Merchant(id="merchant-b", name="Trattoria Roma")
    db_session.add(merchant)
    db_session.commit()
    return merchant


def _create_user(db_session, user_id: str, merchant_ids: list[str]) -> User:
    user = User(id=user_id, email=f"{user_id}@example.com", name=user_id.title())
    db_session.add(user)
    for merchant_id in merchant_ids:
        db_session.add(UserMerchant(user_id=user_id, merchant_id=merchant_id, role="OWNER"))
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def user_a(db_session, merchant_a, merchant_b):
    """User with membership in merchant A only."""
    return _create_user(db_session, "user-a", [merchant_a.id])


@pytest.fixture(scope='function')
def user_b(db_session, merchant_a, merchant_b):
    """User with membership in merchant B only."""
    return _create_user(db_session, "user-b", [merchant_b.id])


@pytest.fixture(scope='function')
def token_a(user_a):
    _, token = issue_session(user_a.id)
    return token


@pytest.fixture(scope='function')
def token_b(user_b):
    _, token = issue_session(user_b.id)
    return token


def auth_headers(token: str, merchant_id: str | None = None) -> dict:
    """Helper to create Authorization (and tenant) headers."""
    headers = {'Authorization': f'Bearer {token}'}
    if merchant_id:
        headers['X-Merchant-Id'] = merchant_id
    return headers


def receipt_payload(merchant_id: str, client_receipt_id: str = "client-rcpt-1", **overrides) -> dict:
    """Valid POST /api/receipts body: espresso + croissant at 10% VAT."""
    payload = {
        "merchantId": merchant_id,
        "clientReceiptId": client_receipt_id,
        "issuedAt": "2026-03-01T09:30:00.000Z",
        "paymentMethod": "CARD",
        "currency": "EUR",
        "subtotalCents": 430,
        "taxCents": 43,
        "totalCents": 473,
        "createdOffline": False,
        "items": [
            {"name": "Espresso", "qty": 1, "unitPriceCents": 180, "vatRate": 10, "lineTotalCents": 180},
            {"name": "Butter Croissant", "qty": 1, "unitPriceCents": 250, "vatRate": 10, "lineTotalCents": 250},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture(scope='function')
def make_headers():
    return auth_headers


@pytest.fixture(scope='function')
def make_receipt():
    return receipt_payload


@pytest.fixture(scope='function')
def headers_a(token_a, merchant_a):
    """User A acting for merchant A."""
    return auth_headers(token_a, merchant_a.id)
