"""
Pytest fixtures for the tillsync_client tests.

Provides a local store per engine, repositories, a signed-in session and a
scripted HTTP backend built on httpx.MockTransport.
"""

import json

import httpx
import pytest

from tillsync_client.api import ApiClient, ReceiptsApi
from tillsync_client.config import ClientConfig
from tillsync_client.connectivity import ConnectivitySource
from tillsync_client.models import (
    Merchant,
    PaymentMethod,
    Receipt,
    ReceiptItem,
    ReceiptStatus,
    SyncStatus,
)
from tillsync_client.repositories import ProductsRepo, ReceiptsRepo, SyncQueue
from tillsync_client.session import ClientSession, UserProfile
from tillsync_client.store import LocalStore

MERCHANT_ID = "merchant-brew-haven"


@pytest.fixture(params=["sql", "kv"])
def engine_name(request):
    """Every store-backed test runs once per engine."""
    return request.param


@pytest.fixture
def store(engine_name):
    store = LocalStore(ClientConfig(local_engine=engine_name, seed_demo_data=False))
    store.init()
    yield store
    store.close()


@pytest.fixture
def receipts_repo(store):
    return ReceiptsRepo(store)


@pytest.fixture
def products_repo(store):
    return ProductsRepo(store)


@pytest.fixture
def queue(store):
    return SyncQueue(store)


@pytest.fixture
def session():
    """Signed-in cashier with exactly one merchant (auto-selected)."""
    user = UserProfile(
        id="cashier-1",
        email="cashier@example.com",
        merchants=[Merchant(id=MERCHANT_ID, name="Brew Haven Coffee")],
    )
    return ClientSession(token="t" * 64, user=user)


@pytest.fixture
def connectivity():
    return ConnectivitySource(online=True)


def _receipt(
    receipt_id="rcpt-1",
    client_receipt_id="client-1",
    merchant_id=MERCHANT_ID,
    issued_at="2026-03-01T09:30:00.000Z",
    **overrides,
):
    fields = dict(
        id=receipt_id,
        client_receipt_id=client_receipt_id,
        merchant_id=merchant_id,
        issued_at=issued_at,
        status=ReceiptStatus.PENDING_SYNC,
        sync_status=SyncStatus.PENDING,
        payment_method=PaymentMethod.CARD,
        currency="EUR",
        subtotal_cents=430,
        tax_cents=43,
        total_cents=473,
        items=[
            ReceiptItem("Espresso", 1, 180, 10, 180),
            ReceiptItem("Butter Croissant", 1, 250, 10, 250),
        ],
        created_offline=True,
    )
    fields.update(overrides)
    return Receipt(**fields)


@pytest.fixture
def make_receipt():
    """Factory for a valid 430/43/473 receipt; keyword overrides per field."""
    return _receipt


def server_item(payload: dict, number: str = "BHC-000001", status: str = "COMPLETED") -> dict:
    """What the backend answers for a created receipt."""
    return {
        **payload,
        "id": f"srv-{payload['clientReceiptId']}",
        "number": number,
        "status": status,
        "createdByUserId": "cashier-1",
    }


class ScriptedBackend:
    """
    httpx.MockTransport handler answering from a script.

    Each step is an exception to raise, a callable(request) -> Response, or
    a (status, body) pair. When the script runs out, `default` is used; with
    no default every request is answered 201 with a numbered server copy.
    """

    def __init__(self):
        self.requests = []
        self.script = []
        self.default = None
        self._counter = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self.script.pop(0) if self.script else self.default
        if step is None:
            return self.created(request)
        if isinstance(step, Exception):
            raise step
        if callable(step):
            return step(request)
        status, body = step
        return httpx.Response(status, json=body)

    def created(self, request: httpx.Request) -> httpx.Response:
        self._counter += 1
        payload = json.loads(request.content)
        item = server_item(payload, number=f"BHC-{self._counter:06d}")
        return httpx.Response(201, json={"item": item, "idempotent": False})

    def bodies(self) -> list:
        return [json.loads(r.content) for r in self.requests if r.content]


@pytest.fixture
def backend():
    return ScriptedBackend()


@pytest.fixture
def api_client(backend, session):
    client = ApiClient(
        "http://till.test",
        get_token=session.get_token,
        get_merchant_id=session.get_merchant_id,
        on_unauthorized=session.clear,
        transport=httpx.MockTransport(backend),
    )
    yield client
    client.close()


@pytest.fixture
def receipts_api(api_client):
    return ReceiptsApi(api_client)
