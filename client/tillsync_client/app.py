# Overview: Wires store, repositories, API and sync into one client object.

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from .api import ApiClient, MerchantsApi, ProductsApi, ReceiptsApi
from .checkout import ProductCatalog, ReceiptBook, ReceiptIssuer
from .config import ClientConfig
from .connectivity import ConnectivitySource
from .repositories import MerchantsRepo, ProductsRepo, ReceiptsRepo, SyncQueue
from .session import ClientSession
from .store import LocalStore
from .sync import SyncManager


@dataclass
class TillClient:
    config: ClientConfig
    session: ClientSession
    connectivity: ConnectivitySource
    store: LocalStore
    api: ApiClient
    merchants: MerchantsRepo
    products: ProductsRepo
    receipts: ReceiptsRepo
    queue: SyncQueue
    merchants_api: MerchantsApi
    products_api: ProductsApi
    receipts_api: ReceiptsApi
    issuer: ReceiptIssuer
    catalog: ProductCatalog
    receipt_book: ReceiptBook
    sync: SyncManager

    def close(self) -> None:
        self.sync.stop()
        self.api.close()
        self.store.close()


def create_client(
    config: Optional[ClientConfig] = None,
    session: Optional[ClientSession] = None,
    connectivity: Optional[ConnectivitySource] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> TillClient:
    """
    Client factory.

    Nothing touches disk or network here; the store initializes on first use
    and the sync worker starts only when sync.start() is called.
    """
    config = config or ClientConfig.from_env()
    session = session or ClientSession()
    connectivity = connectivity or ConnectivitySource()

    store = LocalStore(config)
    api = ApiClient(
        config.base_url,
        get_token=session.get_token,
        get_merchant_id=session.get_merchant_id,
        on_unauthorized=session.clear,
        transport=transport,
        timeout=config.request_timeout_seconds,
    )

    merchants = MerchantsRepo(store)
    products = ProductsRepo(store)
    receipts = ReceiptsRepo(store)
    queue = SyncQueue(store)
    merchants_api = MerchantsApi(api)
    products_api = ProductsApi(api)
    receipts_api = ReceiptsApi(api)

    return TillClient(
        config=config,
        session=session,
        connectivity=connectivity,
        store=store,
        api=api,
        merchants=merchants,
        products=products,
        receipts=receipts,
        queue=queue,
        merchants_api=merchants_api,
        products_api=products_api,
        receipts_api=receipts_api,
        issuer=ReceiptIssuer(receipts, receipts_api, session, connectivity, currency=config.currency),
        catalog=ProductCatalog(store, products, products_api, session, connectivity),
        receipt_book=ReceiptBook(receipts, receipts_api, session, connectivity),
        sync=SyncManager.from_config(
            config,
            receipts=receipts,
            queue=queue,
            receipts_api=receipts_api,
            session=session,
            connectivity=connectivity,
        ),
    )
