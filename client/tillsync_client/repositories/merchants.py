# Overview: Cached merchant directory.

from __future__ import annotations

from ..models import Merchant
from ..store import LocalStore


class MerchantsRepo:
    def __init__(self, store: LocalStore):
        self.store = store

    def list_merchants(self) -> list[Merchant]:
        return self.store.get_merchants()

    def save_merchant(self, merchant: Merchant) -> None:
        self.store.upsert_merchant(merchant)
