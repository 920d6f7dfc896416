# Overview: /api/merchants and /api/me.

from __future__ import annotations

from ..models import Merchant
from ..session import UserProfile
from .client import ApiClient, parse_body


class MerchantsApi:
    def __init__(self, client: ApiClient):
        self.client = client

    def list(self) -> list[Merchant]:
        body = self.client.request("/api/merchants")
        return parse_body(body, lambda b: [Merchant.from_dict(item) for item in b["items"]])

    def me(self) -> UserProfile:
        body = self.client.request("/api/me")
        return parse_body(body, lambda b: UserProfile.from_dict(b["user"]))
