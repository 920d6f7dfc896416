# Overview: Who is signed in and which merchant the till is working for.

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Optional

from .models import Merchant

logger = logging.getLogger(__name__)


@dataclass
class UserProfile:
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    merchants: list[Merchant] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "UserProfile":
        return cls(
            id=data["id"],
            email=data.get("email"),
            name=data.get("name"),
            merchants=[Merchant.from_dict(m) for m in data.get("merchants", [])],
        )


class ClientSession:
    """
    Bearer token, profile and merchant selection.

    The token comes from the sign-in flow, which is outside this package.
    clear() is wired as the API client's unauthorized callback so a 401
    signs the till out.
    """

    def __init__(self, token: Optional[str] = None, user: Optional[UserProfile] = None):
        self._lock = threading.Lock()
        self._token = token
        self._user = user
        self._merchant_id: Optional[str] = None
        if user is not None:
            self._auto_select()

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def user(self) -> Optional[UserProfile]:
        return self._user

    @property
    def merchant_claims(self) -> list[str]:
        return [m.id for m in self._user.merchants] if self._user else []

    @property
    def merchant_id(self) -> Optional[str]:
        return self._merchant_id

    def get_token(self) -> Optional[str]:
        return self._token

    def get_merchant_id(self) -> Optional[str]:
        return self._merchant_id

    def sign_in(self, token: str, user: UserProfile) -> None:
        with self._lock:
            self._token = token
            self._user = user
            self._merchant_id = None
            self._auto_select()

    def _auto_select(self) -> None:
        # Exactly one merchant needs no picker
        if len(self.merchant_claims) == 1:
            self._merchant_id = self.merchant_claims[0]

    def select_merchant(self, merchant_id: str) -> None:
        if merchant_id not in self.merchant_claims:
            raise ValueError(f"Merchant {merchant_id!r} is not in this session's claims")
        with self._lock:
            self._merchant_id = merchant_id

    def clear(self) -> None:
        with self._lock:
            if self._token is not None:
                logger.info("Session cleared")
            self._token = None
            self._user = None
            self._merchant_id = None
