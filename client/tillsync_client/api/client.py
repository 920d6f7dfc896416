# Overview: Thin HTTP wrapper adding bearer auth and the tenant header.

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

import httpx

from ..errors import NetworkError, RemoteApiError, RequestCancelled

logger = logging.getLogger(__name__)


class ApiClient:
    """
    Stateless request wrapper over httpx.Client.

    - Token and merchant are read through callables on every request, so
      the client never caches session state.
    - 401 fires on_unauthorized (used to sign the till out) and still
      raises RemoteApiError.
    - Non-2xx raises RemoteApiError carrying the raw body as details.
    - Transport failures and timeouts raise NetworkError.

    CANCELLATION: a set cancel_event raises RequestCancelled before the
    request is sent, or instead of returning a result that arrived after
    the caller gave up. A request already on the wire is not interrupted.
    """

    def __init__(
        self,
        base_url: str,
        get_token: Callable[[], Optional[str]],
        get_merchant_id: Optional[Callable[[], Optional[str]]] = None,
        on_unauthorized: Optional[Callable[[], None]] = None,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.get_token = get_token
        self.get_merchant_id = get_merchant_id
        self.on_unauthorized = on_unauthorized
        self.client = httpx.Client(base_url=self.base_url, transport=transport, timeout=timeout)

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "ApiClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _headers(self, token: str, merchant_id: Optional[str]) -> dict:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }
        if merchant_id:
            headers["X-Merchant-Id"] = merchant_id
        return headers

    def request(
        self,
        path: str,
        method: str = "GET",
        json: Optional[Any] = None,
        merchant_id: Optional[str] = None,
        params: Optional[dict] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Any:
        token = self.get_token()
        if not token:
            raise RemoteApiError(401, "Missing auth token")

        if merchant_id is None and self.get_merchant_id is not None:
            merchant_id = self.get_merchant_id()

        if cancel_event is not None and cancel_event.is_set():
            raise RequestCancelled(f"{method} {path} cancelled")

        try:
            response = self.client.request(
                method,
                path,
                json=json,
                params=params,
                headers=self._headers(token, merchant_id),
            )
        except httpx.TransportError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise NetworkError(f"{method} {path} failed: {exc}") from exc

        if cancel_event is not None and cancel_event.is_set():
            raise RequestCancelled(f"{method} {path} cancelled")

        if response.status_code == 401 and self.on_unauthorized is not None:
            self.on_unauthorized()

        if not response.is_success:
            raise RemoteApiError(
                response.status_code,
                f"API request failed ({response.status_code})",
                details=response.text,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise RemoteApiError(
                response.status_code, "Invalid JSON in API response", details=response.text
            ) from exc


def parse_body(body: Any, parse: Callable[[Any], Any]) -> Any:
    """
    Apply `parse` to a decoded 2xx body.

    A body of the wrong shape (missing key, unknown enum value) raises
    RemoteApiError like any other unusable answer, so callers handle it
    on their remote-failure path.
    """
    try:
        return parse(body)
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise RemoteApiError(502, "Unexpected API response", details=f"{exc!r} in {body!r}") from exc
