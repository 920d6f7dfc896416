# Overview: Exception taxonomy for the offline-first client core.

from __future__ import annotations

from typing import Optional


class ClientError(Exception):
    """Base class for every error raised by tillsync_client."""


class StorageUnavailable(ClientError):
    """
    The local engine is not ready or failed underneath a call.

    Raised by every LocalStore operation until init() has completed
    successfully. Not retried beyond the init guard.
    """


class DuplicateReceipt(ClientError):
    """A second receipt with a different id claims an existing (merchant, clientReceiptId) pair."""

    def __init__(self, merchant_id: str, client_receipt_id: str):
        super().__init__(
            f"Receipt {client_receipt_id!r} already exists for merchant {merchant_id!r}"
        )
        self.merchant_id = merchant_id
        self.client_receipt_id = client_receipt_id


class NoMerchantSelected(ClientError):
    """Issuance and tenant-scoped reads need a selected merchant."""

    def __init__(self, message: str = "No merchant selected"):
        super().__init__(message)


class RemoteApiError(ClientError):
    """
    Non-2xx answer from the backend.

    `details` carries the raw response body so callers can show or log the
    server's field-level issues without this layer parsing them.
    """

    def __init__(self, status: int, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.message = message
        self.details = details

    @property
    def is_conflict(self) -> bool:
        return self.status == 409

    @property
    def is_unauthorized(self) -> bool:
        return self.status == 401

    def __repr__(self) -> str:
        return f"RemoteApiError(status={self.status}, message={self.message!r})"


class NetworkError(ClientError):
    """Transport failure or timeout; the request may or may not have reached the server."""


class RequestCancelled(ClientError):
    """The caller's cancel event was set before or during the request."""
