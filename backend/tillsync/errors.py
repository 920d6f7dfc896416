# Overview: API error taxonomy and the single error-mapping layer for all blueprints.

"""
Error taxonomy for the TillSync backend.

Every service raises one of these; routes never build error responses by hand.
register_error_handlers() installs the one place where exceptions become
HTTP responses:

    ValidationError     400  {"error": "Validation failed", "details": [{path, message}]}
    AuthError           401  {"error": ...}
    TenantAccessError   403  {"error": ...}
    NotFoundError       404  {"error": ...}
    ConflictError       409  {"error": ...}
    TransactionFailure  500  {"error": "Internal server error"}
    anything else       500  {"error": "Internal server error"}

SECURITY: 500 responses never carry exception text or stack details.
"""

from __future__ import annotations

from typing import Any

from flask import Flask, current_app, jsonify
from werkzeug.exceptions import HTTPException


class ApiError(Exception):
    """Base class for errors that map to a known HTTP status."""

    status_code = 500

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body: dict = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(ApiError):
    """400-level input problem. Carries every field issue, not just the first."""

    status_code = 400

    def __init__(self, issues: list[dict] | None = None, message: str = "Validation failed"):
        super().__init__(message, details=issues or [])

    @property
    def issues(self) -> list[dict]:
        return self.details


class AuthError(ApiError):
    status_code = 401


class TenantAccessError(ApiError):
    """Raised when a caller touches a merchant outside its token claims."""

    status_code = 403


class NotFoundError(ApiError):
    status_code = 404


class ConflictError(ApiError):
    """409-level business rule conflict (e.g., voiding an already refunded receipt)."""

    status_code = 409


class TransactionFailure(ApiError):
    """A write transaction was rolled back. Nothing was partially applied."""

    status_code = 500

    def __init__(self, message: str = "Transaction failed"):
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": "Internal server error"}


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def handle_api_error(error: ApiError):
        if error.status_code >= 500:
            current_app.logger.error("Request failed: %s", error.message, exc_info=error)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def handle_route_not_found(_error):
        return jsonify({"error": "Route not found"}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(_error):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description}), error.code
        current_app.logger.exception("Unhandled API error")
        return jsonify({"error": "Internal server error"}), 500
