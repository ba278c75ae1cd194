# Overview: Typed service errors shared by services and routes.

"""
Service error taxonomy.

Every error carries a human-readable message plus a details dict that is
rendered unchanged in the JSON error body, so the client can display it
without another lookup (field names, available vs. requested quantities,
current vs. requested status).
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for errors surfaced to API callers."""
    code = "ServiceError"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class NotFoundError(ServiceError):
    code = "NotFound"
    http_status = 404


class ValidationError(ServiceError, ValueError):
    """400-level input problem."""
    code = "ValidationFailed"
    http_status = 400


class DuplicateKeyError(ServiceError):
    """409-level unique constraint violation (SKU, batch number, email, ...)."""
    code = "DuplicateKey"
    http_status = 409


class InsufficientStockError(ServiceError):
    code = "InsufficientStock"
    http_status = 409

    def __init__(self, *, product_id: int, product_name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {product_name}. Available: {available}, Requested: {requested}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "available": available,
                "requested": requested,
            },
        )
        self.available = available
        self.requested = requested


class InvalidStateError(ServiceError):
    code = "InvalidState"
    http_status = 409


class InvalidTransitionError(ServiceError):
    code = "InvalidTransition"
    http_status = 409

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Invalid status transition from {current} to {requested}",
            details={"current_status": current, "requested_status": requested},
        )
        self.current = current
        self.requested = requested


class AuthenticationError(ServiceError):
    code = "Unauthorized"
    http_status = 401


class PermissionDeniedError(ServiceError):
    code = "Forbidden"
    http_status = 403


def error_response(exc: ServiceError):
    """(body, status) tuple for a Flask view."""
    return exc.to_dict(), exc.http_status
