# Overview: Application error taxonomy shared by services and routes.

"""
Every service failure is raised as an AppError subclass. Routes do not
translate them one by one: the handler registered in create_app() renders
any AppError as {"message": ..., **details} with the class status code.

Services roll back their transaction before one of these propagates.
"""

from __future__ import annotations


class AppError(Exception):
    """Base application error."""
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = dict(self.details)
        payload["message"] = self.message
        return payload


class ValidationError(AppError):
    """Missing or malformed input. No writes were attempted."""
    status_code = 400


class AuthenticationError(AppError):
    status_code = 401


class PermissionDeniedError(AppError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    """409-level business rule conflict (e.g., duplicate invoice id)."""
    status_code = 409


class InsufficientStockError(AppError):
    """A movement would drive an item's stock below zero."""
    status_code = 400

    def __init__(self, *, item_id: int, item_name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {item_name}. Available: {available}, Requested: {requested}",
            details={
                "itemId": item_id,
                "itemName": item_name,
                "available": available,
                "requested": requested,
            },
        )
        self.item_id = item_id
        self.item_name = item_name
        self.available = available
        self.requested = requested


class ConflictOnCommitError(AppError):
    """
    Stock changed between a passed pre-check and the commit.

    The whole transaction was rolled back; the caller may retry.
    """
    status_code = 409
    retryable = True

    def __init__(self, message: str, details: dict | None = None):
        details = dict(details or {})
        details.setdefault("retryable", True)
        super().__init__(message, details)


class StorageError(AppError):
    """Underlying transaction or connection failure; nothing was applied."""
    status_code = 500
