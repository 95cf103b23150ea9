"""inventory_shared.errors — Typed failures carrying HTTP status codes."""
from __future__ import annotations

from typing import List, Optional

__all__ = [
    "AuthError",
    "BadRequest",
    "ConfigurationError",
    "Forbidden",
    "InventoryError",
    "StorageError",
    "StorageReadError",
    "StorageWriteError",
    "Unauthorized",
    "ValidationError",
]


class InventoryError(Exception):
    """Base error; ``status_code`` maps it to an HTTP response."""

    status_code = 500

    def __init__(self, message: str, *, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class BadRequest(InventoryError):
    status_code = 400


class ValidationError(BadRequest):
    """A rejected batch with one message per violation."""

    def __init__(self, details: List[str], message: str = "Validation failed") -> None:
        super().__init__(message)
        self.details = list(details)


class AuthError(InventoryError):
    status_code = 401


class Unauthorized(AuthError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized", **kwargs) -> None:
        super().__init__(message, **kwargs)


class Forbidden(AuthError):
    status_code = 403

    def __init__(self, message: str = "Forbidden: missing scope", **kwargs) -> None:
        super().__init__(message, **kwargs)


class ConfigurationError(AuthError):
    status_code = 500

    def __init__(self, message: str = "Auth not configured", **kwargs) -> None:
        super().__init__(message, **kwargs)


class StorageError(InventoryError):
    status_code = 500


class StorageReadError(StorageError):
    pass


class StorageWriteError(StorageError):
    pass
