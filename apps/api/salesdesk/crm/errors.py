from __future__ import annotations

from typing import Any


class StoreError(Exception):
    """Base failure for entity store and CRM service operations.

    Every subclass is recoverable: nothing has been applied, and the caller
    may retry after surfacing the message.
    """

    status_code = 500
    code = "crm_store_error"

    def __init__(self, message: str, *, entity: str | None = None, details: Any = None) -> None:
        self.message = message
        self.entity = entity
        self.details = details
        super().__init__(message)


class NotAuthenticated(StoreError):
    """Raised when a write is attempted without an active user session."""

    status_code = 401
    code = "not_authenticated"


class BackendUnavailable(StoreError):
    """Raised when the persistence backend fails a read or write."""

    status_code = 503
    code = "backend_unavailable"


class ValidationFailed(StoreError):
    status_code = 422
    code = "validation_failed"


class RecordNotFound(StoreError):
    status_code = 404
    code = "not_found"
